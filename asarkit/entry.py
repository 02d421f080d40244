from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional, Union

from .errors import EntryNotFound, InvalidUTF8
from .hashutil import Integrity
from .pathutil import check_entry_name


@dataclass
class FileEntry:
    """A file and its complete content."""

    name: str
    data: bytes = b""
    integrity: Optional[Integrity] = None

    @property
    def size(self) -> int:
        return len(self.data)

    def count(self) -> int:
        return 1

    def text(self, encoding: str = "utf-8") -> str:
        try:
            return self.data.decode(encoding)
        except UnicodeDecodeError as exc:
            raise InvalidUTF8(f"File {self.name} is not valid {encoding} text: {exc}") from exc

    def set_data(self, data: bytes) -> None:
        # Any recorded digest describes the old content
        self.data = bytes(data)
        self.integrity = None

    def set_text(self, text: str, encoding: str = "utf-8") -> None:
        self.set_data(text.encode(encoding))


@dataclass
class DirEntry:
    """A directory owning its children, keyed by name."""

    name: str
    children: Dict[str, "Entry"] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.children)

    def __contains__(self, name: object) -> bool:
        return name in self.children

    def get(self, name: str) -> Optional["Entry"]:
        return self.children.get(name)

    def add(self, entry: "Entry", *, replace: bool = False) -> "Entry":
        check_entry_name(entry.name)
        if entry.name in self.children and not replace:
            raise ValueError(f"Entry already exists in {self.name or '/'}: {entry.name}")
        self.children[entry.name] = entry
        return entry

    def remove(self, name: str) -> "Entry":
        try:
            return self.children.pop(name)
        except KeyError:
            raise EntryNotFound(name) from None

    def files(self) -> Iterator[FileEntry]:
        return (e for e in self.children.values() if isinstance(e, FileEntry))

    def dirs(self) -> Iterator["DirEntry"]:
        return (e for e in self.children.values() if isinstance(e, DirEntry))

    def entries(self) -> Iterator["Entry"]:
        return iter(self.children.values())

    def count(self) -> int:
        return sum(e.count() for e in self.children.values())


Entry = Union[FileEntry, DirEntry]

# Invoked once per file as (files_done, files_total, archive_path)
ProgressCallback = Callable[[int, int, str], None]
