from __future__ import annotations

from typing import BinaryIO, Iterator, List, Optional, Tuple

from .entry import DirEntry, Entry, FileEntry, ProgressCallback
from .errors import EntryNotFound
from .pathutil import join_path, path_segments, split_path
from .writer import PackStats, pack_bytes, write_archive


class Archive:
    """An in-memory asar tree rooted at a nameless directory.

    Build one programmatically, from a filesystem directory
    (:meth:`from_directory`), or by decoding an existing archive
    (:meth:`read` / :meth:`open`). All file contents live in memory.
    """

    def __init__(self, root: Optional[DirEntry] = None):
        self.root = root if root is not None else DirEntry("")

    def __repr__(self) -> str:
        return f"Archive(files={self.count()}, top_level={list(self.root.children)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Archive):
            return NotImplemented
        return self.root == other.root

    def __str__(self) -> str:
        return self.format_tree()

    # -------- Construction / serialization --------

    @classmethod
    def read(cls, f: BinaryIO, progress: Optional[ProgressCallback] = None) -> "Archive":
        from .reader import read_archive

        return read_archive(f, progress=progress)

    @classmethod
    def open(cls, path: str, progress: Optional[ProgressCallback] = None) -> "Archive":
        from .reader import open_archive

        return open_archive(path, progress=progress)

    @classmethod
    def from_directory(cls, path: str) -> "Archive":
        from .fsutil import tree_from_directory

        return tree_from_directory(path)

    def pack(
        self,
        f: BinaryIO,
        progress: Optional[ProgressCallback] = None,
        *,
        sort: bool = False,
        integrity: bool = False,
    ) -> PackStats:
        return write_archive(self, f, progress, sort=sort, integrity=integrity)

    def to_bytes(self, *, sort: bool = False, integrity: bool = False) -> bytes:
        return pack_bytes(self, sort=sort, integrity=integrity)

    # -------- Lookup --------

    def resolve(self, path: str) -> Optional[Entry]:
        """Walk a slash-delimited path; ``None`` when any segment is missing.

        An intermediate segment naming a file also yields ``None``. The empty
        path resolves to the root directory. '..' names no child, so a path
        through it resolves to ``None``.
        """
        entry: Entry = self.root
        for seg in path_segments(path):
            if not isinstance(entry, DirEntry) or seg == "..":
                return None
            child = entry.get(seg)
            if child is None:
                return None
            entry = child
        return entry

    def get_file(self, path: str) -> Optional[FileEntry]:
        e = self.resolve(path)
        return e if isinstance(e, FileEntry) else None

    def get_dir(self, path: str) -> Optional[DirEntry]:
        e = self.resolve(path)
        return e if isinstance(e, DirEntry) else None

    def __getitem__(self, path: str) -> Entry:
        e = self.resolve(path)
        if e is None:
            raise EntryNotFound(path)
        return e

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.resolve(path) is not None

    def read_file(self, path: str) -> bytes:
        f = self.get_file(path)
        if f is None:
            raise EntryNotFound(path)
        return f.data

    # -------- Mutation --------

    def make_dirs(self, path: str) -> DirEntry:
        d = self.root
        for seg in split_path(path):
            child = d.get(seg)
            if child is None:
                child = d.add(DirEntry(seg))
            elif not isinstance(child, DirEntry):
                raise ValueError(f"Cannot create directory {path!r}: {seg!r} is a file")
            d = child
        return d

    def insert_file(self, path: str, data: bytes, *, replace: bool = True) -> FileEntry:
        parts = split_path(path)
        if not parts:
            raise ValueError("File path may not be empty")
        parent = self.make_dirs("/".join(parts[:-1]))
        existing = parent.get(parts[-1])
        if isinstance(existing, DirEntry):
            raise ValueError(f"Cannot replace directory {path!r} with a file")
        return parent.add(FileEntry(parts[-1], bytes(data)), replace=replace)  # type: ignore[return-value]

    def remove(self, path: str) -> Entry:
        parts = split_path(path)
        if not parts:
            raise ValueError("Cannot remove the archive root")
        parent = self.get_dir("/".join(parts[:-1]))
        if parent is None:
            raise EntryNotFound(path)
        try:
            return parent.remove(parts[-1])
        except EntryNotFound:
            raise EntryNotFound(path) from None

    # -------- Iteration --------

    def files(self) -> Iterator[FileEntry]:
        return self.root.files()

    def dirs(self) -> Iterator[DirEntry]:
        return self.root.dirs()

    def entries(self) -> Iterator[Entry]:
        return self.root.entries()

    def count(self) -> int:
        return self.root.count()

    def walk(self) -> Iterator[Tuple[str, Entry]]:
        """Yield ``(path, entry)`` depth first, each directory before its children."""
        stack: List[Tuple[str, Entry]] = [(n, e) for n, e in reversed(list(self.root.children.items()))]
        while stack:
            path, entry = stack.pop()
            yield path, entry
            if isinstance(entry, DirEntry):
                for name, child in reversed(list(entry.children.items())):
                    stack.append((join_path(path, name), child))

    def verify(self) -> List[str]:
        """Return the paths of files whose integrity record no longer matches.

        Files without an integrity record are not checked.
        """
        bad: List[str] = []
        for path, entry in self.walk():
            if isinstance(entry, FileEntry) and entry.integrity is not None:
                if not entry.integrity.matches(entry.data):
                    bad.append(path)
        return bad

    def format_tree(self) -> str:
        lines: List[str] = []
        for path, entry in self.walk():
            indent = "  " * path.count("/")
            if isinstance(entry, DirEntry):
                lines.append(f"{indent}{entry.name}/")
            else:
                lines.append(f"{indent}{entry.name} - size: {entry.size}")
        return "\n".join(lines)
