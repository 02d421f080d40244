from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, List, Optional

from .constants import PREAMBLE_SIZE
from .entry import DirEntry, Entry, FileEntry, ProgressCallback
from .errors import ArchiveIOError
from .header import DirRecord, FileRecord, Preamble, Record, decode_header, unpack_preamble
from .pathutil import join_path

if TYPE_CHECKING:
    from .archive import Archive


log = logging.getLogger(__name__)

_READ_CHUNK = 1 << 20


@dataclass
class ArchiveHeader:
    preamble: Preamble
    root: DirRecord

    @property
    def json_size(self) -> int:
        return self.preamble.json_size

    @property
    def header_size(self) -> int:
        return self.preamble.header_size

    @property
    def data_offset(self) -> int:
        return self.preamble.data_offset


def _read_at(f: BinaryIO, pos: int, n: int, what: str) -> bytes:
    # Sizes come from the header, so never ask the stream for more than a chunk at once
    chunks: List[bytes] = []
    got = 0
    try:
        f.seek(pos)
        while got < n:
            buf = f.read(min(n - got, _READ_CHUNK))
            if not buf:
                break
            chunks.append(buf)
            got += len(buf)
    except (OSError, OverflowError, ValueError) as exc:
        raise ArchiveIOError(f"Failed to read {what} at offset {pos}: {exc}") from exc
    if got != n:
        raise ArchiveIOError(f"Unexpected end of archive reading {what}: wanted {n} bytes at offset {pos}, got {got}")
    return chunks[0] if len(chunks) == 1 else b"".join(chunks)


def read_header(f: BinaryIO) -> ArchiveHeader:
    """Read the preamble and JSON header without touching the data section."""
    pre = unpack_preamble(_read_at(f, 0, PREAMBLE_SIZE, "preamble"))
    log.debug(
        "preamble: json_size=%d header_size=%d data_offset=%d",
        pre.json_size,
        pre.header_size,
        pre.data_offset,
    )
    raw = _read_at(f, PREAMBLE_SIZE, pre.json_size, "header JSON")
    return ArchiveHeader(preamble=pre, root=decode_header(raw))


class _PayloadLoader:
    def __init__(self, f: BinaryIO, data_offset: int, total: int, progress: Optional[ProgressCallback]):
        self.f = f
        self.data_offset = data_offset
        self.total = total
        self.progress = progress
        self.done = 0

    def load(self, record: Record, path: str) -> Entry:
        if isinstance(record, FileRecord):
            data = _read_at(self.f, self.data_offset + record.offset, record.size, f"file {path}")
            self.done += 1
            if self.progress is not None:
                self.progress(self.done, self.total, path)
            return FileEntry(name=record.name, data=data, integrity=record.integrity)
        return DirEntry(
            name=record.name,
            children={name: self.load(child, join_path(path, name)) for name, child in record.children.items()},
        )


def read_archive(f: BinaryIO, progress: Optional[ProgressCallback] = None) -> "Archive":
    """Decode a whole archive from a seekable binary stream.

    Every file's bytes are read into memory before returning; the stream is
    not referenced afterwards. Reads follow header order, so the stream must
    support random access.
    """
    from .archive import Archive

    header = read_header(f)
    loader = _PayloadLoader(f, header.data_offset, header.root.count(), progress)
    root = loader.load(header.root, "")
    log.debug("read %d files", loader.done)
    return Archive(root)  # type: ignore[arg-type]


def open_archive(path: str, progress: Optional[ProgressCallback] = None) -> "Archive":
    with open(path, "rb") as f:
        return read_archive(f, progress=progress)
