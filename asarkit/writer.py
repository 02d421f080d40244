from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO, Dict, Optional

from .constants import KEY_FILES, KEY_INTEGRITY, KEY_OFFSET, KEY_SIZE, PREAMBLE_SIZE
from .entry import DirEntry, Entry, FileEntry, ProgressCallback
from .errors import ArchiveIOError
from .hashutil import Integrity
from .header import align_header_size, encode_header, pack_preamble
from .pathutil import join_path

if TYPE_CHECKING:
    from .archive import Archive


log = logging.getLogger(__name__)


@dataclass
class PackStats:
    json_size: int
    header_size: int
    data_size: int
    files: int

    @property
    def total_size(self) -> int:
        return PREAMBLE_SIZE + self.header_size + self.data_size


class _Packer:
    """Depth-first walk that lays files out back to back in the data section.

    ``offset`` is the single running position shared by the whole traversal;
    it is never reset when entering a directory.
    """

    def __init__(self, total: int, progress: Optional[ProgressCallback], sort: bool, integrity: bool):
        self.total = total
        self.progress = progress
        self.sort = sort
        self.integrity = integrity
        self.data = io.BytesIO()
        self.offset = 0
        self.done = 0

    def visit(self, entry: Entry, path: str) -> Dict[str, Any]:
        if isinstance(entry, FileEntry):
            return self._visit_file(entry, path)
        return {KEY_FILES: self.visit_children(entry, path)}

    def visit_children(self, d: DirEntry, path: str) -> Dict[str, Any]:
        names = sorted(d.children) if self.sort else list(d.children)
        return {name: self.visit(d.children[name], join_path(path, name)) for name in names}

    def _visit_file(self, entry: FileEntry, path: str) -> Dict[str, Any]:
        record: Dict[str, Any] = {KEY_SIZE: entry.size, KEY_OFFSET: str(self.offset)}
        if self.integrity:
            record[KEY_INTEGRITY] = Integrity.compute(entry.data).to_json()
        elif entry.integrity is not None:
            record[KEY_INTEGRITY] = entry.integrity.to_json()
        self.data.write(entry.data)
        self.offset += entry.size
        self.done += 1
        if self.progress is not None:
            self.progress(self.done, self.total, path)
        return record


def write_archive(
    archive: "Archive",
    f: BinaryIO,
    progress: Optional[ProgressCallback] = None,
    *,
    sort: bool = False,
    integrity: bool = False,
) -> PackStats:
    """Serialize ``archive`` to ``f``: preamble, padded JSON header, data section.

    Args:
        archive: The tree to pack.
        f: Writable binary stream.
        progress: Called once per file with (done, total, archive path).
        sort: Visit siblings in name order instead of insertion order. This
            changes offsets, never the decoded tree.
        integrity: Compute fresh SHA256 integrity records for every file.
            When False, integrity records already held by entries are kept.

    Returns:
        Sizes of the emitted regions.
    """
    packer = _Packer(archive.count(), progress, sort, integrity)
    files = packer.visit_children(archive.root, "")
    header = encode_header(files)
    json_size = len(header)
    header_size = align_header_size(json_size)
    data = packer.data.getvalue()
    log.debug("packing %d files: json_size=%d header_size=%d data=%d", packer.done, json_size, header_size, len(data))
    try:
        f.write(pack_preamble(json_size))
        f.write(header)
        f.write(b"\x00" * (header_size - json_size))
        f.write(data)
    except OSError as exc:
        raise ArchiveIOError(f"Failed to write archive: {exc}") from exc
    return PackStats(json_size=json_size, header_size=header_size, data_size=len(data), files=packer.done)


def pack_bytes(archive: "Archive", *, sort: bool = False, integrity: bool = False) -> bytes:
    buf = io.BytesIO()
    write_archive(archive, buf, sort=sort, integrity=integrity)
    return buf.getvalue()
