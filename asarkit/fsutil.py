from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .archive import Archive
from .entry import DirEntry, Entry, FileEntry, ProgressCallback
from .errors import EntryNotFound
from .pathutil import check_extract_name, split_path


log = logging.getLogger(__name__)

EXISTS_POLICIES = ("overwrite", "skip", "rename", "fail")


def _fill_dir(d: DirEntry, fs_dir: Path) -> None:
    for child in sorted(fs_dir.iterdir(), key=lambda p: p.name):
        if child.is_symlink() and child.is_dir():
            # Symlinked directories are not followed
            log.debug("skipping symlinked directory %s", child)
            continue
        if child.is_dir():
            _fill_dir(d.add(DirEntry(child.name)), child)  # type: ignore[arg-type]
        elif child.is_file():
            d.add(FileEntry(child.name, child.read_bytes()))
        else:
            log.debug("skipping special file %s", child)


def tree_from_directory(path: str) -> Archive:
    """Read every regular file below ``path`` into a new :class:`Archive`.

    The directory itself becomes the archive root; siblings are inserted in
    name order. Names are kept as they are on disk, including backslashes;
    extract_tree refuses those names because Windows reads them as separators.
    """
    src = Path(path)
    if not src.is_dir():
        raise NotADirectoryError(f"Not a directory: {src}")
    archive = Archive()
    _fill_dir(archive.root, src)
    log.debug("collected %d files from %s", archive.count(), src)
    return archive


@dataclass
class ExtractStats:
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    skipped: int = 0
    renamed: int = 0


def _next_nonconflicting_path(path: str) -> str:
    if not os.path.lexists(path):
        return path
    base_dir = os.path.dirname(path)
    root, ext = os.path.splitext(os.path.basename(path))
    i = 1
    while True:
        candidate = os.path.join(base_dir, f"{root} ({i}){ext}")
        if not os.path.lexists(candidate):
            return candidate
        i += 1


class _Extractor:
    def __init__(self, outdir: str, exists: str, total: int, progress: Optional[ProgressCallback]):
        self.outdir = outdir
        self.exists = exists
        self.total = total
        self.progress = progress
        self.done = 0
        self.stats = ExtractStats()

    def emit(self, arc_path: str, entry: Entry) -> None:
        dst = os.path.join(self.outdir, *arc_path.split("/")) if arc_path else self.outdir
        if isinstance(entry, DirEntry):
            os.makedirs(dst, exist_ok=True)
            if arc_path:
                self.stats.dirs += 1
            for name, child in entry.children.items():
                check_extract_name(name)
                self.emit(f"{arc_path}/{name}" if arc_path else name, child)
            return
        self._write_file(arc_path, dst, entry)

    def _write_file(self, arc_path: str, dst: str, entry: FileEntry) -> None:
        self.done += 1
        if self.progress is not None:
            self.progress(self.done, self.total, arc_path)
        os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
        if os.path.lexists(dst):
            if os.path.isdir(dst) and not os.path.islink(dst):
                raise IsADirectoryError(f"Cannot overwrite directory with file: {dst}")
            if self.exists == "skip":
                self.stats.skipped += 1
                return
            if self.exists == "rename":
                dst = _next_nonconflicting_path(dst)
                self.stats.renamed += 1
            elif self.exists == "fail":
                raise FileExistsError(f"Destination exists: {dst}")
        with open(dst, "wb") as wf:
            wf.write(entry.data)
        self.stats.files += 1
        self.stats.bytes += entry.size


def _select(archive: Archive, paths: Optional[Sequence[str]]) -> List[Tuple[str, Entry]]:
    if not paths:
        return [("", archive.root)]
    out: List[Tuple[str, Entry]] = []
    for p in paths:
        e = archive.resolve(p)
        if e is None:
            raise EntryNotFound(p)
        out.append(("/".join(split_path(p)), e))
    return out


def extract_tree(
    archive: Archive,
    outdir: str,
    *,
    paths: Optional[Sequence[str]] = None,
    exists: str = "overwrite",
    progress: Optional[ProgressCallback] = None,
) -> ExtractStats:
    """Write archive entries below ``outdir``, keeping their archive paths.

    Args:
        archive: Source tree.
        outdir: Destination directory (created when missing).
        paths: Restrict extraction to these archive paths (files or directories).
        exists: What to do when a destination file exists: overwrite, skip,
            rename (append ' (n)' before the extension) or fail.
        progress: Called once per file with (done, total, archive path).

    Raises:
        ValueError: On an unknown policy, or an entry name that is not a
            single path segment (e.g. contains '/' or is '..').
        EntryNotFound: When one of ``paths`` does not exist.
    """
    if exists not in EXISTS_POLICIES:
        raise ValueError(f"Unknown exists policy: {exists!r}")
    targets = _select(archive, paths)
    ex = _Extractor(outdir, exists, sum(e.count() for _, e in targets), progress)
    os.makedirs(outdir, exist_ok=True)
    for arc_path, entry in targets:
        ex.emit(arc_path, entry)
    return ex.stats
