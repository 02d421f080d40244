from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .archive import Archive
from .constants import DEFAULT_BACKUP_SUFFIX
from .entry import FileEntry, ProgressCallback
from .errors import ArchiveIOError, AsarError, BackupMissing
from .reader import open_archive
from .writer import PackStats, write_archive


log = logging.getLogger(__name__)


@dataclass
class SaveResult:
    stats: PackStats
    backup_path: Optional[Path] = None
    backup_created: bool = False


def _file_snapshot(archive: Archive) -> List[Tuple[str, bytes]]:
    snap = [(p, e.data) for p, e in archive.walk() if isinstance(e, FileEntry)]
    snap.sort(key=lambda t: t[0])
    return snap


def save_archive(
    archive: Archive,
    path: str,
    *,
    backup_suffix: Optional[str] = DEFAULT_BACKUP_SUFFIX,
    sort: bool = False,
    integrity: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> SaveResult:
    """
    Writes ``archive`` to ``path`` through a temporary file in the same
    directory, re-reads the temporary file to make sure it decodes to the same
    files, then swaps it into place with ``os.replace``.

    When ``backup_suffix`` is set and ``path`` already exists, the previous
    archive is kept as ``path + backup_suffix``. An existing backup is never
    overwritten, so the first backup taken is always the pristine original.

    Returns:
        The pack statistics and the backup location, if any.
    """
    dst = Path(path)
    archive_dir = dst.parent
    fd, temp_archive = tempfile.mkstemp(prefix="asar-save-", suffix=dst.suffix or ".asar", dir=str(archive_dir))
    temp_path = Path(temp_archive)
    try:
        with os.fdopen(fd, "wb") as f:
            stats = write_archive(archive, f, progress, sort=sort, integrity=integrity)
            f.flush()
            os.fsync(f.fileno())
        if _file_snapshot(open_archive(str(temp_path))) != _file_snapshot(archive):
            raise ArchiveIOError(f"Written archive does not read back identically: {temp_path}")
    except (AsarError, OSError, ValueError):
        temp_path.unlink(missing_ok=True)
        raise

    result = SaveResult(stats=stats)
    moved_original = False
    if backup_suffix and dst.exists():
        backup_path = dst.with_name(dst.name + backup_suffix)
        result.backup_path = backup_path
        if backup_path.exists():
            log.debug("backup %s already exists; leaving it untouched", backup_path)
        else:
            os.replace(str(dst), str(backup_path))
            moved_original = True
            result.backup_created = True
    try:
        os.replace(str(temp_path), str(dst))
    except OSError:
        if moved_original and result.backup_path is not None and not dst.exists():
            os.replace(str(result.backup_path), str(dst))
            result.backup_created = False
        temp_path.unlink(missing_ok=True)
        raise
    log.debug("saved %s (%d bytes)", dst, stats.total_size)
    return result


def restore_backup(path: str, backup_suffix: str = DEFAULT_BACKUP_SUFFIX) -> Path:
    """Copy ``path + backup_suffix`` back over ``path``; the backup is kept.

    Raises:
        BackupMissing: When there is no backup to restore.
    """
    dst = Path(path)
    backup_path = dst.with_name(dst.name + backup_suffix)
    if not backup_path.is_file():
        raise BackupMissing(f"No backup found at {backup_path}")
    if dst.exists() and dst.is_dir():
        raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), str(dst))
    fd, temp_archive = tempfile.mkstemp(prefix="asar-restore-", dir=str(dst.parent))
    os.close(fd)
    try:
        shutil.copy2(str(backup_path), temp_archive)
        os.replace(temp_archive, str(dst))
    except OSError:
        Path(temp_archive).unlink(missing_ok=True)
        raise
    log.debug("restored %s from %s", dst, backup_path)
    return backup_path
