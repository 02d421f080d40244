from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import toml

from asarkit.archive import Archive
from asarkit.config import Config, default_config_path, load_config, save_config
from asarkit.constants import DEFAULT_BACKUP_SUFFIX
from asarkit.entry import ProgressCallback
from asarkit.errors import AsarError, BackupMissing, EntryNotFound
from asarkit.fsutil import EXISTS_POLICIES, extract_tree, tree_from_directory
from asarkit.header import DirRecord, FileRecord, Record
from asarkit.reader import read_header
from asarkit.rewrite import restore_backup, save_archive


def _progress_printer(verb: str, quiet: bool) -> Optional[ProgressCallback]:
    if quiet:
        return None

    def _report(done: int, total: int, path: str) -> None:
        pct = done * 100.0 / (total or 1)
        print(f" {pct:6.2f}% {verb}: {path}")

    return _report


def _walk_records(d: DirRecord, parent: str = "") -> Iterator[Tuple[str, Record]]:
    for name, rec in d.children.items():
        path = f"{parent}/{name}" if parent else name
        yield path, rec
        if isinstance(rec, DirRecord):
            yield from _walk_records(rec, path)


def _mib(n: int) -> float:
    return n / (1024.0 * 1024.0)


def cmd_pack(
    src: str,
    output: str,
    *,
    sort: bool = False,
    integrity: bool = False,
    backup_suffix: Optional[str] = DEFAULT_BACKUP_SUFFIX,
    quiet: bool = False,
) -> bool:
    """Pack a directory into a new archive.

    Args:
        src: Directory whose contents become the archive root.
        output: Path of the archive to write. If it exists it is replaced,
            keeping a backup when backup_suffix is set.
        sort: Lay out siblings in name order.
        integrity: Write SHA256 integrity records.
        backup_suffix: Suffix for the backup of a replaced archive; None disables it.
        quiet: Suppress per-file progress lines.
    """
    t0 = time.time()
    archive = tree_from_directory(src)
    result = save_archive(
        archive,
        output,
        backup_suffix=backup_suffix,
        sort=sort,
        integrity=integrity,
        progress=_progress_printer("packing", quiet),
    )
    if result.backup_created:
        print(f"Backup written to: {result.backup_path}")
    elif result.backup_path is not None:
        print(f"Backup {result.backup_path} already exists, not overwriting it")
    dt = max(0.000001, time.time() - t0)
    print(
        f"Done: {result.stats.files} files; header {result.stats.json_size} bytes; "
        f"{_mib(result.stats.data_size):.2f} MiB data in {dt:.1f}s"
    )
    return True


def cmd_extract(
    archive: str,
    *,
    outdir: str = ".",
    paths: Optional[List[str]] = None,
    exists: str = "overwrite",
    quiet: bool = False,
) -> bool:
    """Extract files from an archive to a directory.

    Args:
        archive: Path to an archive.
        outdir: Destination directory.
        paths: Specific archive paths (files or directories) to extract.
        exists: Policy for existing destination files.
        quiet: Suppress per-file progress lines.
    """
    t0 = time.time()
    ar = Archive.open(archive)
    stats = extract_tree(ar, outdir, paths=paths, exists=exists, progress=_progress_printer("extracting", quiet))
    dt = max(0.000001, time.time() - t0)
    print(
        f"Done: extracted {stats.files} files ({_mib(stats.bytes):.2f} MiB) in {dt:.1f}s; "
        f"dirs={stats.dirs} skipped={stats.skipped} renamed={stats.renamed}"
    )
    return True


def cmd_list(archive: str) -> bool:
    """List archive entries from the header alone; file contents are not read.

    Args:
        archive: Path to an archive.
    """
    with open(archive, "rb") as f:
        header = read_header(f)
    for path, rec in _walk_records(header.root):
        if isinstance(rec, FileRecord):
            print(f"file\t{rec.size}\t{path}")
        else:
            print(f"dir\t-\t{path}")
    return True


def cmd_info(archive: str) -> bool:
    """Show archive layout information.

    Args:
        archive: Path to an archive.
    """
    with open(archive, "rb") as f:
        header = read_header(f)
    records = [rec for _, rec in _walk_records(header.root)]
    files = [r for r in records if isinstance(r, FileRecord)]
    print(f"Archive: {archive}")
    print(f"  JSON size: {header.json_size}")
    print(f"  Header size: {header.header_size}")
    print(f"  Data offset: {header.data_offset}")
    print(f"  Entries: {len(records)}")
    print(f"    Files: {len(files)}")
    print(f"    Directories: {len(records) - len(files)}")
    print(f"  Data size: {sum(r.size for r in files)}")
    print(f"  Integrity records: {sum(1 for r in files if r.integrity is not None)}")
    return True


def cmd_cat(archive: str, path: str) -> bool:
    """Write the content of one archived file to stdout.

    Args:
        archive: Path to an archive.
        path: Slash-delimited path of the file inside the archive.
    """
    ar = Archive.open(archive)
    data = ar.read_file(path)
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()
    return True


def cmd_verify(archive: str) -> bool:
    """Decode every entry and check any integrity records.

    Args:
        archive: Path to an archive.

    Returns:
        True when all files read back and every integrity record matches.
    """
    ar = Archive.open(archive)
    bad = ar.verify()
    for path in bad:
        print(f"integrity mismatch: {path}", file=sys.stderr)
    print("OK" if not bad else "FAIL")
    return not bad


def cmd_repack(
    archive: str,
    *,
    sort: bool = False,
    integrity: bool = False,
    backup_suffix: Optional[str] = DEFAULT_BACKUP_SUFFIX,
    quiet: bool = False,
) -> bool:
    """Decode an archive and write it back in place.

    Args:
        archive: Path to the archive to rewrite.
        sort: Lay out siblings in name order.
        integrity: Recompute SHA256 integrity records.
        backup_suffix: Suffix for the backup of the original; None disables it.
        quiet: Suppress per-file progress lines.
    """
    ar = Archive.open(archive)
    result = save_archive(
        ar,
        archive,
        backup_suffix=backup_suffix,
        sort=sort,
        integrity=integrity,
        progress=_progress_printer("packing", quiet),
    )
    if result.backup_created:
        print(f"Backup written to: {result.backup_path}")
    print(f"Rewrote {archive}: {result.stats.files} files, {result.stats.total_size} bytes")
    return True


def cmd_restore(archive: str, *, backup_suffix: str = DEFAULT_BACKUP_SUFFIX) -> bool:
    """Replace an archive with its backup copy.

    Args:
        archive: Path to the archive to restore.
        backup_suffix: Suffix the backup was written with.
    """
    backup_path = restore_backup(archive, backup_suffix)
    print(f"Restored {archive} from {backup_path}")
    return True


def cmd_config(path: Optional[str] = None, *, init: bool = False) -> bool:
    """Print the effective configuration, or write a default file.

    Args:
        path: Config file location; defaults to the user config path.
        init: Create the file with default values when it does not exist.
    """
    target = path or str(default_config_path())
    if init:
        if Path(target).exists():
            print(f"Config file {target} already exists")
        else:
            print(f"Wrote default config to {save_config(Config(), target)}")
        return True
    cfg = load_config(target)
    print(f"# {target}")
    print(toml.dumps(asdict(cfg)), end="")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="asar",
        description="Pack, inspect and extract asar archives",
    )
    ap.add_argument("--config", help="Config file (default: $ASARKIT_CONFIG or ~/.config/asarkit/config.toml)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Pack a directory into an archive")
    ap_pack.add_argument("src", help="Source directory")
    ap_pack.add_argument("output", help="Output archive path")
    ap_pack.add_argument("--sort", action="store_true", help="Lay out entries in name order")
    ap_pack.add_argument("--integrity", action="store_true", help="Write SHA256 integrity records")
    ap_pack.add_argument("--no-backup", action="store_true", help="Do not keep a backup of a replaced archive")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_extract = sub.add_parser("extract", help="Extract files")
    ap_extract.add_argument("archive", help="Archive path")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("paths", nargs="*", help="Specific archive paths to extract (files or directories)")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    ap_extract.add_argument(
        "--exists",
        choices=list(EXISTS_POLICIES),
        default="overwrite",
        help=(
            "What to do if a destination file exists: overwrite, skip, "
            "rename (append ' (n)' before extension), or fail. Default: overwrite"
        ),
    )

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_info = sub.add_parser("info", help="Show archive information")
    ap_info.add_argument("archive", help="Archive path")

    ap_cat = sub.add_parser("cat", help="Print one archived file to stdout")
    ap_cat.add_argument("archive", help="Archive path")
    ap_cat.add_argument("path", help="Path inside the archive")

    ap_verify = sub.add_parser("verify", help="Read every file and check integrity records")
    ap_verify.add_argument("archive", help="Archive path")

    ap_repack = sub.add_parser("repack", help="Rewrite an archive in place, keeping a backup")
    ap_repack.add_argument("archive", help="Archive path")
    ap_repack.add_argument("--sort", action="store_true", help="Lay out entries in name order")
    ap_repack.add_argument("--integrity", action="store_true", help="Recompute SHA256 integrity records")
    ap_repack.add_argument("--no-backup", action="store_true", help="Do not keep a backup of the original")
    ap_repack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_restore = sub.add_parser("restore", help="Restore an archive from its backup")
    ap_restore.add_argument("archive", help="Archive path")

    ap_config = sub.add_parser("config", help="Show the effective configuration")
    ap_config.add_argument("--init", action="store_true", help="Write a default config file if none exists")

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    cfg = load_config(args.config)

    def _backup_suffix(no_backup: bool) -> Optional[str]:
        if no_backup or not cfg.make_backup:
            return None
        return cfg.backup_suffix

    try:
        if args.cmd == "pack":
            cmd_pack(
                args.src,
                args.output,
                sort=args.sort or cfg.sort_entries,
                integrity=args.integrity or cfg.integrity,
                backup_suffix=_backup_suffix(args.no_backup),
                quiet=args.quiet or not cfg.progress,
            )
        elif args.cmd == "extract":
            cmd_extract(
                args.archive,
                outdir=args.outdir,
                paths=args.paths,
                exists=args.exists,
                quiet=args.quiet or not cfg.progress,
            )
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "info":
            cmd_info(args.archive)
        elif args.cmd == "cat":
            cmd_cat(args.archive, args.path)
        elif args.cmd == "verify":
            sys.exit(0 if cmd_verify(args.archive) else 1)
        elif args.cmd == "repack":
            cmd_repack(
                args.archive,
                sort=args.sort or cfg.sort_entries,
                integrity=args.integrity or cfg.integrity,
                backup_suffix=_backup_suffix(args.no_backup),
                quiet=args.quiet or not cfg.progress,
            )
        elif args.cmd == "restore":
            cmd_restore(args.archive, backup_suffix=cfg.backup_suffix)
        elif args.cmd == "config":
            cmd_config(args.config, init=args.init)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except EntryNotFound as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except BackupMissing as e:
        print(f"Error: {e}. Nothing to restore.", file=sys.stderr)
        sys.exit(2)
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (AsarError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
