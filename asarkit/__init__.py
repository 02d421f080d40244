"""
asarkit: read and write asar archives.

An asar archive is a 16-byte size preamble, a JSON directory header padded to
a 4-byte boundary, and the concatenated contents of every file. Features:

- Bit-exact preamble/header codec compatible with existing archives.
- In-memory tree model (directories and files) with path lookup and
  depth-first iteration.
- Packing with deterministic offsets, optional name-ordered layout and
  optional SHA256 integrity records.
- Filesystem helpers to build a tree from a directory and extract one back.
- In-place rewrite with a backup of the original, and restore from backup.
- A small `asar` CLI configured through a TOML user config.
"""

__version__ = "0.1"

__all__ = [
    "archive",
    "entry",
    "header",
    "reader",
    "writer",
    "fsutil",
    "rewrite",
    "config",
    "errors",
]

# Programmatic API: asarkit.archive.Archive (read/open/pack/resolve/walk),
# asarkit.reader.read_header for header-only inspection, and the CLI
# functions in asarkit.cli (cmd_pack/cmd_extract) which take normal parameters.
