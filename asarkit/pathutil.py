from __future__ import annotations

from typing import List


def path_segments(p: str) -> List[str]:
    """Split an archive path on forward slashes, dropping empty and '.' segments."""
    return [q for q in p.split("/") if q not in ("", ".")]


def split_path(p: str) -> List[str]:
    """Split an archive path that is about to create or remove entries.

    Rules:
    - Segments are separated by forward slashes only
    - Leading/trailing slashes, empty and '.' segments are dropped
    - '..' segments are rejected
    """
    parts = path_segments(p)
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return parts


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def check_entry_name(name: str) -> str:
    """Reject names that cannot be a single segment of an archive path."""
    if name in ("", ".", ".."):
        raise ValueError(f"Invalid entry name: {name!r}")
    if "/" in name or "\x00" in name:
        raise ValueError(f"Entry name may not contain a path separator: {name!r}")
    return name


def check_extract_name(name: str) -> str:
    """Like check_entry_name, and also refuse backslashes, a separator on Windows."""
    check_entry_name(name)
    if "\\" in name:
        raise ValueError(f"Entry name may not contain a path separator: {name!r}")
    return name
