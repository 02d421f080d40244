from __future__ import annotations

import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from .constants import DEFAULT_BACKUP_SUFFIX


CONFIG_ENV = "ASARKIT_CONFIG"


@dataclass
class Config:
    """User options read from ``config.toml``; every key is optional."""

    # Show per-file progress while packing/extracting
    progress: bool = True
    # Keep a copy of an archive before it is rewritten in place
    make_backup: bool = True
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX
    # Pack siblings in name order for reproducible offsets
    sort_entries: bool = False
    # Emit SHA256 integrity records when packing
    integrity: bool = False


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(env)
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / "asarkit" / "config.toml"


def _apply(cfg: Config, data: Dict[str, Any], source: Path) -> Config:
    known = {f.name for f in fields(Config)}
    for key, value in data.items():
        if key not in known:
            print(f"Warning: unknown config key '{key}' in {source}", file=sys.stderr)
            continue
        expected = type(getattr(cfg, key))
        if type(value) is not expected:
            print(
                f"Warning: config key '{key}' in {source} should be {expected.__name__}; using default",
                file=sys.stderr,
            )
            continue
        setattr(cfg, key, value)
    return cfg


def load_config(path: Optional[str] = None) -> Config:
    """Load options from ``path`` (or the default location).

    A missing file gives the defaults. A file that cannot be read or parsed
    also gives the defaults, with a warning on stderr.
    """
    p = Path(path) if path else default_config_path()
    if not p.exists():
        return Config()
    try:
        data = toml.load(str(p))
    except (OSError, toml.TomlDecodeError) as exc:
        print(f"Warning: failed to read config {p}: {exc}; using defaults", file=sys.stderr)
        return Config()
    return _apply(Config(), data, p)


def save_config(cfg: Config, path: Optional[str] = None) -> Path:
    p = Path(path) if path else default_config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as fh:
        toml.dump(asdict(cfg), fh)
    return p
