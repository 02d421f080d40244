from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .constants import INTEGRITY_ALGORITHM, INTEGRITY_BLOCK_SIZE


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def block_hashes(data: bytes, block_size: int = INTEGRITY_BLOCK_SIZE) -> List[str]:
    """Hash ``data`` in fixed-size blocks.

    The trailing partial block is always hashed, even when it is empty, so a
    zero-length file still yields one block digest.
    """
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    full = len(data) // block_size
    out = [sha256_hex(data[i * block_size:(i + 1) * block_size]) for i in range(full)]
    out.append(sha256_hex(data[full * block_size:]))
    return out


@dataclass
class Integrity:
    algorithm: str
    hash: str
    block_size: int
    blocks: List[str] = field(default_factory=list)

    @classmethod
    def compute(cls, data: bytes, block_size: int = INTEGRITY_BLOCK_SIZE) -> "Integrity":
        return cls(
            algorithm=INTEGRITY_ALGORITHM,
            hash=sha256_hex(data),
            block_size=block_size,
            blocks=block_hashes(data, block_size),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "hash": self.hash,
            "blockSize": self.block_size,
            "blocks": list(self.blocks),
        }

    def matches(self, data: bytes) -> bool:
        if self.algorithm != INTEGRITY_ALGORITHM:
            return False
        if sha256_hex(data) != self.hash:
            return False
        return block_hashes(data, self.block_size) == self.blocks
