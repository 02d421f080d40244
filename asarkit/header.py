from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .constants import (
    PREAMBLE_STRUCT,
    PREAMBLE_SIZE,
    PREAMBLE_MAGIC,
    HEADER_ALIGN,
    KEY_FILES,
    KEY_SIZE,
    KEY_OFFSET,
    KEY_INTEGRITY,
    MAX_OFFSET,
)
from .errors import ArchiveIOError, InvalidJson, InvalidJsonFormat, InvalidUTF8
from .hashutil import Integrity


log = logging.getLogger(__name__)

# Accepted spelling of an unsigned decimal offset; leading zeros are not significant
_OFFSET_RE = re.compile(r"\+?0*([0-9]{1,20})\Z")


@dataclass(frozen=True)
class Preamble:
    size_field: int
    header_pickle_size: int  # header_size + 8
    header_payload_size: int  # header_size + 4
    json_size: int

    @property
    def header_size(self) -> int:
        return self.header_pickle_size - 8

    @property
    def data_offset(self) -> int:
        """Absolute position of the first byte of the data section."""
        return 8 + self.header_pickle_size


@dataclass
class FileRecord:
    name: str
    size: int
    offset: int
    integrity: Optional[Integrity] = None

    def count(self) -> int:
        return 1


@dataclass
class DirRecord:
    name: str
    children: Dict[str, "Record"] = field(default_factory=dict)

    def count(self) -> int:
        return sum(c.count() for c in self.children.values())


Record = Union[FileRecord, DirRecord]


def align_header_size(json_size: int) -> int:
    return json_size + ((HEADER_ALIGN - json_size % HEADER_ALIGN) % HEADER_ALIGN)


def pack_preamble(json_size: int) -> bytes:
    header_size = align_header_size(json_size)
    return PREAMBLE_STRUCT.pack(PREAMBLE_MAGIC, header_size + 8, header_size + 4, json_size)


def unpack_preamble(raw: bytes) -> Preamble:
    if len(raw) != PREAMBLE_SIZE:
        raise ArchiveIOError(f"Archive preamble too short: expected {PREAMBLE_SIZE} bytes, got {len(raw)}")
    size_field, pickle_size, payload_size, json_size = PREAMBLE_STRUCT.unpack(raw)
    return Preamble(size_field, pickle_size, payload_size, json_size)


def encode_header(files: Dict[str, Any]) -> bytes:
    """Serialize the ``{"files": ...}`` header object as compact UTF-8 JSON."""
    text = json.dumps({KEY_FILES: files}, separators=(",", ":"), ensure_ascii=False)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidUTF8(f"Header contains a name that cannot be encoded as UTF-8: {exc}") from exc


def _is_json_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_offset(name: str, obj: Dict[str, Any]) -> int:
    if KEY_OFFSET not in obj:
        raise InvalidJsonFormat(f"The 'offset' field in file {name} is not present")
    raw = obj[KEY_OFFSET]
    if not isinstance(raw, str):
        raise InvalidJsonFormat(f"The 'offset' field is present in file entry {name}, but is not a string")
    m = _OFFSET_RE.match(raw)
    if m is None or int(m.group(1)) > MAX_OFFSET:
        raise InvalidJsonFormat(
            f"The 'offset' field is present and is a string in file {name}, "
            f"but could not be parsed as an unsigned 64-bit integer: {raw[:40]!r}"
        )
    return int(m.group(1))


def parse_integrity(name: str, value: Any) -> Integrity:
    if not isinstance(value, dict):
        raise InvalidJsonFormat(f"The 'integrity' field of file {name} is not an object")
    algorithm = value.get("algorithm")
    digest = value.get("hash")
    block_size = value.get("blockSize")
    blocks = value.get("blocks")
    if not isinstance(algorithm, str) or not isinstance(digest, str):
        raise InvalidJsonFormat(f"The 'integrity' field of file {name} lacks a string 'algorithm' or 'hash'")
    if not isinstance(block_size, int) or isinstance(block_size, bool) or block_size <= 0:
        raise InvalidJsonFormat(f"The 'integrity' field of file {name} has an invalid 'blockSize'")
    if not isinstance(blocks, list) or not all(isinstance(b, str) for b in blocks):
        raise InvalidJsonFormat(f"The 'integrity' field of file {name} has an invalid 'blocks' list")
    return Integrity(algorithm=algorithm, hash=digest, block_size=block_size, blocks=list(blocks))


def parse_record(name: str, obj: Any) -> Record:
    """Decode one header entry: file shape first, then directory shape."""
    if not isinstance(obj, dict):
        raise InvalidJsonFormat(f"Value {name} in the header is not a JSON object")

    size = obj.get(KEY_SIZE)
    if _is_json_number(size):
        if not isinstance(size, int) or size < 0:
            raise InvalidJsonFormat(f"The 'size' field of file {name} is not a non-negative integer: {size!r}")
        offset = parse_offset(name, obj)
        integrity = None
        if KEY_INTEGRITY in obj:
            integrity = parse_integrity(name, obj[KEY_INTEGRITY])
        return FileRecord(name=name, size=size, offset=offset, integrity=integrity)

    if KEY_FILES not in obj:
        raise InvalidJsonFormat(f"The 'files' object for directory {name} does not exist")
    files = obj[KEY_FILES]
    if not isinstance(files, dict):
        raise InvalidJsonFormat(f"The 'files' field exists for directory {name}, but is not an object")
    return DirRecord(name=name, children={k: parse_record(k, v) for k, v in files.items()})


def decode_header(raw: bytes) -> DirRecord:
    """Parse header JSON bytes into a nameless root ``DirRecord``."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidUTF8(f"Header JSON is not valid UTF-8: {exc}") from exc
    try:
        header = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidJson(f"Invalid header JSON: {exc}") from exc

    if not isinstance(header, dict):
        raise InvalidJsonFormat("The JSON header is not an object")
    if KEY_FILES not in header:
        raise InvalidJsonFormat("The 'files' object in the JSON header is not present")
    files = header[KEY_FILES]
    if not isinstance(files, dict):
        raise InvalidJsonFormat("The 'files' field is present in the JSON header, but is not an object")

    root = DirRecord(name="", children={k: parse_record(k, v) for k, v in files.items()})
    log.debug("decoded header: %d top-level entries, %d files", len(root.children), root.count())
    return root
