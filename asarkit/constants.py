import struct


# Preamble: four little-endian u32 fields
#   [0]  size of the size field (always 4)
#   [4]  header_size + 8
#   [8]  header_size + 4
#   [12] json_size
PREAMBLE_STRUCT = struct.Struct("<IIII")
PREAMBLE_SIZE = PREAMBLE_STRUCT.size  # 16
PREAMBLE_MAGIC = 4

# The JSON text is zero-padded to a multiple of this many bytes
HEADER_ALIGN = 4

# Header JSON keys
KEY_FILES = "files"
KEY_SIZE = "size"
KEY_OFFSET = "offset"
KEY_INTEGRITY = "integrity"

# Offsets are carried as decimal strings of an unsigned 64-bit value
MAX_OFFSET = (1 << 64) - 1

# Integrity records (same layout Electron writes)
INTEGRITY_ALGORITHM = "SHA256"
INTEGRITY_BLOCK_SIZE = 4 * 1024 * 1024  # 4 MiB

DEFAULT_BACKUP_SUFFIX = ".backup"
