class AsarError(Exception):
    """Base class for asarkit-specific errors."""


# Header related
class InvalidJson(AsarError):
    """The header bytes are not well-formed JSON."""


class InvalidJsonFormat(AsarError):
    """The header JSON is well formed but does not follow the archive schema."""


class InvalidUTF8(AsarError):
    """A text field could not be decoded as UTF-8."""


# I/O
class ArchiveIOError(AsarError, OSError):
    """A read, seek or write against the backing stream failed or came up short."""


# Lookup
class EntryNotFound(AsarError, LookupError):
    """No entry exists at the requested archive path."""

    def __init__(self, path: str):
        super().__init__(f"No such file or directory in archive: {path!r}")
        self.path = path


class BackupMissing(AsarError):
    """No backup copy exists next to the archive being restored."""
