"""Exception types raised by the mdreader core."""

from pathlib import Path


class ReaderError(Exception):
    """Base class for errors surfaced to the host application."""


class DocumentReadError(ReaderError):
    """Raised when a document cannot be read from disk.

    Args:
        path: Location of the document.
        reason: Human readable description of the failure.
    """

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not read {path}: {reason}")


class DocumentTooLargeError(ReaderError):
    """Raised when a document exceeds the configured size limit."""

    def __init__(self, path: Path, size: int, limit: int):
        self.path = path
        self.size = size
        self.limit = limit
        super().__init__(
            f"{path} is {size / (1024 * 1024):.2f} MB, which exceeds the "
            f"maximum supported size of {limit / (1024 * 1024):.0f} MB"
        )


class UnknownExtensionError(KeyError):
    """Raised when an extension name has not been registered."""


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""
