"""Exception types raised by the archive library."""

from __future__ import annotations


class LibraryError(Exception):
    """Base class for all library errors."""


class NotInitializedError(LibraryError):
    """Raised when the library is used before ``init()`` has been started or after it failed."""


class NotInLibraryError(LibraryError):
    def __init__(self, url: str):
        super().__init__(f"Archive not in library: {url}")
        self.url = url


class NameResolutionError(LibraryError):
    def __init__(self, name: str, reason: str = ""):
        message = f"Could not resolve name: {name}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.name = name


class ArchiveTimeoutError(LibraryError):
    """Raised when an archive does not become ready within the configured bound."""

    def __init__(self, address: str, timeout: float):
        super().__init__(f"Archive {address} not ready after {timeout:g}s")
        self.address = address
        self.timeout = timeout


class MigrationError(LibraryError):
    pass


class IndexUnavailableError(LibraryError):
    pass


class ConfigError(LibraryError):
    pass
