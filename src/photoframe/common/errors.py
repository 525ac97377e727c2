"""
Exception types for the photo frame.
"""


class PhotoFrameError(Exception):
    """Base class for photo frame errors."""
    pass


class PhotoSourceError(PhotoFrameError):
    """Raised when the remote photo list cannot be fetched or is malformed."""
    pass


class PhotoFetchError(PhotoFrameError):
    """Raised when the content of a single photo cannot be downloaded."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class StorageError(PhotoFrameError):
    """Raised by server storage backends when a read or write fails."""
    pass
