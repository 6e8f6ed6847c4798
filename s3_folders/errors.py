from __future__ import annotations
"""Error kinds raised by the folder browser engine."""


class FolderBrowserError(RuntimeError):
    """Base class for failures reported to the caller of an operation."""


class AuthorizationError(FolderBrowserError):
    """Raised when the backend denies or cannot issue a transfer authorization."""


class TransferError(FolderBrowserError):
    """Raised when an authorized upload or download does not succeed."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ListingError(FolderBrowserError):
    """Raised when a listing cannot be fetched or is malformed."""


class BundlingError(FolderBrowserError):
    """Raised when the backend cannot assemble a folder archive."""


class TransferCancelledError(FolderBrowserError):
    """Raised when an upload or download is cancelled by the caller."""
