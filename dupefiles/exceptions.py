"""
Custom exception hierarchy for DupeFiles.

Per-file I/O problems surface as plain OSError and are handled where they
occur (logged and skipped). The types below are the ones that reach callers.
"""


class DupeFilesError(Exception):
    """Base exception for all DupeFiles errors."""
    pass


class StoreUnavailable(DupeFilesError):
    """Raised when the catalog database cannot be opened or initialized."""
    pass


class TransactionFailure(DupeFilesError):
    """Raised when a batched catalog mutation fails and is rolled back."""
    pass


class ConfigurationError(DupeFilesError):
    """Raised for invalid configuration values or operation arguments."""
    pass


class FileHashError(DupeFilesError):
    """Raised when file hashing fails."""

    def __init__(self, path, cause: OSError):
        super().__init__(f"Failed to hash {path}: {cause}")
        self.path = path
        self.cause = cause
