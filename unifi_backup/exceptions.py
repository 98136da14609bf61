"""
Exception hierarchy for unifi-backup.

Every error raised by the package derives from UnifiBackupError so callers
can tell our failures apart from programming errors.
"""


class UnifiBackupError(Exception):
    """Base exception for all unifi-backup errors."""
    pass


class FormatError(UnifiBackupError, ValueError):
    """Raised when a backup filename or a storage URL is malformed."""
    pass


class ConfigError(UnifiBackupError):
    """Raised when configuration cannot be loaded or is invalid."""
    pass


class StorageError(UnifiBackupError):
    """Raised when a storage backend operation fails."""
    pass


class AuthenticationError(StorageError):
    """Raised when a storage session cannot be authenticated."""
    pass


class ControllerError(UnifiBackupError):
    """Raised when the UniFi controller rejects a request."""
    pass


class TransientError(UnifiBackupError):
    """Raised for network or download failures that are worth retrying."""
    pass


class CancellationError(UnifiBackupError):
    """Raised when an operation is cancelled before it completes."""
    pass


class DeadlineExceeded(CancellationError):
    """Raised when an operation runs past its deadline."""
    pass
