"""
Exception hierarchy shared by the backup modules.

Every fatal condition raised while running a job derives from BackupError so
the command line and scheduler can report it uniformly.
"""


class BackupError(Exception):
    """Base class for all fatal backup errors."""
    pass


class ValidationError(BackupError):
    """Raised when a job is rejected before any filesystem mutation."""
    pass
