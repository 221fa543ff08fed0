"""
Backup module for snaprotate.

This module handles the snapshot rotation including:
- Filesystem backends (local and SSH)
- Retention tiers and slot layout
- The rsync sync port
- The rotation engine
- Execution orchestration and hooks
"""

from .errors import BackupError, ValidationError
from .filesystem import (
    LocalFilesystem,
    RemoteFilesystem,
    create_filesystem,
    FilesystemError,
    DirectoryCreateError,
    DirectoryRemoveError,
    DirectoryMoveError,
    SnapshotCloneError,
    RemoteConnectionError
)
from .tiers import DAILY, WEEKLY, MONTHLY, TierLayout
from .sync import SyncPort, RsyncSync, SyncError
from .hooks import HookError
from .rotation import RotationEngine
from .settings import BackupSettings
from .executor import BackupExecutor, BackupRun, execute_backup

__all__ = [
    'BackupError',
    'ValidationError',
    'LocalFilesystem',
    'RemoteFilesystem',
    'create_filesystem',
    'FilesystemError',
    'DirectoryCreateError',
    'DirectoryRemoveError',
    'DirectoryMoveError',
    'SnapshotCloneError',
    'RemoteConnectionError',
    'DAILY',
    'WEEKLY',
    'MONTHLY',
    'TierLayout',
    'SyncPort',
    'RsyncSync',
    'SyncError',
    'HookError',
    'RotationEngine',
    'BackupSettings',
    'BackupExecutor',
    'BackupRun',
    'execute_backup'
]
