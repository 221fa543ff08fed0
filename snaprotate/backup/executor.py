"""
Backup executor - orchestrates one complete backup run.

Workflow:
1. Validate the job (protected destination, remote sides, hook permissions)
2. Run pre-backup commands
3. Open the filesystem backend (SSH session for remote jobs)
4. Verify sources and destination exist
5. Ensure tier roots, rotate the daily slot (includes the rsync transfer)
6. Rotate weekly on Sundays, monthly on the first of the month
7. Close the session and run post-backup commands

Post-backup commands also run when a later step fails, before the error
propagates.
"""

import logging
import socket
import getpass
from datetime import datetime
from typing import Callable, Optional, Tuple

from .errors import ValidationError
from .filesystem import Filesystem, FilesystemError, create_filesystem
from .hooks import run_hooks, hooks_forbidden_for_user, HookError
from .rotation import RotationEngine
from .settings import normalize_path
from .sync import RsyncSync, SyncPort


logger = logging.getLogger(__name__)


class BackupRun:
    """
    Record of one backup run, used for the report.
    """

    def __init__(self, started_at: datetime):
        self.status = 'running'
        self.started_at = started_at
        self.completed_at = None
        self.error_message = None
        self.logs = []
        self.daily_slot = None
        self.weekly_rotated = False
        self.monthly_slot = None
        self.disk_usage_before = None
        self.disk_usage_after = None
        self.run_by = getpass.getuser()
        self.hostname = socket.gethostname()

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'

    def __repr__(self):
        return f"<BackupRun {self.status} started={self.started_at.isoformat()}>"


class BackupExecutor:
    """
    Orchestrates the complete backup workflow for a job.
    """

    def __init__(self, settings, filesystem: Optional[Filesystem] = None,
                 source_filesystem: Optional[Filesystem] = None, sync: Optional[SyncPort] = None,
                 on_start: Optional[Callable[[BackupRun], None]] = None):
        """
        Initialize backup executor.

        Args:
            settings: BackupSettings of the job
            filesystem: Destination backend; chosen from the destination when omitted
            source_filesystem: Backend used to check sources; built from the
                sources, sharing the destination backend when both are local
            sync: Sync port; an RsyncSync built from settings when omitted
            on_start: Called with the run record once the destination is verified
                and the starting disk usage is known
        """
        self.settings = settings
        self.filesystem = filesystem
        self.source_filesystem = source_filesystem
        self.sync = sync
        self.on_start = on_start
        self.run_record = None

    def validate(self):
        """
        Reject jobs that must not touch the filesystem at all.

        Raises:
            ValidationError: If the destination is protected, both sides are
                remote, or hooks would run as root
        """
        destination = self.settings.destination_location
        sources = self.settings.source_locations

        if normalize_path(destination.path) in self.settings.normalized_protected_paths:
            raise ValidationError(f"Refusing to back up into protected path: {destination.path}")

        if destination.is_remote and any(source.is_remote for source in sources):
            raise ValidationError("Source and destination cannot both be remote")

        has_hooks = bool(self.settings.pre_commands or self.settings.post_commands)
        if has_hooks and hooks_forbidden_for_user() and not self.settings.allow_root_hooks:
            raise ValidationError(
                "For protection, pre and post backup commands are not allowed when running as root"
            )

    def execute(self, now: Optional[datetime] = None) -> BackupRun:
        """
        Execute the backup job.

        Args:
            now: Time of the run, defaults to the current local time

        Returns:
            BackupRun record with execution results

        Raises:
            BackupError: Any fatal error, after post-backup commands ran
        """
        now = now or datetime.now()
        self.run_record = BackupRun(started_at=now)

        try:
            self.validate()
        except ValidationError as e:
            self._fail(e)
            raise

        self._log(f"Starting backup of {', '.join(self.settings.sources)} to {self.settings.destination}")

        try:
            run_hooks(self.settings.pre_commands, 'pre')
            self._execute_workflow(now)
        except Exception as e:
            self._fail(e)
            self._run_post_hooks_after_failure()
            raise

        try:
            run_hooks(self.settings.post_commands, 'post')
        except HookError as e:
            self._fail(e)
            raise

        self.run_record.status = 'success'
        self.run_record.completed_at = datetime.now()
        self._log("Backup completed successfully")
        return self.run_record

    def _execute_workflow(self, now: datetime):
        """Execute the main backup workflow steps."""
        destination = self.settings.destination_location
        sources = self.settings.source_locations

        filesystem = self.filesystem or create_filesystem(destination, self.settings)
        source_filesystem = self.source_filesystem
        if source_filesystem is None:
            # Sources are checked on their own side of the connection
            if sources[0].is_remote or destination.is_remote:
                source_filesystem = create_filesystem(sources[0], self.settings)
            else:
                source_filesystem = filesystem

        sync = self.sync or RsyncSync(
            rsync_binary=self.settings.rsync_binary,
            options=self.settings.rsync_options,
            ssh_port=self.settings.ssh_port,
            ssh_key_file=self.settings.ssh_key_file,
            remote=destination.is_remote or sources[0].is_remote,
            tolerate_vanished=self.settings.tolerate_vanished
        )

        try:
            filesystem.connect()
            if source_filesystem is not filesystem:
                source_filesystem.connect()

            # Step 1: Everything must exist before any mutation
            self._log("Checking for sources and base destination directory")
            for source in sources:
                if not source_filesystem.exists(source.path):
                    raise ValidationError(f"Source does not exist: {source.qualified()}")
            if not filesystem.is_dir(destination.path):
                raise ValidationError(f"Destination dir does not exist: {destination.qualified()}")

            self.run_record.disk_usage_before = self._disk_usage(filesystem, destination.path)
            if self.on_start:
                self.on_start(self.run_record)

            engine = RotationEngine(filesystem, sync, self.settings)

            # Step 2: Tier roots
            engine.ensure_tier_roots()

            # Step 3: Daily snapshot and transfer
            self._log("Rotating daily snapshot")
            self.run_record.daily_slot = engine.rotate_daily(now)
            self._log(f"Daily snapshot refreshed: {self.run_record.daily_slot}")

            # Step 4: Weekly ring (Sundays)
            self.run_record.weekly_rotated = engine.rotate_weekly(now)
            if self.run_record.weekly_rotated:
                self._log("Weekly snapshots rotated")

            # Step 5: Monthly slot (first of the month)
            self.run_record.monthly_slot = engine.rotate_monthly(now)
            if self.run_record.monthly_slot:
                self._log(f"Monthly snapshot stored for {self.run_record.monthly_slot}")

            self.run_record.disk_usage_after = self._disk_usage(filesystem, destination.path)
        finally:
            if source_filesystem is not filesystem:
                source_filesystem.close()
            filesystem.close()

    def _disk_usage(self, filesystem: Filesystem, path: str) -> Optional[Tuple[int, int]]:
        try:
            return filesystem.disk_usage(path)
        except (OSError, FilesystemError) as e:
            self._log(f"Warning: Failed to read disk usage for {path}: {e}")
            return None

    def _run_post_hooks_after_failure(self):
        if not self.settings.post_commands:
            return
        self._log("Fatal error reported, running post backup system commands before exiting")
        try:
            run_hooks(self.settings.post_commands, 'post')
        except HookError as e:
            self._log(f"Post backup system command failed after fatal error: {e}")

    def _fail(self, error: Exception):
        self.run_record.status = 'failed'
        self.run_record.completed_at = datetime.now()
        self.run_record.error_message = str(error)
        self._log(f"Backup failed: {error}", level=logging.ERROR)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp to the run record.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        self.run_record.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def execute_backup(settings, now: Optional[datetime] = None,
                   on_start: Optional[Callable[[BackupRun], None]] = None) -> BackupRun:
    """
    Execute a backup job described by settings.

    Args:
        settings: BackupSettings of the job
        now: Time of the run, defaults to the current local time
        on_start: Optional callback, see BackupExecutor

    Returns:
        BackupRun record with execution results

    Raises:
        BackupError: If the run fails
    """
    executor = BackupExecutor(settings, on_start=on_start)
    return executor.execute(now)
