"""
Sync port: refreshes a snapshot slot from the live source.

The engine only needs a success or failure outcome; RsyncSync is the
production adapter that shells out to rsync.
"""

import logging
import shlex
import subprocess
from typing import List, Optional, Sequence

from .errors import BackupError


logger = logging.getLogger(__name__)

# rsync: "Partial transfer due to vanished source files"
RSYNC_VANISHED_EXIT = 24


class SyncError(BackupError):
    """Raised when the data mover reports failure."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class SyncPort:
    """
    Interface the rotation engine uses to refresh a slot.
    """

    def sync(self, sources: Sequence[str], destination: str, excludes: Sequence[str] = ()):
        """
        Mirror sources into destination.

        Afterwards destination holds exactly the source files minus the
        excluded patterns; files deleted or excluded at the source are
        removed from destination even if they arrived there via hardlink.

        Args:
            sources: Source paths, already qualified for the transport
            destination: Destination slot, already qualified for the transport
            excludes: Exclude patterns

        Raises:
            SyncError: If the transfer fails
        """
        raise NotImplementedError


class RsyncSync(SyncPort):
    """
    Mirror sync implemented by the rsync binary.
    """

    def __init__(self, rsync_binary: str = 'rsync', options: Sequence[str] = (),
                 ssh_port: Optional[int] = None, ssh_key_file: Optional[str] = None,
                 remote: bool = False, tolerate_vanished: bool = False):
        """
        Args:
            rsync_binary: rsync executable
            options: Base rsync options (archive, delete, ...)
            ssh_port: SSH port for remote transfers
            ssh_key_file: SSH identity file for remote transfers
            remote: Whether either side of the transfer is remote
            tolerate_vanished: Downgrade exit code 24 to a warning
        """
        self.rsync_binary = rsync_binary
        self.options = list(options)
        self.ssh_port = ssh_port
        self.ssh_key_file = ssh_key_file
        self.remote = remote
        self.tolerate_vanished = tolerate_vanished

    def build_command(self, sources: Sequence[str], destination: str, excludes: Sequence[str] = ()) -> List[str]:
        cmd = [self.rsync_binary] + self.options

        if self.remote and (self.ssh_key_file or (self.ssh_port and self.ssh_port != 22)):
            ssh_cmd = ['ssh']
            if self.ssh_port:
                ssh_cmd += ['-p', str(self.ssh_port)]
            if self.ssh_key_file:
                ssh_cmd += ['-i', self.ssh_key_file]
            # rsync splits the -e value itself and honours shell-style quoting
            cmd += ['-e', shlex.join(ssh_cmd)]

        cmd += [f"--exclude={pattern}" for pattern in excludes]
        cmd += list(sources)
        cmd.append(destination)
        return cmd

    def sync(self, sources: Sequence[str], destination: str, excludes: Sequence[str] = ()):
        cmd = self.build_command(sources, destination, excludes)
        logger.info(f"Running {subprocess.list2cmdline(cmd)}")

        try:
            result = subprocess.run(cmd)
        except OSError as e:
            raise SyncError(f"Rsync failed to start: {e}")

        if result.returncode == 0:
            logger.info("rsync completed successfully")
            return

        if result.returncode == RSYNC_VANISHED_EXIT and self.tolerate_vanished:
            logger.warning("rsync reported files that vanished during transfer, continuing")
            return

        raise SyncError(f"Rsync failed to sync (exit code {result.returncode})", result.returncode)
