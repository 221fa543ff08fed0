"""
Filesystem backends for the snapshot tree.

Supports:
- LocalFilesystem: Direct operations on the local filesystem
- RemoteFilesystem: The same operations as shell commands over one SSH session

The rotation engine only ever talks to these through the shared interface,
so it never needs to know which side of the connection the tree lives on.
"""

import logging
import os
import shlex
import shutil
import time
from pathlib import Path
from typing import Optional, Tuple

import paramiko
from paramiko import SSHClient, AutoAddPolicy

from .errors import BackupError


logger = logging.getLogger(__name__)

# Printed by remote test commands only when the predicate holds
EXISTS_SENTINEL = 'exists'

READ_CHUNK_SIZE = 32768
POLL_INTERVAL = 0.05


class FilesystemError(BackupError):
    """Base class for failed filesystem operations."""
    pass


class DirectoryCreateError(FilesystemError):
    """Raised when a directory cannot be created."""
    pass


class DirectoryRemoveError(FilesystemError):
    """Raised when a directory tree is not completely removed."""
    pass


class DirectoryMoveError(FilesystemError):
    """Raised when a directory cannot be moved."""
    pass


class SnapshotCloneError(FilesystemError):
    """Raised when a hardlink copy of a snapshot fails."""
    pass


class RemoteConnectionError(FilesystemError):
    """Raised when the SSH session cannot be established."""
    pass


class Filesystem:
    """
    Primitive operations the rotation engine needs on the destination tree.

    Subclasses implement the path tests and the mutating primitives; the
    verification logic shared by both transports lives here.
    """

    is_remote = False

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def is_dir(self, path: str) -> bool:
        raise NotImplementedError

    def is_symlink(self, path: str) -> bool:
        raise NotImplementedError

    def mkdir(self, path: str):
        raise NotImplementedError

    def remove_tree(self, path: str):
        raise NotImplementedError

    def move_dir(self, src: str, dst: str):
        raise NotImplementedError

    def hardlink_clone(self, src: str, dst: str):
        raise NotImplementedError

    def symlink(self, target: str, link_path: str) -> bool:
        raise NotImplementedError

    def touch(self, path: str):
        raise NotImplementedError

    def disk_usage(self, path: str) -> Tuple[int, int]:
        raise NotImplementedError

    def connect(self):
        """Open any session the backend needs. Local backends have none."""
        pass

    def close(self):
        """Release the session opened by connect()."""
        pass

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def _verify_removed(self, path: str, detail: str = ''):
        if self.exists(path):
            message = f"Failed to delete {path}: directory still present after removal"
            if detail:
                message = f"{message}\n   {detail}"
            raise DirectoryRemoveError(message)

    def _verify_moved(self, src: str, dst: str, detail: str = ''):
        if not self.exists(dst) or self.exists(src):
            message = f"Failed to move {src} => {dst}"
            if detail:
                message = f"{message}:\n   {detail}"
            raise DirectoryMoveError(message)


class LocalFilesystem(Filesystem):
    """
    Operations on the local filesystem using os and shutil.
    """

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def is_symlink(self, path: str) -> bool:
        return os.path.islink(path)

    def mkdir(self, path: str):
        """
        Create a directory unless it already exists.

        Raises:
            DirectoryCreateError: If the directory is not there afterwards
        """
        if self.is_dir(path):
            return

        logger.info(f"Creating local {path}")
        try:
            os.mkdir(path)
        except OSError as e:
            raise DirectoryCreateError(f"Failed to create {path}: {e}")

        if not self.is_dir(path):
            raise DirectoryCreateError(f"Failed to create {path}: directory missing after mkdir")

    def remove_tree(self, path: str):
        """
        Recursively delete a snapshot directory.

        A partially deleted tree is treated as fatal: leaving residue behind
        makes the next clone nest inside it.

        Raises:
            DirectoryRemoveError: If anything remains at path
        """
        if not self.exists(path):
            return

        logger.info(f"Deleting local {path}")
        detail = ''
        try:
            if self.is_symlink(path) or not self.is_dir(path):
                os.unlink(path)
            else:
                shutil.rmtree(path)
        except OSError as e:
            detail = str(e)

        self._verify_removed(path, detail)

    def move_dir(self, src: str, dst: str):
        """
        Rename a directory tree.

        Raises:
            DirectoryMoveError: If dst is occupied or the rename does not verify
        """
        if not self.exists(src):
            return

        logger.info(f"{src} => {dst}")
        if self.exists(dst):
            raise DirectoryMoveError(f"Failed to move {src} => {dst}: destination already exists")

        detail = ''
        try:
            os.rename(src, dst)
        except OSError as e:
            detail = str(e)

        self._verify_moved(src, dst, detail)

    def hardlink_clone(self, src: str, dst: str):
        """
        Copy a tree with every regular file hardlinked to the original.

        Equivalent to ``cp -al src dst``: directories are new, file inodes are
        shared, symlinks are recreated as symlinks. When src does not exist
        yet (first run) dst becomes an empty directory.

        Raises:
            SnapshotCloneError: If dst already exists or the copy fails
        """
        if os.path.lexists(dst):
            raise SnapshotCloneError(f"Hard link copy failed {src} => {dst}: destination already exists")

        if not self.is_dir(src):
            logger.info(f"No snapshot at {src}, starting {dst} empty")
            try:
                os.mkdir(dst)
            except OSError as e:
                raise SnapshotCloneError(f"Hard link copy failed {src} => {dst}:\n  {e}")
            return

        logger.info(f"Hard linking {src} => {dst}")
        try:
            shutil.copytree(src, dst, symlinks=True, copy_function=os.link)
        except (OSError, shutil.Error) as e:
            raise SnapshotCloneError(f"Hard link copy failed {src} => {dst}:\n  {e}")

    def symlink(self, target: str, link_path: str) -> bool:
        """
        Point link_path at target, replacing an existing symlink.

        Returns:
            True if the link verifies, False otherwise (logged as a warning)
        """
        try:
            if self.is_symlink(link_path):
                os.unlink(link_path)
            elif os.path.lexists(link_path):
                logger.warning(f"Failed to create symlink: {link_path} exists and is not a symlink")
                return False
            os.symlink(target, link_path)
        except OSError as e:
            logger.warning(f"Failed to create symlink: {link_path} ({e})")
            return False

        if not self.is_symlink(link_path) or os.readlink(link_path) != target:
            logger.warning(f"Failed to create symlink: {link_path}")
            return False
        return True

    def touch(self, path: str):
        try:
            os.utime(path, None)
        except OSError as e:
            logger.warning(f"Failed to update mtime on {path}: {e}")

    def disk_usage(self, path: str) -> Tuple[int, int]:
        usage = shutil.disk_usage(path)
        return usage.used, usage.total


class RemoteFilesystem(Filesystem):
    """
    Operations on a remote host, issued as shell commands over SSH.

    A single SSHClient session is opened by connect() and reused for every
    command until close(). A command fails when it exits non-zero or writes
    anything to stderr.
    """

    is_remote = True

    def __init__(self, host: str, username: Optional[str] = None, port: int = 22,
                 key_filename: Optional[str] = None, timeout: int = 30):
        """
        Initialize remote filesystem handler.

        Args:
            host: SSH hostname or IP
            username: SSH username (defaults to the local account in paramiko)
            port: SSH port (default 22)
            key_filename: Path to private key file (optional, agent and
                default keys are tried otherwise)
            timeout: Connection timeout in seconds
        """
        self.host = host
        self.username = username
        self.port = port
        self.key_filename = key_filename
        self.timeout = timeout

        self.ssh_client = None

    def connect(self):
        """
        Establish the SSH session.

        Raises:
            RemoteConnectionError: If connection or authentication fails
        """
        if self.ssh_client is not None:
            return

        client = SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(AutoAddPolicy())

        connect_kwargs = {
            'hostname': self.host,
            'port': self.port,
            'username': self.username,
            'timeout': self.timeout
        }
        if self.key_filename:
            key_path = Path(self.key_filename).expanduser()
            if not key_path.exists():
                raise RemoteConnectionError(f"Private key not found: {self.key_filename}")
            connect_kwargs['key_filename'] = str(key_path)

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            raise RemoteConnectionError(f"SSH authentication failed for {self.username}@{self.host}: {e}")
        except paramiko.SSHException as e:
            raise RemoteConnectionError(f"SSH connection failed: {e}")
        except OSError as e:
            raise RemoteConnectionError(f"Failed to connect to {self.host}: {e}")

        logger.debug(f"Opened SSH session to {self.host}:{self.port}")
        self.ssh_client = client

    def close(self):
        """Close the SSH session."""
        if self.ssh_client:
            self.ssh_client.close()
            self.ssh_client = None
            logger.debug(f"Closed SSH session to {self.host}")

    def run(self, command: str) -> Tuple[int, str, str]:
        """
        Execute a command on the remote host and wait for it to finish.

        Both streams are read while the command runs. The remote side stops
        writing once the channel window is full, so waiting for the exit
        status first would hang on commands with a lot of output.

        Returns:
            (exit status, stdout, stderr)
        """
        if self.ssh_client is None:
            raise RemoteConnectionError(f"Not connected to {self.host}")

        logger.debug(f"Remote command on {self.host}: {command}")
        out_chunks, err_chunks = [], []
        try:
            _, stdout, stderr = self.ssh_client.exec_command(command)
            channel = stdout.channel
            while not channel.exit_status_ready():
                received = False
                if channel.recv_ready():
                    out_chunks.append(channel.recv(READ_CHUNK_SIZE))
                    received = True
                if channel.recv_stderr_ready():
                    err_chunks.append(channel.recv_stderr(READ_CHUNK_SIZE))
                    received = True
                if not received:
                    time.sleep(POLL_INTERVAL)
            # Whatever arrived between the last poll and EOF
            out_chunks.append(stdout.read())
            err_chunks.append(stderr.read())
            status = channel.recv_exit_status()
        except paramiko.SSHException as e:
            raise RemoteConnectionError(f"SSH command failed on {self.host}: {e}")
        out = b''.join(out_chunks).decode('utf-8', errors='replace').strip()
        err = b''.join(err_chunks).decode('utf-8', errors='replace').strip()
        return status, out, err

    def _test(self, flag: str, path: str) -> bool:
        _, out, _ = self.run(f"[ {flag} {shlex.quote(path)} ] && echo {EXISTS_SENTINEL}")
        return out == EXISTS_SENTINEL

    def exists(self, path: str) -> bool:
        # -e follows symlinks, so dangling links are caught with -L
        return self._test('-e', path) or self._test('-L', path)

    def is_dir(self, path: str) -> bool:
        return self._test('-d', path)

    def is_symlink(self, path: str) -> bool:
        return self._test('-L', path)

    def mkdir(self, path: str):
        if self.is_dir(path):
            return

        logger.info(f"Creating remote {path}")
        status, _, err = self.run(f"mkdir {shlex.quote(path)}")
        if status != 0 or err:
            raise DirectoryCreateError(f"Failed to create {path}:\n   {err}")
        if not self.is_dir(path):
            raise DirectoryCreateError(f"Failed to create {path}: directory missing after mkdir")

    def remove_tree(self, path: str):
        if not self.exists(path):
            return

        logger.info(f"Deleting remote {path}")
        status, _, err = self.run(f"rm -rf {shlex.quote(path)}")
        self._verify_removed(path, err)
        if status != 0 or err:
            raise DirectoryRemoveError(f"Failed to delete {path}:\n   {err}")

    def move_dir(self, src: str, dst: str):
        if not self.exists(src):
            return

        logger.info(f"{src} => {dst}")
        if self.exists(dst):
            raise DirectoryMoveError(f"Failed to move {src} => {dst}: destination already exists")

        status, _, err = self.run(f"mv {shlex.quote(src)} {shlex.quote(dst)}")
        if status != 0 or err:
            raise DirectoryMoveError(f"Failed to move {src}:\n   {err}")
        self._verify_moved(src, dst)

    def hardlink_clone(self, src: str, dst: str):
        if self.exists(dst):
            raise SnapshotCloneError(f"Hard link copy failed {src} => {dst}: destination already exists")

        if not self.is_dir(src):
            logger.info(f"No snapshot at {src}, starting {dst} empty")
            command = f"mkdir {shlex.quote(dst)}"
        else:
            logger.info(f"Hard linking {src} => {dst}")
            command = f"cp -al {shlex.quote(src)} {shlex.quote(dst)}"

        status, _, err = self.run(command)
        if status != 0 or err:
            raise SnapshotCloneError(f"Hard link copy failed {src} => {dst}:\n  {err or status}")

    def symlink(self, target: str, link_path: str) -> bool:
        # ln -sf does not reliably replace a link to a directory, so remove it first
        quoted_link = shlex.quote(link_path)
        self.run(f"if [ -L {quoted_link} ]; then rm {quoted_link}; fi")
        if self.exists(link_path):
            logger.warning(f"Failed to create symlink: {link_path} exists and is not a symlink")
            return False

        status, _, err = self.run(f"ln -s {shlex.quote(target)} {quoted_link}")
        if status != 0 or err or not self.is_symlink(link_path):
            logger.warning(f"Failed to create symlink: {link_path}")
            return False
        return True

    def touch(self, path: str):
        status, _, err = self.run(f"touch {shlex.quote(path)}")
        if status != 0 or err:
            logger.warning(f"Failed to update mtime on {path}: {err}")

    def disk_usage(self, path: str) -> Tuple[int, int]:
        """
        Report (used, total) bytes of the filesystem holding path.

        Parsed from ``df -Pk``; (0, 0) when the output is unusable.
        """
        status, out, err = self.run(f"df -Pk {shlex.quote(path)}")
        lines = [line for line in out.splitlines() if line and not line.lower().startswith('filesystem')]
        if status != 0 or not lines:
            logger.warning(f"Failed to read disk usage for {path}: {err}")
            return 0, 0

        fields = lines[-1].split()
        try:
            total_kb, used_kb = int(fields[1]), int(fields[2])
        except (IndexError, ValueError):
            logger.warning(f"Unexpected df output for {path}: {lines[-1]}")
            return 0, 0
        return used_kb * 1024, total_kb * 1024


def create_filesystem(location, settings) -> Filesystem:
    """
    Factory function to create the backend for a location.

    Args:
        location: Parsed Location of the destination (or remote source)
        settings: BackupSettings supplying SSH options

    Returns:
        LocalFilesystem or RemoteFilesystem instance
    """
    if location.is_remote:
        return RemoteFilesystem(
            host=location.host,
            username=location.user,
            port=settings.ssh_port,
            key_filename=settings.ssh_key_file,
            timeout=settings.ssh_timeout
        )
    return LocalFilesystem()
