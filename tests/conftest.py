"""
Shared pytest fixtures for snaprotate tests.

This module provides fixtures for:
- Source trees and destination roots in temporary directories
- A pure Python mirror sync standing in for rsync
- Backup settings for local jobs
- A RemoteFilesystem whose commands run in a local shell
- Mock fixtures for paramiko
"""

import filecmp
import fnmatch
import os
import shutil
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from snaprotate.backup.filesystem import LocalFilesystem, RemoteFilesystem
from snaprotate.backup.settings import BackupSettings
from snaprotate.backup.sync import SyncPort


class MirrorSync(SyncPort):
    """
    Local stand-in for rsync -a --delete --delete-excluded.

    Changed files are replaced rather than written in place, so a changed
    file stops sharing its inode with older snapshots just as with rsync.
    """

    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    @staticmethod
    def _excluded(name, excludes):
        return any(fnmatch.fnmatch(name, pattern) for pattern in excludes)

    def sync(self, sources, destination, excludes=()):
        self.calls.append((list(sources), destination, list(excludes)))
        if self.fail_with is not None:
            raise self.fail_with

        expected = {destination}
        for source in sources:
            # rsync copies the directory itself unless the source ends in '/'
            base = destination if source.endswith('/') else os.path.join(destination, os.path.basename(source))
            os.makedirs(base, exist_ok=True)
            expected.add(base)

            for root, dirs, files in os.walk(source):
                rel = os.path.relpath(root, source)
                target_root = base if rel == '.' else os.path.join(base, rel)
                dirs[:] = [d for d in dirs if not self._excluded(d, excludes)]

                for name in dirs:
                    path = os.path.join(target_root, name)
                    os.makedirs(path, exist_ok=True)
                    expected.add(path)

                for name in files:
                    if self._excluded(name, excludes):
                        continue
                    src = os.path.join(root, name)
                    dst = os.path.join(target_root, name)
                    expected.add(dst)
                    if os.path.exists(dst) and filecmp.cmp(src, dst, shallow=False):
                        continue
                    if os.path.lexists(dst):
                        os.unlink(dst)
                    shutil.copy2(src, dst)

        for root, dirs, files in os.walk(destination, topdown=False):
            for name in files:
                path = os.path.join(root, name)
                if path not in expected:
                    os.unlink(path)
            for name in dirs:
                path = os.path.join(root, name)
                if path not in expected:
                    shutil.rmtree(path)


@pytest.fixture
def source_dir(tmp_path):
    """
    Create a source tree.

    Creates:
    - file1.txt
    - file2.log
    - nested/file3.txt
    - cache.tmp (excluded in tests)
    """
    source = tmp_path / 'source'
    source.mkdir()
    (source / 'file1.txt').write_text('Test content 1')
    (source / 'file2.log').write_text('Test log content')
    nested = source / 'nested'
    nested.mkdir()
    (nested / 'file3.txt').write_text('Nested test content')
    (source / 'cache.tmp').write_text('scratch')
    return source


@pytest.fixture
def dest_root(tmp_path):
    """Empty destination root."""
    dest = tmp_path / 'backups'
    dest.mkdir()
    return dest


@pytest.fixture
def mirror_sync():
    return MirrorSync()


@pytest.fixture
def local_fs():
    return LocalFilesystem()


@pytest.fixture
def settings(source_dir, dest_root):
    """Settings for a local job, syncing the contents of source_dir into each slot."""
    return BackupSettings(
        sources=(f"{source_dir}/",),
        destination=str(dest_root),
        excludes=('*.tmp',),
        protected_paths=frozenset({'/', '/etc', '/home'})
    )


def _run_in_local_shell(command):
    result = subprocess.run(command, shell=True, capture_output=True, text=True)
    return result.returncode, result.stdout.strip(), result.stderr.strip()


@pytest.fixture
def shell_remote_fs():
    """
    RemoteFilesystem whose commands run in a local shell instead of over SSH.

    Exercises the exact command strings the remote backend sends.
    """
    fs = RemoteFilesystem(host='backup.example.com', username='testuser')
    fs.commands = []

    def run(command):
        fs.commands.append(command)
        return _run_in_local_shell(command)

    fs.run = run
    return fs


def make_channel_result(status=0, out='', err=''):
    """(stdin, stdout, stderr) triple as returned by SSHClient.exec_command."""
    stdout = MagicMock()
    stdout.channel.exit_status_ready.return_value = True
    stdout.channel.recv_ready.return_value = False
    stdout.channel.recv_stderr_ready.return_value = False
    stdout.channel.recv_exit_status.return_value = status
    stdout.read.return_value = out.encode()
    stderr = MagicMock()
    stderr.read.return_value = err.encode()
    return MagicMock(), stdout, stderr


@pytest.fixture
def mock_ssh_client():
    """
    Mock paramiko SSHClient used by RemoteFilesystem.

    Yields the client instance; exec_command succeeds silently unless the
    test configures it.
    """
    with patch('snaprotate.backup.filesystem.SSHClient') as mock_ssh:
        client = MagicMock()
        mock_ssh.return_value = client
        client.connect.return_value = None
        client.exec_command.return_value = make_channel_result()
        yield client
