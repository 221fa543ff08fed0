"""
Pre and post backup commands.

Commands are opaque shell strings run on the local host, in order. They run
through the shell so users can pause VMs, dump databases and the like.
"""

import logging
import os
import subprocess
from typing import Sequence

from .errors import BackupError


logger = logging.getLogger(__name__)


class HookError(BackupError):
    """Raised when a pre or post backup command fails."""
    pass


def hooks_forbidden_for_user() -> bool:
    """Hooks are refused for root since they run arbitrary shell strings."""
    return hasattr(os, 'geteuid') and os.geteuid() == 0


def run_hooks(commands: Sequence[str], stage: str = 'pre'):
    """
    Execute backup hook commands in order.

    Args:
        commands: Shell commands
        stage: 'pre' or 'post', used in log messages

    Raises:
        HookError: On the first command that exits non-zero
    """
    if not commands:
        logger.info(f"No {stage} backup system commands specified, skipping")
        return

    logger.info(f"Executing {stage} backup system commands on the local host")
    for command in commands:
        logger.info(f"Executing: {command}")
        try:
            result = subprocess.run(command, shell=True)
        except OSError as e:
            raise HookError(f"System command failed to start: {command}: {e}")
        if result.returncode != 0:
            raise HookError(f"System command failed (exit code {result.returncode}): {command}")
