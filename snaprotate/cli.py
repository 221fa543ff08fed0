"""
Command line interface for snaprotate.

Backs up the provided SRC to DEST using rsync and hardlinks to provide an
incremental backup without duplicating storage for unmodified files.

    snaprotate --src ~/Documents --dest /backups/userA --excludes '*.iso,.svn'
    snaprotate --src ~ --dest user1@srv01:/backups/user1 --schedule '0 2 * * *'
"""

import argparse
import logging
import sys
from typing import List, Optional

from snaprotate import configure_logging, __version__
from snaprotate.config import get_config
from snaprotate.backup.errors import BackupError
from snaprotate.backup.executor import BackupExecutor
from snaprotate.backup.report import format_header, format_summary
from snaprotate.backup.settings import BackupSettings


logger = logging.getLogger('snaprotate')


def _split_patterns(values: Optional[List[str]]) -> List[str]:
    """Flatten repeated, comma separated --excludes values."""
    patterns = []
    for value in values or []:
        patterns.extend(pattern for pattern in value.split(',') if pattern)
    return patterns


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='snaprotate',
        description=(
            "Backs up the provided SRC to DEST using rsync and hardlinks, keeping "
            "7 daily, 4 weekly and 12 monthly snapshots."
        )
    )
    parser.add_argument('-s', '--src', '--source', dest='sources', action='append', required=True,
                        metavar='PATH', help='Source directory, local or [user@]host:PATH (repeatable)')
    parser.add_argument('-d', '--dest', dest='destination', required=True, metavar='PATH',
                        help='Local or remote destination directory; for remote use [user@]host:PATH')
    parser.add_argument('-e', '--excludes', action='append', metavar='PATTERN1,PATTERN2',
                        help='Comma separated rsync exclude patterns (repeatable)')
    parser.add_argument('--precmds', action='append', metavar='CMD',
                        help='Command to run on the local host before the backup (repeatable)')
    parser.add_argument('--postcmds', action='append', metavar='CMD',
                        help='Command to run on the local host after the backup (repeatable)')
    parser.add_argument('--ssh-port', type=int, help='SSH port for the remote side')
    parser.add_argument('--ssh-key', help='SSH private key for the remote side')
    parser.add_argument('--tolerate-vanished', action='store_true', default=None,
                        help='Treat files vanishing during the transfer as a warning')
    parser.add_argument('--schedule', metavar='CRON',
                        help="Stay running and back up on a crontab schedule, e.g. '0 2 * * *'")
    parser.add_argument('--config', dest='config_name', choices=['development', 'production'],
                        help='Configuration profile (default: SNAPROTATE_ENV or production)')
    parser.add_argument('-v', '--debug', action='store_true', help='Debugging output')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def settings_from_args(args, config_class) -> BackupSettings:
    """
    Build job settings from parsed arguments.

    Raises:
        ValidationError: If a source or the destination cannot be parsed
    """
    settings = BackupSettings.from_config(
        sources=args.sources,
        destination=args.destination,
        excludes=_split_patterns(args.excludes),
        pre_commands=args.precmds,
        post_commands=args.postcmds,
        config_class=config_class,
        ssh_port=args.ssh_port,
        ssh_key_file=args.ssh_key,
        tolerate_vanished=args.tolerate_vanished
    )
    # Parse locations now so usage errors surface before any output
    settings.destination_location
    settings.source_locations
    return settings


def _print_header(run, settings):
    print(format_header(run, settings))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the command line interface.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    config_class = get_config(args.config_name)
    configure_logging(config_class, debug=args.debug)

    try:
        settings = settings_from_args(args, config_class)
    except BackupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.schedule:
        from snaprotate.scheduler import init_scheduler, run_scheduler

        try:
            scheduler = init_scheduler(
                settings,
                args.schedule,
                timezone=config_class.SCHEDULER_TIMEZONE,
                on_start=lambda run: _print_header(run, settings),
                on_finish=lambda run: print(format_summary(run))
            )
        except ValueError as e:
            print(f"Error: invalid schedule '{args.schedule}': {e}", file=sys.stderr)
            return 1
        run_scheduler(scheduler)
        return 0

    executor = BackupExecutor(settings, on_start=lambda run: _print_header(run, settings))
    try:
        run = executor.execute()
    except BackupError as e:
        logger.error(f"Backup failed: {e}")
        if executor.run_record is not None:
            print(format_summary(executor.run_record))
        return 1

    print(format_summary(run))
    return 0
