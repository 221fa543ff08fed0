"""
Human readable report printed before and after a run.
"""

from datetime import datetime
from typing import Optional, Tuple


RULE = '=' * 69


def format_size(num_bytes: int) -> str:
    """Format a byte count the way ``df -h`` does, e.g. 1.5G."""
    size = float(num_bytes)
    for unit in ('B', 'K', 'M', 'G', 'T'):
        if size < 1024 or unit == 'T':
            if unit == 'B':
                return f"{int(size)}B"
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}P"


def format_usage(usage: Optional[Tuple[int, int]]) -> str:
    if not usage:
        return 'unknown'
    used, total = usage
    return f"{format_size(used)} of {format_size(total)}"


def _timestamp(value: Optional[datetime]) -> str:
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else 'N/A'


def format_header(run, settings) -> str:
    """Banner describing the job, printed when the run starts."""
    destination = settings.destination_location
    sources = settings.source_locations

    lines = [
        f"{'=' * 24} BACKUP REPORT {'=' * 30}",
        f"|  Date          -  {_timestamp(run.started_at)}",
        f"|  Run by        -  {run.run_by}",
        f"|  Host          -  {run.hostname}",
        f"|  Source        -  {', '.join(source.path for source in sources)}",
        f"|  Destination   -  {destination.path}",
    ]

    remote = destination if destination.is_remote else next((s for s in sources if s.is_remote), None)
    if remote is not None:
        lines.append(f"|  Remote User   -  {remote.user}")
        lines.append(f"|  Remote Server -  {remote.host}")

    lines += [
        "|",
        f"|  Disk Usage Before Backup: {format_usage(run.disk_usage_before)}",
        RULE,
    ]
    return '\n'.join(lines)


def format_summary(run) -> str:
    """Banner with disk usage before and after, printed when the run ends."""
    lines = [
        f"{'=' * 29} SUMMARY {'=' * 31}",
        "|  The Disk Usage for the backup device before and after the run",
        f"|  Before: {format_usage(run.disk_usage_before)}",
        f"|  After:  {format_usage(run.disk_usage_after)}",
        "|",
        f"|  Status:          {run.status}",
    ]
    if run.error_message:
        lines.append(f"|  Error:           {run.error_message}")
    lines += [
        f"|  Script Started:  {_timestamp(run.started_at)}",
        f"|  Script Finished: {_timestamp(run.completed_at)}",
        RULE,
    ]
    return '\n'.join(lines)
