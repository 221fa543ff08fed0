"""
Immutable job settings passed into the executor and rotation engine.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Optional, Tuple, FrozenSet

from snaprotate.config import Config, get_config
from .locations import Location, parse_location, group_sources


@dataclass(frozen=True)
class BackupSettings:
    """
    Immutable description of one backup job.

    Sources and destination are kept as given on the command line; the parsed
    locations are derived on access.
    """

    sources: Tuple[str, ...]
    destination: str
    excludes: Tuple[str, ...] = ()
    pre_commands: Tuple[str, ...] = ()
    post_commands: Tuple[str, ...] = ()
    protected_paths: FrozenSet[str] = field(default_factory=lambda: frozenset(Config.PROTECTED_PATHS))
    rsync_binary: str = 'rsync'
    rsync_options: Tuple[str, ...] = tuple(Config.RSYNC_OPTIONS)
    ssh_port: int = 22
    ssh_key_file: Optional[str] = None
    ssh_timeout: int = 30
    tolerate_vanished: bool = False
    allow_root_hooks: bool = False

    @classmethod
    def from_config(cls, sources, destination, excludes=(), pre_commands=(),
                    post_commands=(), config_class=None, **overrides) -> 'BackupSettings':
        """
        Build settings from CLI-level values plus a Config class.

        Keyword overrides win over the config values, so callers can pass
        e.g. ``ssh_port=2222`` from a command line flag.
        """
        config_class = config_class or get_config()
        values = {
            'protected_paths': frozenset(config_class.PROTECTED_PATHS),
            'rsync_binary': config_class.RSYNC_BINARY,
            'rsync_options': tuple(config_class.RSYNC_OPTIONS),
            'ssh_port': config_class.SSH_PORT,
            'ssh_key_file': config_class.SSH_KEY_FILE,
            'ssh_timeout': config_class.SSH_TIMEOUT,
            'tolerate_vanished': config_class.TOLERATE_VANISHED,
            'allow_root_hooks': config_class.ALLOW_ROOT_HOOKS,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        return cls(
            sources=tuple(sources),
            destination=destination,
            excludes=tuple(excludes or ()),
            pre_commands=tuple(pre_commands or ()),
            post_commands=tuple(post_commands or ()),
            **values
        )

    @property
    def destination_location(self) -> Location:
        return parse_location(self.destination)

    @property
    def source_locations(self) -> Tuple[Location, ...]:
        return tuple(group_sources(self.sources))

    @property
    def normalized_protected_paths(self) -> FrozenSet[str]:
        return frozenset(normalize_path(path) for path in self.protected_paths)


def normalize_path(path: str) -> str:
    """Collapse duplicate and trailing slashes so '/etc/' matches '/etc'."""
    if not path:
        return path
    normalized = posixpath.normpath(path)
    # normpath keeps a leading '//' as POSIX allows it
    if normalized.startswith('//'):
        normalized = '/' + normalized.lstrip('/')
    return normalized
