"""
Parsing of local and remote (``[user@]host:path``) locations.
"""

import getpass
import posixpath
import re
from typing import Iterable, List, Optional

from .errors import ValidationError


# host part of user@host:path, the same character classes rsync accepts
_REMOTE_RE = re.compile(r'^(?:(?P<user>[A-Za-z0-9._%+\-]+)@)?(?P<host>[A-Za-z0-9.\-]+):(?P<path>.*)$')


class Location:
    """
    A path on the local machine or on a single remote host.
    """

    def __init__(self, path: str, host: Optional[str] = None, user: Optional[str] = None):
        self.path = path
        self.host = host
        self.user = user

    @property
    def is_remote(self) -> bool:
        return self.host is not None

    @property
    def address(self) -> Optional[str]:
        """user@host for remote locations, None for local ones."""
        if not self.is_remote:
            return None
        return f"{self.user}@{self.host}" if self.user else self.host

    def join(self, *parts: str) -> str:
        return posixpath.join(self.path, *parts)

    def qualified(self, path: Optional[str] = None) -> str:
        """
        Render a path on this location the way rsync expects it.

        Args:
            path: Path on the same side; defaults to the location's own path

        Returns:
            ``user@host:path`` for remote locations, the plain path otherwise
        """
        path = self.path if path is None else path
        if self.is_remote:
            return f"{self.address}:{path}"
        return path

    def __eq__(self, other):
        if not isinstance(other, Location):
            return NotImplemented
        return (self.path, self.host, self.user) == (other.path, other.host, other.user)

    def __hash__(self):
        return hash((self.path, self.host, self.user))

    def __repr__(self):
        return f"Location({self.qualified()!r})"


def parse_location(text: str, default_user: Optional[str] = None) -> Location:
    """
    Parse a local path or an ``[user@]host:path`` remote address.

    A colon only marks a remote location when it comes before the first
    slash, so ``/mnt/odd:name`` stays local. The remote user defaults to
    the invoking account.

    Args:
        text: Location as given on the command line
        default_user: User for remote locations without one

    Returns:
        Parsed Location

    Raises:
        ValidationError: If the text is empty or a remote path is missing
    """
    if not text:
        raise ValidationError("Empty location")

    colon = text.find(':')
    slash = text.find('/')
    if colon == -1 or (slash != -1 and slash < colon):
        return Location(text)

    match = _REMOTE_RE.match(text)
    if not match:
        raise ValidationError(f"Invalid remote location: {text}")
    if not match.group('path'):
        raise ValidationError(f"Remote location has no path: {text}")

    user = match.group('user') or default_user or getpass.getuser()
    return Location(match.group('path'), host=match.group('host'), user=user)


def group_sources(texts: Iterable[str], default_user: Optional[str] = None) -> List[Location]:
    """
    Parse the source set.

    Sources are either all local paths or all on one remote host.

    Raises:
        ValidationError: If no source is given, or sources span hosts
    """
    locations = [parse_location(text, default_user) for text in texts]
    if not locations:
        raise ValidationError("At least one source is required")

    addresses = {location.address for location in locations}
    if len(addresses) > 1:
        if None in addresses:
            raise ValidationError("Cannot mix local and remote sources")
        raise ValidationError(
            f"All remote sources must be on the same host: {', '.join(sorted(addresses))}"
        )

    return locations
