"""
Unit tests for location parsing (snaprotate/backup/locations.py).
"""

from unittest.mock import patch

import pytest

from snaprotate.backup.errors import ValidationError
from snaprotate.backup.locations import Location, parse_location, group_sources


class TestParseLocation:

    def test_local_absolute_path(self):
        location = parse_location('/backups/userA')
        assert location.is_remote is False
        assert location.path == '/backups/userA'
        assert location.qualified() == '/backups/userA'

    def test_colon_after_slash_stays_local(self):
        location = parse_location('/mnt/odd:name')
        assert location.is_remote is False
        assert location.path == '/mnt/odd:name'

    def test_remote_with_user(self):
        location = parse_location('joeblow@nas-01:/backups/joeblow')
        assert location.is_remote is True
        assert location.user == 'joeblow'
        assert location.host == 'nas-01'
        assert location.path == '/backups/joeblow'
        assert location.qualified() == 'joeblow@nas-01:/backups/joeblow'

    def test_remote_user_defaults_to_invoking_account(self):
        with patch('snaprotate.backup.locations.getpass.getuser', return_value='localuser'):
            location = parse_location('srv01:/backups/user1')
        assert location.user == 'localuser'
        assert location.address == 'localuser@srv01'

    def test_explicit_default_user(self):
        assert parse_location('srv01:/data', default_user='backup').user == 'backup'

    def test_remote_without_path_rejected(self):
        with pytest.raises(ValidationError, match="no path"):
            parse_location('srv01:')

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            parse_location('')

    def test_qualified_other_path_and_join(self):
        location = parse_location('joe@nas:/backups')
        slot = location.join('daily', 'monday')
        assert slot == '/backups/daily/monday'
        assert location.qualified(slot) == 'joe@nas:/backups/daily/monday'

    def test_equality(self):
        assert parse_location('joe@nas:/a') == Location('/a', host='nas', user='joe')
        assert parse_location('/a') != parse_location('joe@nas:/a')


class TestGroupSources:

    def test_local_sources(self):
        locations = group_sources(['/home/a', '/home/b'])
        assert [location.path for location in locations] == ['/home/a', '/home/b']

    def test_remote_sources_same_host(self):
        locations = group_sources(['joe@web:/var/www', 'joe@web:/etc/nginx'])
        assert all(location.is_remote for location in locations)

    def test_remote_sources_different_hosts_rejected(self):
        with pytest.raises(ValidationError, match="same host"):
            group_sources(['joe@web:/var/www', 'joe@db:/var/lib'])

    def test_mixed_sources_rejected(self):
        with pytest.raises(ValidationError, match="mix"):
            group_sources(['/home/a', 'joe@web:/var/www'])

    def test_no_sources_rejected(self):
        with pytest.raises(ValidationError, match="At least one source"):
            group_sources([])
