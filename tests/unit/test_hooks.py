"""
Unit tests for pre and post backup commands (snaprotate/backup/hooks.py).
"""

from unittest.mock import patch

import pytest

from snaprotate.backup.hooks import run_hooks, hooks_forbidden_for_user, HookError


class TestRunHooks:

    def test_runs_commands_in_order(self, tmp_path):
        log = tmp_path / 'hooks.log'

        run_hooks([f"echo first >> {log}", f"echo second >> {log}"], 'pre')

        assert log.read_text().split() == ['first', 'second']

    def test_no_commands(self, caplog):
        import logging
        caplog.set_level(logging.INFO)

        run_hooks([], 'post')

        assert 'No post backup system commands specified' in caplog.text

    def test_failure_stops_and_raises(self, tmp_path):
        marker = tmp_path / 'marker'

        with pytest.raises(HookError, match="exit code 3"):
            run_hooks(['exit 3', f"touch {marker}"], 'pre')

        assert not marker.exists()


class TestRootRestriction:

    @patch('snaprotate.backup.hooks.os.geteuid', return_value=0)
    def test_root_forbidden(self, _):
        assert hooks_forbidden_for_user() is True

    @patch('snaprotate.backup.hooks.os.geteuid', return_value=1000)
    def test_regular_user_allowed(self, _):
        assert hooks_forbidden_for_user() is False
