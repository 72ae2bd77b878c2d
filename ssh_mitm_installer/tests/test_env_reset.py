# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/tests/test_env_reset.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Tests for environment reset idempotence and the --force account deletion guard

"""
Tests for environment reset.

Validates that:
1. Reset is idempotent on a clean host
2. Previous downloads, build trees and the keyring are removed
3. An existing account is NEVER deleted without --force
4. With --force the account and its home are removed
"""

import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ssh_mitm_installer.context import AccountSpec, ProvisioningContext
from ssh_mitm_installer.errors import ErrorKind
from ssh_mitm_installer.system.env_reset import EnvironmentReset


class TestEnvironmentReset(unittest.TestCase):
    """Test environment reset."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp(prefix="ssh_mitm_reset_test_"))
        self.work_dir = self.test_dir / "work"
        self.work_dir.mkdir()
        self.home = self.test_dir / "home" / "ssh-mitm"
        self.ctx = ProvisioningContext(
            work_dir=self.work_dir,
            account=AccountSpec(home=self.home),
        )
        self.reset = EnvironmentReset()

        self.exists_patcher = patch('ssh_mitm_installer.system.env_reset.account_exists', return_value=False)
        self.mock_exists = self.exists_patcher.start()
        self.command_patcher = patch('ssh_mitm_installer.system.env_reset.run_command',
                                     return_value=MagicMock(returncode=0, stderr=""))
        self.mock_command = self.command_patcher.start()

    def tearDown(self):
        self.command_patcher.stop()
        self.exists_patcher.stop()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _leave_previous_run(self):
        (self.work_dir / "RELEASE_KEY.asc").write_text("key")
        (self.work_dir / "openssh-7.5p1.tar.gz.asc").write_text("sig")
        (self.work_dir / "openssh-7.5p1.tar.gz").write_bytes(b"archive")
        (self.work_dir / "openssh-7.5p1").mkdir()
        (self.work_dir / "openssh-7.5p1-mitm" / "contrib").mkdir(parents=True)
        (self.work_dir / ".gnupg-release").mkdir()
        (self.work_dir / "openssh-7.5p1-mitm.patch").write_text("patch")
        (self.work_dir / "apparmor").mkdir()

    def _populate_home(self):
        self.home.mkdir(parents=True)
        (self.home / "session_0.txt").write_text("captured session")

    def _commands(self):
        return [c.args[0] for c in self.mock_command.call_args_list]

    def test_clean_host_is_idempotent(self):
        first = self.reset.run(self.ctx)
        second = self.reset.run(self.ctx)

        self.assertTrue(first.ok)
        self.assertTrue(second.ok)
        self.mock_command.assert_not_called()

    def test_transient_artifacts_removed(self):
        self._leave_previous_run()

        result = self.reset.run(self.ctx)

        self.assertTrue(result.ok)
        remaining = sorted(p.name for p in self.work_dir.iterdir())
        # Pipeline inputs survive the reset
        self.assertEqual(remaining, ["apparmor", "openssh-7.5p1-mitm.patch"])

    def test_remove_reports_removed_paths(self):
        (self.work_dir / "openssh-7.5p1.tar.gz").write_bytes(b"archive")

        removed = self.reset.remove_transient_artifacts(self.ctx)

        self.assertEqual(removed, [self.ctx.archive_path])
        self.assertEqual(self.reset.remove_transient_artifacts(self.ctx), [])

    def test_existing_account_without_force_aborts(self):
        self._populate_home()
        self.mock_exists.return_value = True
        self.mock_command.return_value = MagicMock(returncode=1, stderr="")

        result = self.reset.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.PRECONDITION)
        self.assertIn("already exists", result.error.message)
        self.assertIn("--force", result.error.remediation)
        self.assertTrue((self.home / "session_0.txt").exists())
        self.assertEqual(self._commands(), [["pkill", "-u", "ssh-mitm"]])

    def test_existing_account_with_force_is_deleted(self):
        self._populate_home()
        self.ctx.force = True
        self.mock_exists.side_effect = [True, False]

        result = self.reset.run(self.ctx)

        self.assertTrue(result.ok)
        self.assertEqual(self._commands(), [
            ["pkill", "-u", "ssh-mitm"],
            ["userdel", "-f", "-r", "ssh-mitm"],
        ])
        self.assertFalse(self.home.exists())

    def test_leftover_home_removal_failure_is_reported(self):
        self._populate_home()
        self.ctx.force = True
        self.mock_exists.side_effect = [True, False]

        with patch('ssh_mitm_installer.system.env_reset.shutil.rmtree',
                   side_effect=PermissionError(13, "Permission denied", str(self.home))):
            result = self.reset.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.ENVIRONMENT)
        self.assertIn(f"Failed to remove {self.home}", result.error.message)

    def test_account_surviving_userdel_is_fatal(self):
        self.ctx.force = True
        self.mock_exists.return_value = True

        result = self.reset.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.ENVIRONMENT)
        self.assertIn("still exists", result.error.message)

    def test_pkill_error_is_fatal(self):
        self.mock_exists.return_value = True
        self.mock_command.return_value = MagicMock(returncode=3, stderr="pkill: fatal")

        result = self.reset.run(self.ctx)

        self.assertFalse(result.ok)
        self.assertEqual(result.kind, ErrorKind.ENVIRONMENT)
        self.assertEqual(result.error.command, ["pkill", "-u", "ssh-mitm"])


if __name__ == '__main__':
    unittest.main(verbosity=2)
