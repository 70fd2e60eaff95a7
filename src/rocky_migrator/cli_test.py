#!/usr/bin/env python3
"""
Tests for the command-line interface
"""

import io
import os
import json
import unittest
import tempfile
from unittest import mock

from rocky_migrator.__main__ import main, setup_argparse
from rocky_migrator.exceptions import PackageManagerLocked
from rocky_migrator.state import MigrationState, StateStore, Phase, Outcome, EXIT_ROLLBACK_INCOMPLETE
from rocky_migrator.testing import os_release, write_file
from rocky_migrator.utils.config import Config


@mock.patch('rocky_migrator.__main__.configure_logging')
class TestCommandLine(unittest.TestCase):
    """Run the CLI against temporary root trees and state files"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = os.path.join(self.tmp.name, "root")
        os.makedirs(self.root)
        self.state_file = os.path.join(self.tmp.name, "migration_state.json")
        self.config = Config(os.path.join(self.tmp.name, "config.json"))
        patcher = mock.patch('rocky_migrator.__main__.config', self.config)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.tmp.cleanup()

    def run_cli(self, *argv):
        with mock.patch('sys.stdout', new_callable=io.StringIO) as stdout, \
                mock.patch('sys.stderr', new_callable=io.StringIO) as stderr:
            code = main(["--root-dir", self.root, "--state-file", self.state_file] + list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_no_command_prints_help(self, mock_logging):
        code, out, _ = self.run_cli()

        self.assertEqual(code, 0)
        self.assertIn("rocky-migrator", out)

    def test_parser(self, mock_logging):
        args = setup_argparse().parse_args(["migrate", "--yes", "--include-user-data"])

        self.assertTrue(args.yes)
        self.assertTrue(args.include_user_data)
        self.assertIsNone(setup_argparse().parse_args(["migrate"]).include_user_data)

    def test_status_without_runs(self, mock_logging):
        code, out, _ = self.run_cli("status")

        self.assertEqual(code, 0)
        self.assertIn("No migration run has been recorded", out)

    def test_status(self, mock_logging):
        state = MigrationState(phase=Phase.DETECTED)
        state.fail(PackageManagerLocked("Another process holds the dnf lock"))
        StateStore(self.state_file).save(state)

        code, out, _ = self.run_cli("status")

        self.assertEqual(code, 0)
        self.assertIn("Outcome:              Failed", out)
        self.assertIn("Last completed phase: Detected", out)
        self.assertIn("PackageManagerLocked: Another process holds the dnf lock", out)

    def test_status_corrupt_file(self, mock_logging):
        write_file(self.tmp.name, "/migration_state.json", "{")

        code, _, err = self.run_cli("status")

        self.assertEqual(code, 1)
        self.assertIn("Cannot read", err)

    @mock.patch('rocky_migrator.package_managers.base.subprocess.run')
    def test_inspect(self, mock_run, mock_logging):
        mock_run.return_value = mock.Mock(returncode=127)
        write_file(self.root, "/etc/os-release", os_release("ol", "Oracle Linux Server", "8.8"))

        code, out, _ = self.run_cli("inspect")

        self.assertEqual(code, 0)
        self.assertIn("Distribution:   OracleLinux 8.8", out)
        self.assertIn("Package system: RPM", out)
        self.assertIn("Package tools:  none found", out)

    def test_plan(self, mock_logging):
        """Test the plan command describes the migration and current repositories"""
        write_file(self.root, "/etc/os-release", os_release("centos", "CentOS Linux", "8"))
        write_file(self.root, "/etc/yum.repos.d/CentOS-Linux-BaseOS.repo",
                   "[baseos]\nname=CentOS Linux 8 - BaseOS\nenabled=1\n")

        code, out, _ = self.run_cli("plan")

        self.assertEqual(code, 0)
        self.assertIn("Detected: CentOS 8", out)
        self.assertIn("rocky-baseos", out)
        self.assertIn("Currently configured repositories", out)
        self.assertIn("baseos", out)

    def test_plan_unsupported(self, mock_logging):
        write_file(self.root, "/etc/os-release", os_release("ubuntu", "Ubuntu", "23.10"))

        code, _, err = self.run_cli("plan")

        self.assertEqual(code, 1)
        self.assertIn("Error:", err)

    @mock.patch('builtins.input', return_value="n")
    def test_migrate_declined(self, mock_input, mock_logging):
        code, out, _ = self.run_cli("migrate")

        self.assertEqual(code, 1)
        self.assertIn("Migration cancelled", out)
        self.assertFalse(os.path.exists(self.state_file))

    def test_rollback_without_runs(self, mock_logging):
        code, _, err = self.run_cli("rollback", "--yes")

        self.assertEqual(code, 1)
        self.assertIn("No migration run recorded", err)

    @mock.patch('builtins.input', return_value="rollback")
    def test_rollback_needs_exact_confirmation(self, mock_input, mock_logging):
        StateStore(self.state_file).save(MigrationState(phase=Phase.MIGRATED, outcome=Outcome.FAILED))

        code, out, _ = self.run_cli("rollback")

        self.assertEqual(code, 1)
        self.assertIn("Rollback cancelled", out)

    def test_rollback_without_backup(self, mock_logging):
        """Test a run with no backup cannot be rolled back"""
        StateStore(self.state_file).save(MigrationState(phase=Phase.DETECTED, outcome=Outcome.FAILED))

        code, _, err = self.run_cli("rollback", "--yes")

        self.assertEqual(code, EXIT_ROLLBACK_INCOMPLETE)
        self.assertIn("Rollback incomplete", err)

    def test_config_get_and_set(self, mock_logging):
        backup_dir = os.path.join(self.tmp.name, "backups")

        code, out, _ = self.run_cli("config", "set", "backup_dir", backup_dir)
        self.assertEqual(code, 0)
        self.assertTrue(os.path.isdir(backup_dir))

        code, out, _ = self.run_cli("config", "set", "extra_backup_paths", "/etc/motd,/opt/app/")
        self.assertEqual(code, 0)
        self.assertEqual(self.config.get("extra_backup_paths"), ["/etc/motd", "/opt/app/"])

        code, out, _ = self.run_cli("config", "get", "backup_dir")
        self.assertEqual(out.strip(), backup_dir)

        code, out, _ = self.run_cli("config", "get")
        self.assertEqual(json.loads(out)["extra_backup_paths"], ["/etc/motd", "/opt/app/"])

    def test_config_get_unknown_key(self, mock_logging):
        code, _, err = self.run_cli("config", "get", "colour")

        self.assertEqual(code, 1)
        self.assertIn("Unknown configuration key", err)


if __name__ == '__main__':
    unittest.main()
