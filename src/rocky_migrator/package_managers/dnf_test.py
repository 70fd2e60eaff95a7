#!/usr/bin/env python3
"""
Tests for the DNF/YUM and Zypper adapters
"""

import os
import subprocess
import unittest
import tempfile
from unittest import mock

from rocky_migrator.exceptions import PackageInstallError, MetadataError, GPGImportError
from rocky_migrator.package_managers.dnf import DnfPackageManager
from rocky_migrator.package_managers.zypper import ZypperPackageManager
from rocky_migrator.package_managers.factory import PackageManagerFactory
from rocky_migrator.package_managers.apt import AptPackageManager
from rocky_migrator.testing import write_file


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess([], returncode, stdout, stderr)


class TestDnfPackageManager(unittest.TestCase):
    """Test the commands DnfPackageManager runs"""

    def setUp(self):
        patcher = mock.patch('rocky_migrator.package_managers.base.subprocess.run')
        self.mock_run = patcher.start()
        self.addCleanup(patcher.stop)
        self.mock_run.return_value = completed()
        self.dnf = DnfPackageManager()

    def last_command(self):
        return self.mock_run.call_args[0][0]

    def test_available(self):
        self.assertTrue(self.dnf.available)
        self.mock_run.side_effect = FileNotFoundError
        self.assertFalse(DnfPackageManager('yum').available)

    def test_install(self):
        self.dnf.install(["rocky-release"])

        self.assertEqual(self.last_command(), ['dnf', 'install', '-y', 'rocky-release'])

    def test_install_failure(self):
        self.mock_run.return_value = completed(1, stderr="No match for argument: rocky-release")

        with self.assertRaises(PackageInstallError) as cm:
            self.dnf.install(["rocky-release"])

        self.assertEqual(cm.exception.returncode, 1)
        self.assertIn("No match", cm.exception.output)

    def test_remove_bypasses_solver(self):
        """Test removal erases only the named packages"""
        self.dnf.remove(["redhat-release", "redhat-logos"])

        self.assertEqual(self.last_command(), ['rpm', '-e', '--nodeps', 'redhat-release', 'redhat-logos'])

    def test_empty_install_and_remove_do_nothing(self):
        self.mock_run.reset_mock()

        self.dnf.install([])
        self.dnf.remove([])

        self.mock_run.assert_not_called()

    def test_update(self):
        self.dnf.update(allow_replace=True)
        self.assertEqual(self.last_command(), ['dnf', 'update', '-y', '--allowerasing'])

        DnfPackageManager('yum').update(allow_replace=True)
        self.assertEqual(self.last_command(), ['yum', 'update', '-y'])

    def test_list_installed(self):
        self.mock_run.return_value = completed(stdout="kernel\nbash\nkernel\n\n")

        self.assertEqual(self.dnf.list_installed(), ["bash", "kernel"])

    def test_list_installed_failure(self):
        self.mock_run.return_value = completed(1, stderr="error: rpmdb open failed")

        with self.assertRaises(MetadataError):
            self.dnf.list_installed()

    def test_missing_binary(self):
        self.mock_run.side_effect = FileNotFoundError("No such file or directory: 'dnf'")

        with self.assertRaises(MetadataError) as cm:
            self.dnf.refresh_metadata()

        self.assertEqual(cm.exception.returncode, 127)

    def test_repository_health(self):
        self.mock_run.return_value = completed(stdout=(
            "repo id                 repo name\n"
            "rocky-appstream         Rocky Linux 8 - AppStream\n"
            "rocky-baseos            Rocky Linux 8 - BaseOS\n"
        ))

        self.assertTrue(self.dnf.is_repository_healthy("rocky-baseos"))
        self.assertFalse(self.dnf.is_repository_healthy("rocky-devel"))

        self.mock_run.return_value = completed(1, stderr="Failed to download metadata")
        self.assertFalse(self.dnf.is_repository_healthy("rocky-baseos"))

    def test_import_key(self):
        self.mock_run.return_value = completed(1, stderr="curl: (6) Could not resolve host")

        with self.assertRaises(GPGImportError):
            self.dnf.import_key("https://dl.rockylinux.org/pub/rocky/RPM-GPG-KEY-Rocky-9")

        self.assertEqual(self.last_command()[:2], ['rpm', '--import'])

    def test_mounted_root(self):
        """Test a system mounted elsewhere gets --installroot and rpm --root"""
        dnf = DnfPackageManager(root_dir="/mnt/sysimage")

        dnf.install(["rocky-release"])
        self.assertEqual(self.last_command(),
                         ['dnf', '--installroot=/mnt/sysimage', 'install', '-y', 'rocky-release'])

        dnf.remove(["redhat-release"])
        self.assertEqual(self.last_command(),
                         ['rpm', '--root', '/mnt/sysimage', '-e', '--nodeps', 'redhat-release'])

    def test_pending_updates(self):
        self.mock_run.return_value = completed(100, stdout="bash.x86_64  5.1.8-6.el9  baseos\n")
        self.assertTrue(self.dnf.has_pending_updates())

        self.mock_run.return_value = completed(0)
        self.assertFalse(self.dnf.has_pending_updates())

    def test_lock(self):
        """Test the pid file lock only counts live processes"""
        with tempfile.TemporaryDirectory() as root:
            dnf = DnfPackageManager(root_dir=root)
            self.assertFalse(dnf.is_locked())

            write_file(root, "/var/run/dnf.pid", f"{os.getpid()}\n")
            self.assertTrue(dnf.is_locked())

            write_file(root, "/var/run/dnf.pid", "not a pid\n")
            self.assertFalse(dnf.is_locked())


class TestZypperPackageManager(unittest.TestCase):
    """Test the commands ZypperPackageManager runs"""

    def setUp(self):
        patcher = mock.patch('rocky_migrator.package_managers.base.subprocess.run')
        self.mock_run = patcher.start()
        self.addCleanup(patcher.stop)
        self.mock_run.return_value = completed()
        self.zypper = ZypperPackageManager()

    def test_non_interactive(self):
        self.zypper.install(["rsync"])
        self.assertEqual(self.mock_run.call_args[0][0], ['zypper', '--non-interactive', 'install', 'rsync'])

        self.zypper.update(allow_replace=True)
        self.assertEqual(self.mock_run.call_args[0][0],
                         ['zypper', '--non-interactive', 'update', '--allow-vendor-change'])

    def test_pending_updates(self):
        self.mock_run.return_value = completed(stdout=(
            "S | Repository | Name | Current Version | Available Version | Arch\n"
            "v | SLES15-SP4-Updates | bash | 4.4-1 | 4.4-2 | x86_64\n"
        ))

        self.assertTrue(self.zypper.has_pending_updates())

    def test_mounted_root(self):
        zypper = ZypperPackageManager(root_dir="/mnt/sysimage")

        zypper.refresh_metadata()
        self.assertEqual(self.mock_run.call_args[0][0],
                         ['zypper', '--non-interactive', '--root', '/mnt/sysimage', 'refresh'])

        zypper.import_key("https://dl.rockylinux.org/pub/rocky/RPM-GPG-KEY-rockyofficial")
        self.assertEqual(self.mock_run.call_args[0][0][:3], ['rpm', '--root', '/mnt/sysimage'])


class TestPackageManagerFactory(unittest.TestCase):

    @mock.patch('rocky_migrator.package_managers.base.subprocess.run')
    def test_create(self, mock_run):
        mock_run.return_value = completed()
        factory = PackageManagerFactory("/mnt")

        yum = factory.create('yum')
        self.assertIsInstance(yum, DnfPackageManager)
        self.assertEqual(yum.name, 'yum')
        self.assertEqual(yum.root_dir, "/mnt")
        self.assertIsInstance(factory.create('zypper'), ZypperPackageManager)
        self.assertIsInstance(factory.create('apt'), AptPackageManager)
        with self.assertRaises(ValueError):
            factory.create('pacman')

    @mock.patch('rocky_migrator.package_managers.base.subprocess.run')
    def test_create_for_system(self, mock_run):
        def version(cmd, **kwargs):
            return completed(0 if cmd[0] == 'dnf' else 127)
        mock_run.side_effect = version

        managers = PackageManagerFactory().create_for_system()

        self.assertEqual([manager.name for manager in managers], ['dnf'])


if __name__ == '__main__':
    unittest.main()
