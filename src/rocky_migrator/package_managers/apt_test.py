#!/usr/bin/env python3
"""
Tests for the APT adapter
"""

import os
import fcntl
import subprocess
import unittest
import tempfile
from unittest import mock

from rocky_migrator.exceptions import PackageUpdateError
from rocky_migrator.package_managers.apt import AptPackageManager
from rocky_migrator.testing import write_file


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess([], returncode, stdout, stderr)


class TestAptPackageManager(unittest.TestCase):
    """Test the commands AptPackageManager runs"""

    def setUp(self):
        patcher = mock.patch('rocky_migrator.package_managers.base.subprocess.run')
        self.mock_run = patcher.start()
        self.addCleanup(patcher.stop)
        self.mock_run.return_value = completed()
        self.apt = AptPackageManager()

    def test_noninteractive_environment(self):
        self.apt.install(["rsync"])

        args, kwargs = self.mock_run.call_args
        self.assertEqual(args[0], ['apt-get', 'install', '-y', 'rsync'])
        self.assertEqual(kwargs['env']['DEBIAN_FRONTEND'], 'noninteractive')

    def test_update(self):
        self.apt.update()
        self.assertEqual(self.mock_run.call_args[0][0], ['apt-get', '-y', 'upgrade'])

        self.apt.update(allow_replace=True)
        self.assertEqual(self.mock_run.call_args[0][0], ['apt-get', '-y', 'dist-upgrade'])

    def test_update_failure(self):
        self.mock_run.return_value = completed(100, stderr="E: Unable to fetch some archives")

        with self.assertRaises(PackageUpdateError):
            self.apt.update()

    def test_list_installed(self):
        """Test only fully installed packages are listed"""
        self.mock_run.return_value = completed(stdout=(
            "bash install ok installed\n"
            "libfoo1 deinstall ok config-files\n"
            "debian-archive-keyring install ok installed\n"
        ))

        self.assertEqual(self.apt.list_installed(), ["bash", "debian-archive-keyring"])

    def test_mounted_root(self):
        """Test apt, dpkg-query and apt-key are pointed at the mounted system"""
        apt = AptPackageManager(root_dir="/mnt/sysimage")

        apt.install(["rsync"])
        self.assertEqual(self.mock_run.call_args[0][0],
                         ['apt-get', '-o', 'Dir=/mnt/sysimage', '-o', 'DPkg::Chroot-Directory=/mnt/sysimage',
                          'install', '-y', 'rsync'])

        apt.list_installed()
        self.assertEqual(self.mock_run.call_args[0][0][:2],
                         ['dpkg-query', '--admindir=/mnt/sysimage/var/lib/dpkg'])

        apt.import_key("https://example.org/key.asc")
        self.assertEqual(self.mock_run.call_args[0][0][:3],
                         ['apt-key', '--keyring', '/mnt/sysimage/etc/apt/trusted.gpg'])

    def test_pending_updates(self):
        self.mock_run.return_value = completed(stdout=(
            "Reading package lists...\n"
            "Inst bash [5.1-2] (5.1-2+deb11u1 Debian-Security:11/stable-security [amd64])\n"
        ))
        self.assertTrue(self.apt.has_pending_updates())

        self.mock_run.return_value = completed(stdout="0 upgraded, 0 newly installed\n")
        self.assertFalse(self.apt.has_pending_updates())

    def test_repository_health(self):
        self.mock_run.return_value = completed(stdout=(
            " 500 http://deb.debian.org/debian bullseye/main amd64 Packages\n"
        ))

        self.assertTrue(self.apt.is_repository_healthy("deb.debian.org/debian bullseye"))
        self.assertFalse(self.apt.is_repository_healthy("archive.ubuntu.com"))

    def test_lock(self):
        """Test the dpkg lock is detected through fcntl"""
        with tempfile.TemporaryDirectory() as root:
            apt = AptPackageManager(root_dir=root)
            self.assertFalse(apt.is_locked())

            lock_path = write_file(root, "/var/lib/dpkg/lock-frontend", "")
            self.assertFalse(apt.is_locked())

            # fcntl locks are per process, so a child has to hold it
            locked_r, locked_w = os.pipe()
            release_r, release_w = os.pipe()
            pid = os.fork()
            if pid == 0:
                fd = os.open(lock_path, os.O_RDWR)
                fcntl.lockf(fd, fcntl.LOCK_EX)
                os.write(locked_w, b"x")
                os.read(release_r, 1)
                os._exit(0)

            try:
                os.read(locked_r, 1)
                self.assertTrue(apt.is_locked())
            finally:
                os.write(release_w, b"x")
                os.waitpid(pid, 0)
                for fd in (locked_r, locked_w, release_r, release_w):
                    os.close(fd)


if __name__ == '__main__':
    unittest.main()
