#!/usr/bin/env python3
"""
Tests for distribution detection
"""

import unittest
import tempfile

from rocky_migrator.exceptions import UnreadableReleaseInfo
from rocky_migrator.testing import os_release, write_file
from rocky_migrator.utils.inspector import (
    SystemInspector, SystemIdentity, DistroFamily, PackageSystem, package_system_for
)


class TestSystemInspector(unittest.TestCase):
    """Test SystemInspector against temporary root trees"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name
        self.inspector = SystemInspector(self.root)

    def tearDown(self):
        self.tmp.cleanup()

    def test_os_release_rhel(self):
        """Test detecting RHEL from os-release"""
        write_file(self.root, "/etc/os-release", os_release("rhel", "Red Hat Enterprise Linux", "8.9"))

        identity = self.inspector.inspect()

        self.assertEqual(identity.family, DistroFamily.RHEL)
        self.assertEqual(identity.version, "8.9")
        self.assertEqual(identity.major_version, 8)
        self.assertEqual(identity.package_system, PackageSystem.RPM)
        self.assertEqual(identity.raw_release_string, "Red Hat Enterprise Linux 8.9")

    def test_os_release_families(self):
        """Test os-release IDs of every supported family"""
        cases = [
            ("centos", "8", DistroFamily.CENTOS, PackageSystem.RPM),
            ("ol", "9.3", DistroFamily.ORACLE_LINUX, PackageSystem.RPM),
            ("almalinux", "9.3", DistroFamily.ALMALINUX, PackageSystem.RPM),
            ("rocky", "9.3", DistroFamily.ROCKY_LINUX, PackageSystem.RPM),
            ("sles", "15.4", DistroFamily.SLES, PackageSystem.RPM),
            ("opensuse-leap", "15.5", DistroFamily.OPENSUSE, PackageSystem.RPM),
            ("debian", "11", DistroFamily.DEBIAN, PackageSystem.DEB),
            ("ubuntu", "22.04", DistroFamily.UBUNTU, PackageSystem.DEB),
        ]
        for os_id, version, family, package_system in cases:
            with self.subTest(os_id=os_id):
                write_file(self.root, "/etc/os-release", os_release(os_id, os_id.title(), version))
                identity = self.inspector.inspect()
                self.assertEqual(identity.family, family)
                self.assertEqual(identity.version, version)
                self.assertEqual(identity.package_system, package_system)

    def test_usr_lib_os_release(self):
        """Test falling back to /usr/lib/os-release"""
        write_file(self.root, "/usr/lib/os-release", os_release("centos", "CentOS Linux", "8"))

        identity = self.inspector.inspect()

        self.assertEqual(identity.family, DistroFamily.CENTOS)

    def test_release_descriptor_fallback(self):
        """Test legacy release descriptors when os-release is absent"""
        write_file(self.root, "/etc/centos-release", "CentOS Linux release 7.9.2009 (Core)\n")
        write_file(self.root, "/etc/redhat-release", "CentOS Linux release 7.9.2009 (Core)\n")

        identity = self.inspector.inspect()

        self.assertEqual(identity.family, DistroFamily.CENTOS)
        self.assertEqual(identity.version, "7.9.2009")
        self.assertEqual(identity.major_version, 7)
        self.assertEqual(identity.raw_release_string, "CentOS Linux release 7.9.2009 (Core)")

    def test_unknown_os_release_uses_descriptors(self):
        """Test an unrecognized os-release ID falls through to descriptors"""
        write_file(self.root, "/etc/os-release", os_release("arch", "Arch Linux", "rolling"))
        write_file(self.root, "/etc/redhat-release", "Red Hat Enterprise Linux Server release 7.9 (Maipo)\n")

        identity = self.inspector.inspect()

        self.assertEqual(identity.family, DistroFamily.RHEL)
        self.assertEqual(identity.version, "7.9")

    def test_suse_release(self):
        write_file(self.root, "/etc/SuSE-release",
                   "SUSE Linux Enterprise Server 12 (x86_64)\nVERSION = 12\nPATCHLEVEL = 5\n")

        identity = self.inspector.inspect()

        self.assertEqual(identity.family, DistroFamily.SLES)
        self.assertEqual(identity.major_version, 12)

    def test_debian_version(self):
        write_file(self.root, "/etc/debian_version", "11.7\n")

        identity = self.inspector.inspect()

        self.assertEqual(identity.family, DistroFamily.DEBIAN)
        self.assertEqual(identity.package_system, PackageSystem.DEB)
        self.assertEqual(identity.major_version, 11)

    def test_nothing_recognizable(self):
        """Test an empty root raises UnreadableReleaseInfo"""
        with self.assertRaises(UnreadableReleaseInfo):
            self.inspector.inspect()

    def test_unparseable_version(self):
        """Test a recognized family without a numeric version"""
        write_file(self.root, "/etc/os-release", os_release("rhel", "Red Hat Enterprise Linux", "unknown"))

        with self.assertRaises(UnreadableReleaseInfo):
            self.inspector.inspect()

    def test_parse_release_string(self):
        self.assertEqual(
            SystemInspector.parse_release_string("Rocky Linux release 8.9 (Green Obsidian)"),
            (DistroFamily.ROCKY_LINUX, "8.9")
        )
        self.assertEqual(
            SystemInspector.parse_release_string("Oracle Linux Server release 8.8"),
            (DistroFamily.ORACLE_LINUX, "8.8")
        )
        self.assertIsNone(SystemInspector.parse_release_string("Gentoo Base System release 2.14"))
        self.assertIsNone(SystemInspector.parse_release_string("bookworm/sid", "etc/debian_version"))
        with self.assertRaises(UnreadableReleaseInfo):
            SystemInspector.parse_release_string("Red Hat Enterprise Linux")


class TestSystemIdentity(unittest.TestCase):
    """Test SystemIdentity serialization"""

    def test_round_trip_dict(self):
        identity = SystemIdentity(DistroFamily.UBUNTU, "22.04", PackageSystem.DEB, "Ubuntu 22.04.3 LTS")

        restored = SystemIdentity.from_dict(identity.to_dict())

        self.assertEqual(restored, identity)

    def test_from_dict_derives_package_system(self):
        identity = SystemIdentity.from_dict({'family': 'Debian', 'version': '12'})

        self.assertEqual(identity.package_system, PackageSystem.DEB)
        self.assertEqual(package_system_for(DistroFamily.SLES), PackageSystem.RPM)


if __name__ == '__main__':
    unittest.main()
