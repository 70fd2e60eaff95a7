#!/usr/bin/env python3
"""
Distribution detection utilities for Rocky Migrator
"""

import os
import re
import json
import shutil
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple

import distro

from ..exceptions import UnreadableReleaseInfo

logger = logging.getLogger(__name__)


class DistroFamily(Enum):
    """Distribution families the migrator knows how to recognize"""
    RHEL = "RHEL"
    CENTOS = "CentOS"
    ORACLE_LINUX = "OracleLinux"
    ALMALINUX = "AlmaLinux"
    ROCKY_LINUX = "RockyLinux"
    SLES = "SLES"
    OPENSUSE = "OpenSUSE"
    DEBIAN = "Debian"
    UBUNTU = "Ubuntu"


class PackageSystem(Enum):
    """Package formats"""
    RPM = "RPM"
    DEB = "DEB"


DEB_FAMILIES = frozenset({DistroFamily.DEBIAN, DistroFamily.UBUNTU})

# os-release ID values
OS_RELEASE_IDS = {
    'rhel': DistroFamily.RHEL,
    'redhat': DistroFamily.RHEL,
    'centos': DistroFamily.CENTOS,
    'ol': DistroFamily.ORACLE_LINUX,
    'oracle': DistroFamily.ORACLE_LINUX,
    'almalinux': DistroFamily.ALMALINUX,
    'rocky': DistroFamily.ROCKY_LINUX,
    'sles': DistroFamily.SLES,
    'sled': DistroFamily.SLES,
    'opensuse': DistroFamily.OPENSUSE,
    'opensuse-leap': DistroFamily.OPENSUSE,
    'opensuse-tumbleweed': DistroFamily.OPENSUSE,
    'debian': DistroFamily.DEBIAN,
    'ubuntu': DistroFamily.UBUNTU,
}

# Release descriptors checked when os-release is missing or unrecognized.
# Order matters: redhat-release exists on every RHEL rebuild.
RELEASE_DESCRIPTORS = [
    'etc/rocky-release',
    'etc/almalinux-release',
    'etc/centos-release',
    'etc/oracle-release',
    'etc/redhat-release',
    'etc/SuSE-release',
    'etc/debian_version',
]

# Name tokens found in release descriptor text
RELEASE_NAME_PATTERNS = [
    (re.compile(r'Red Hat Enterprise Linux', re.IGNORECASE), DistroFamily.RHEL),
    (re.compile(r'CentOS', re.IGNORECASE), DistroFamily.CENTOS),
    (re.compile(r'Oracle Linux', re.IGNORECASE), DistroFamily.ORACLE_LINUX),
    (re.compile(r'AlmaLinux', re.IGNORECASE), DistroFamily.ALMALINUX),
    (re.compile(r'Rocky Linux', re.IGNORECASE), DistroFamily.ROCKY_LINUX),
    (re.compile(r'SUSE Linux Enterprise', re.IGNORECASE), DistroFamily.SLES),
    (re.compile(r'openSUSE', re.IGNORECASE), DistroFamily.OPENSUSE),
]

RELEASE_VERSION_PATTERN = re.compile(r'release\s+(\d+(?:\.\d+)*)', re.IGNORECASE)
SUSE_VERSION_PATTERN = re.compile(r'^VERSION\s*=\s*(\d+(?:\.\d+)*)', re.MULTILINE)
MAJOR_VERSION_PATTERN = re.compile(r'^(\d+)')


def package_system_for(family: DistroFamily) -> PackageSystem:
    """Package format used by a distribution family"""
    return PackageSystem.DEB if family in DEB_FAMILIES else PackageSystem.RPM


@dataclass(frozen=True)
class SystemIdentity:
    """Identity of the host distribution, produced once per inspection"""
    family: DistroFamily
    version: str
    package_system: PackageSystem
    raw_release_string: str = ""

    @property
    def major_version(self) -> int:
        match = MAJOR_VERSION_PATTERN.match(self.version)
        if not match:
            raise UnreadableReleaseInfo(f"Version '{self.version}' has no numeric major component")
        return int(match.group(1))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'family': self.family.value,
            'version': self.version,
            'package_system': self.package_system.value,
            'raw_release_string': self.raw_release_string,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SystemIdentity':
        """Create a SystemIdentity from a dictionary"""
        family = DistroFamily(data['family'])
        package_system = data.get('package_system')
        return cls(
            family=family,
            version=str(data.get('version', '')),
            package_system=PackageSystem(package_system) if package_system else package_system_for(family),
            raw_release_string=data.get('raw_release_string', ''),
        )

    def __str__(self) -> str:
        return f"{self.family.value} {self.version} ({self.package_system.value})"


class SystemInspector:
    """Reads the host identity from release descriptors under a root directory"""

    def __init__(self, root_dir: str = "/"):
        self.root_dir = root_dir

    def _path(self, relative: str) -> str:
        return os.path.join(self.root_dir, relative)

    def inspect(self) -> SystemIdentity:
        """Detect the current distribution

        Raises:
            UnreadableReleaseInfo: no descriptor was recognized or its version
                could not be parsed
        """
        identity = self._from_os_release()
        if identity is None:
            identity = self._from_release_descriptors()

        if identity is None:
            raise UnreadableReleaseInfo(
                f"No recognizable release descriptor found under {self.root_dir}",
                remediation="Check that /etc/os-release or /etc/redhat-release is present and readable"
            )

        logger.info(f"Detected distribution: {identity}")
        return identity

    def _from_os_release(self) -> Optional[SystemIdentity]:
        """Parse os-release through the distro library"""
        for candidate in ('etc/os-release', 'usr/lib/os-release'):
            path = self._path(candidate)
            if not os.path.isfile(path):
                continue

            info = distro.LinuxDistribution(
                include_lsb=False,
                include_uname=False,
                os_release_file=path,
                distro_release_file=os.devnull,
            ).os_release_info()

            os_id = info.get('id', '').lower()
            family = OS_RELEASE_IDS.get(os_id)
            if family is None:
                logger.debug(f"Unrecognized os-release ID '{os_id}' in {path}")
                return None

            version = info.get('version_id', '')
            if not MAJOR_VERSION_PATTERN.match(version):
                raise UnreadableReleaseInfo(
                    f"Cannot parse version '{version}' from {path}",
                    details=json.dumps(info)
                )

            raw = info.get('pretty_name') or f"{info.get('name', os_id)} {version}"
            return SystemIdentity(family, version, package_system_for(family), raw)

        return None

    def _from_release_descriptors(self) -> Optional[SystemIdentity]:
        """Parse legacy release files using pattern extraction"""
        for candidate in RELEASE_DESCRIPTORS:
            path = self._path(candidate)
            if not os.path.isfile(path):
                continue

            try:
                with open(path, 'r') as f:
                    content = f.read().strip()
            except OSError as e:
                logger.warning(f"Could not read {path}: {e}")
                continue

            parsed = self.parse_release_string(content, candidate)
            if parsed is None:
                logger.debug(f"Unrecognized release descriptor content in {path}: {content!r}")
                continue

            family, version = parsed
            logger.debug(f"Detected distribution from {path}: {family.value} {version}")
            return SystemIdentity(family, version, package_system_for(family), content.splitlines()[0])

        return None

    @staticmethod
    def parse_release_string(content: str, descriptor: str = "") -> Optional[Tuple[DistroFamily, str]]:
        """Extract (family, version) from release descriptor text"""
        if descriptor.endswith('debian_version'):
            match = MAJOR_VERSION_PATTERN.match(content)
            return (DistroFamily.DEBIAN, content.split()[0]) if match else None

        family = None
        for pattern, candidate in RELEASE_NAME_PATTERNS:
            if pattern.search(content):
                family = candidate
                break
        if family is None:
            return None

        match = RELEASE_VERSION_PATTERN.search(content) or SUSE_VERSION_PATTERN.search(content)
        if not match:
            raise UnreadableReleaseInfo(f"Cannot parse a version from release string: {content!r}")
        return family, match.group(1)


def free_disk_space(path: str = "/") -> int:
    """Free bytes available on the filesystem holding path"""
    return shutil.disk_usage(path).free


def get_system_identity(root_dir: str = "/") -> SystemIdentity:
    """Get the identity of the current distribution"""
    return SystemInspector(root_dir).inspect()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    identity = get_system_identity()
    print(identity)
    print(json.dumps(identity.to_dict(), indent=2))
