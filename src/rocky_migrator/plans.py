#!/usr/bin/env python3
"""
Migration plan registry

A declarative table maps a source distribution family and major version range
to everything the orchestrator needs to move that host to Rocky Linux: target
repositories, packages to remove and install, the rollback repositories of the
source, free space requirements and the complexity class that decides which
optional phases run.
"""

import logging
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Dict, Any, List, Optional, Tuple, FrozenSet, Union

from .exceptions import UnsupportedSource
from .utils.inspector import SystemIdentity, DistroFamily, PackageSystem, package_system_for

logger = logging.getLogger(__name__)

GIB = 1024 ** 3

TARGET_FAMILY = DistroFamily.ROCKY_LINUX


class Complexity(Enum):
    """Static difficulty of a family pairing"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Free space required on / for each complexity class
MINIMUM_FREE_SPACE = {
    Complexity.LOW: 5 * GIB,
    Complexity.MEDIUM: 8 * GIB,
    Complexity.HIGH: 10 * GIB,
}


@dataclass(frozen=True)
class RepositorySpec:
    """A repository definition written to the package manager configuration"""
    id: str
    display_name: str
    base_url: str
    enabled: bool = True
    gpg_key_url: str = ""
    priority: int = 99
    gpgcheck: bool = True
    metadata_expire: Optional[int] = None
    # apt only: "<suite> <components>"
    distribution: str = ""

    def render(self, variables: Dict[str, Any]) -> 'RepositorySpec':
        """Substitute {placeholders} in the textual fields"""
        return replace(
            self,
            id=self.id.format(**variables),
            display_name=self.display_name.format(**variables),
            base_url=self.base_url.format(**variables),
            gpg_key_url=self.gpg_key_url.format(**variables),
            distribution=self.distribution.format(**variables),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'id': self.id,
            'display_name': self.display_name,
            'base_url': self.base_url,
            'enabled': self.enabled,
            'gpg_key_url': self.gpg_key_url,
            'priority': self.priority,
            'gpgcheck': self.gpgcheck,
            'metadata_expire': self.metadata_expire,
            'distribution': self.distribution,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RepositorySpec':
        """Create a RepositorySpec from a dictionary"""
        return cls(
            id=data['id'],
            display_name=data.get('display_name', data['id']),
            base_url=data.get('base_url', ''),
            enabled=data.get('enabled', True),
            gpg_key_url=data.get('gpg_key_url', ''),
            priority=data.get('priority', 99),
            gpgcheck=data.get('gpgcheck', True),
            metadata_expire=data.get('metadata_expire'),
            distribution=data.get('distribution', ''),
        )


@dataclass(frozen=True)
class MigrationPlan:
    """How to move one source family/version to the target"""
    source_family: DistroFamily
    source_version_range: Tuple[int, int]
    target_family: DistroFamily
    target_version: str
    target_repositories: Tuple[RepositorySpec, ...]
    packages_to_remove: FrozenSet[str]
    packages_to_install: FrozenSet[str]
    minimum_free_space_bytes: int
    complexity: Complexity
    release_packages: Tuple[str, ...] = ()
    source_release_packages: Tuple[str, ...] = ()
    third_party_packages: Tuple[str, ...] = ()
    gpg_keys: Tuple[str, ...] = ()
    rollback_repositories: Tuple[RepositorySpec, ...] = ()
    source_repository_patterns: Tuple[str, ...] = ()
    conflicting_services: Tuple[str, ...] = ()
    services_to_stop: Tuple[str, ...] = ()
    source_package_manager: str = "dnf"
    target_package_manager: str = "dnf"
    backup_paths: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()

    @property
    def requires_service_stop(self) -> bool:
        return self.complexity in (Complexity.MEDIUM, Complexity.HIGH)

    @property
    def requires_adapter_swap(self) -> bool:
        return self.source_package_manager != self.target_package_manager

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'source_family': self.source_family.value,
            'source_version_range': list(self.source_version_range),
            'target_family': self.target_family.value,
            'target_version': self.target_version,
            'target_repositories': [repo.to_dict() for repo in self.target_repositories],
            'packages_to_remove': sorted(self.packages_to_remove),
            'packages_to_install': sorted(self.packages_to_install),
            'minimum_free_space_bytes': self.minimum_free_space_bytes,
            'complexity': self.complexity.value,
            'release_packages': list(self.release_packages),
            'source_release_packages': list(self.source_release_packages),
            'third_party_packages': list(self.third_party_packages),
            'gpg_keys': list(self.gpg_keys),
            'rollback_repositories': [repo.to_dict() for repo in self.rollback_repositories],
            'source_repository_patterns': list(self.source_repository_patterns),
            'conflicting_services': list(self.conflicting_services),
            'services_to_stop': list(self.services_to_stop),
            'source_package_manager': self.source_package_manager,
            'target_package_manager': self.target_package_manager,
            'backup_paths': list(self.backup_paths),
            'notes': list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MigrationPlan':
        """Create a MigrationPlan from a dictionary"""
        return cls(
            source_family=DistroFamily(data['source_family']),
            source_version_range=tuple(data['source_version_range']),
            target_family=DistroFamily(data['target_family']),
            target_version=data['target_version'],
            target_repositories=tuple(RepositorySpec.from_dict(r) for r in data.get('target_repositories', [])),
            packages_to_remove=frozenset(data.get('packages_to_remove', [])),
            packages_to_install=frozenset(data.get('packages_to_install', [])),
            minimum_free_space_bytes=data['minimum_free_space_bytes'],
            complexity=Complexity(data['complexity']),
            release_packages=tuple(data.get('release_packages', [])),
            source_release_packages=tuple(data.get('source_release_packages', [])),
            third_party_packages=tuple(data.get('third_party_packages', [])),
            gpg_keys=tuple(data.get('gpg_keys', [])),
            rollback_repositories=tuple(RepositorySpec.from_dict(r) for r in data.get('rollback_repositories', [])),
            source_repository_patterns=tuple(data.get('source_repository_patterns', [])),
            conflicting_services=tuple(data.get('conflicting_services', [])),
            services_to_stop=tuple(data.get('services_to_stop', [])),
            source_package_manager=data.get('source_package_manager', 'dnf'),
            target_package_manager=data.get('target_package_manager', 'dnf'),
            backup_paths=tuple(data.get('backup_paths', [])),
            notes=tuple(data.get('notes', [])),
        )


@dataclass(frozen=True)
class AlreadyMigrated:
    """Registry result for a host that already runs the target family

    The orchestrator must get explicit confirmation before using ``plan``,
    which reinstalls the target release and repositories in place.
    """
    identity: SystemIdentity
    plan: MigrationPlan


@dataclass(frozen=True)
class PlanTemplate:
    """One row of the plan table"""
    family: DistroFamily
    versions: Tuple[int, int]
    complexity: Complexity
    # None keeps the source major version
    target_version: Optional[int] = None
    source_package_manager: str = "dnf"
    source_release_packages: Tuple[str, ...] = ()
    extra_packages_to_remove: Tuple[str, ...] = ()
    third_party_packages: Tuple[str, ...] = ()
    rollback_repositories: Tuple[RepositorySpec, ...] = ()
    source_repository_patterns: Tuple[str, ...] = ()
    conflicting_services: Tuple[str, ...] = ()
    services_to_stop: Tuple[str, ...] = ()
    backup_paths: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()

    def contains(self, major: int) -> bool:
        return self.versions[0] <= major <= self.versions[1]


ROCKY_KEY_URLS = {
    8: "https://dl.rockylinux.org/pub/rocky/RPM-GPG-KEY-rockyofficial",
    9: "https://dl.rockylinux.org/pub/rocky/RPM-GPG-KEY-Rocky-9",
}
ROCKY_KEY_FILES = {
    8: "file:///etc/pki/rpm-gpg/RPM-GPG-KEY-rockyofficial",
    9: "file:///etc/pki/rpm-gpg/RPM-GPG-KEY-Rocky-9",
}
ROCKY_MIRROR = "https://dl.rockylinux.org/pub/rocky"

ROCKY_RELEASE_PACKAGES = ("rocky-release",)
ROCKY_BRANDING_PACKAGES = ("rocky-logos", "rocky-backgrounds")
EPEL_RELEASE_URL = "https://dl.fedoraproject.org/pub/epel/epel-release-latest-{major}.noarch.rpm"

RPM_BACKUP_PATHS = (
    "/etc/yum.repos.d/",
    "/etc/sysconfig/network-scripts/",
    "/etc/selinux/config",
    "/etc/redhat-release",
    "/etc/system-release",
    "/etc/centos-release",
    "/etc/oracle-release",
    "/etc/rocky-release",
    "/etc/almalinux-release",
)
SUSE_BACKUP_PATHS = (
    "/etc/zypp/repos.d/",
    "/etc/sysconfig/network/",
    "/etc/SuSE-release",
    "/etc/default/",
    "/etc/environment",
    "/etc/timezone",
    "/etc/locale.conf",
)
DEB_BACKUP_PATHS = (
    "/etc/apt/sources.list",
    "/etc/apt/sources.list.d/",
    "/etc/network/interfaces",
    "/etc/debian_version",
    "/etc/default/",
    "/etc/environment",
    "/etc/timezone",
    "/etc/locale.gen",
)

DEB_CODENAMES = {
    DistroFamily.DEBIAN: {10: "buster", 11: "bullseye", 12: "bookworm"},
    DistroFamily.UBUNTU: {18: "bionic", 20: "focal", 22: "jammy", 24: "noble"},
}

DEB_NOTES = (
    "This is a migration between different package systems (deb to rpm).",
    "No automatic package database conversion is performed; rpm/dnf tooling "
    "must already be present, otherwise the run stops and manual intervention is required.",
    "Applications installed from .deb packages will need to be reinstalled.",
)

PLAN_TABLE: Tuple[PlanTemplate, ...] = (
    PlanTemplate(
        family=DistroFamily.RHEL,
        versions=(7, 9),
        complexity=Complexity.LOW,
        source_release_packages=("redhat-release", "redhat-release-eula"),
        extra_packages_to_remove=("redhat-logos",),
        third_party_packages=("epel-release",),
        rollback_repositories=(
            RepositorySpec("rhel{major}-baseos", "Red Hat Enterprise Linux {major} - BaseOS",
                           "https://cdn.redhat.com/content/dist/rhel{major}/{major}/x86_64/baseos/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-redhat-release"),
            RepositorySpec("rhel{major}-appstream", "Red Hat Enterprise Linux {major} - AppStream",
                           "https://cdn.redhat.com/content/dist/rhel{major}/{major}/x86_64/appstream/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-redhat-release"),
        ),
        source_repository_patterns=("redhat*.repo",),
        conflicting_services=("rhsmcertd",),
        backup_paths=RPM_BACKUP_PATHS,
    ),
    PlanTemplate(
        family=DistroFamily.CENTOS,
        versions=(7, 9),
        complexity=Complexity.LOW,
        source_release_packages=("centos-release", "centos-linux-release", "centos-linux-repos",
                                 "centos-stream-release", "centos-stream-repos"),
        third_party_packages=("epel-release",),
        rollback_repositories=(
            RepositorySpec("centos{major}-base", "CentOS Linux {major} - BaseOS",
                           "http://vault.centos.org/centos/{major}/BaseOS/x86_64/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-centosofficial"),
            RepositorySpec("centos{major}-appstream", "CentOS Linux {major} - AppStream",
                           "http://vault.centos.org/centos/{major}/AppStream/x86_64/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-centosofficial"),
            RepositorySpec("centos{major}-powertools", "CentOS Linux {major} - PowerTools",
                           "http://vault.centos.org/centos/{major}/PowerTools/x86_64/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-centosofficial"),
        ),
        source_repository_patterns=("centos*.repo",),
        backup_paths=RPM_BACKUP_PATHS,
        notes=("CentOS Linux repositories are end-of-life; the rollback descriptor points at vault.centos.org.",),
    ),
    PlanTemplate(
        family=DistroFamily.ORACLE_LINUX,
        versions=(7, 9),
        complexity=Complexity.LOW,
        source_release_packages=("oraclelinux-release", "oraclelinux-release-notes"),
        third_party_packages=("epel-release",),
        rollback_repositories=(
            RepositorySpec("ol{major}-baseos", "Oracle Linux {major} - BaseOS",
                           "https://yum.oracle.com/repo/OracleLinux/OL{major}/baseos/latest/x86_64/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-oracle"),
            RepositorySpec("ol{major}-appstream", "Oracle Linux {major} - AppStream",
                           "https://yum.oracle.com/repo/OracleLinux/OL{major}/appstream/x86_64/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-oracle"),
        ),
        source_repository_patterns=("oracle-linux*.repo", "uek-*.repo", "public-yum*.repo"),
        backup_paths=RPM_BACKUP_PATHS,
    ),
    PlanTemplate(
        family=DistroFamily.ALMALINUX,
        versions=(7, 9),
        complexity=Complexity.LOW,
        source_release_packages=("almalinux-release",),
        extra_packages_to_remove=("almalinux-logos",),
        third_party_packages=("epel-release",),
        rollback_repositories=(
            RepositorySpec("almalinux{major}-baseos", "AlmaLinux {major} - BaseOS",
                           "https://repo.almalinux.org/almalinux/{major}/BaseOS/x86_64/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-AlmaLinux"),
            RepositorySpec("almalinux{major}-appstream", "AlmaLinux {major} - AppStream",
                           "https://repo.almalinux.org/almalinux/{major}/AppStream/x86_64/os/",
                           enabled=False, gpg_key_url="file:///etc/pki/rpm-gpg/RPM-GPG-KEY-AlmaLinux"),
        ),
        source_repository_patterns=("almalinux*.repo",),
        backup_paths=RPM_BACKUP_PATHS,
    ),
    PlanTemplate(
        family=DistroFamily.SLES,
        versions=(12, 15),
        complexity=Complexity.MEDIUM,
        target_version=8,
        source_package_manager="zypper",
        source_release_packages=("sles-release", "suse-release"),
        extra_packages_to_remove=("suse-release-notes", "patterns-sles-base"),
        rollback_repositories=(
            RepositorySpec("sles{major}-product", "SUSE Linux Enterprise Server {version}",
                           "https://updates.suse.com/SUSE/Products/SLE-SERVER/{sle_version}/x86_64/product/",
                           enabled=False),
        ),
        source_repository_patterns=("*.repo",),
        conflicting_services=("SuSEfirewall2", "apparmor", "snapper"),
        services_to_stop=("SuSEfirewall2", "snapper", "apparmor"),
        backup_paths=SUSE_BACKUP_PATHS,
        notes=("This is a migration between different RPM-based systems; some applications will need to be reinstalled.",),
    ),
    PlanTemplate(
        family=DistroFamily.OPENSUSE,
        versions=(15, 15),
        complexity=Complexity.MEDIUM,
        target_version=8,
        source_package_manager="zypper",
        source_release_packages=("openSUSE-release",),
        rollback_repositories=(
            RepositorySpec("repo-oss", "openSUSE Leap {version} - Oss",
                           "http://download.opensuse.org/distribution/leap/{version}/repo/oss/",
                           enabled=False,
                           gpg_key_url="http://download.opensuse.org/distribution/leap/{version}/repo/oss/repodata/repomd.xml.key"),
        ),
        source_repository_patterns=("*.repo",),
        conflicting_services=("SuSEfirewall2", "apparmor", "snapper"),
        services_to_stop=("SuSEfirewall2", "snapper", "apparmor"),
        backup_paths=SUSE_BACKUP_PATHS,
        notes=("This is a migration between different RPM-based systems; some applications will need to be reinstalled.",),
    ),
    PlanTemplate(
        family=DistroFamily.DEBIAN,
        versions=(10, 12),
        complexity=Complexity.HIGH,
        target_version=9,
        source_package_manager="apt",
        source_release_packages=("debian-archive-keyring",),
        rollback_repositories=(
            RepositorySpec("debian-{codename}", "Debian {major} ({codename})",
                           "http://deb.debian.org/debian", enabled=False,
                           distribution="{codename} main"),
        ),
        source_repository_patterns=("*.list", "*.sources"),
        conflicting_services=("snapd", "apparmor"),
        services_to_stop=("snapd",),
        backup_paths=DEB_BACKUP_PATHS,
        notes=DEB_NOTES,
    ),
    PlanTemplate(
        family=DistroFamily.UBUNTU,
        versions=(18, 24),
        complexity=Complexity.HIGH,
        target_version=9,
        source_package_manager="apt",
        source_release_packages=("ubuntu-keyring",),
        extra_packages_to_remove=("ubuntu-release-upgrader-core", "ubuntu-release-upgrader-gtk"),
        rollback_repositories=(
            RepositorySpec("ubuntu-{codename}", "Ubuntu {version} ({codename})",
                           "http://archive.ubuntu.com/ubuntu", enabled=False,
                           distribution="{codename} main restricted universe"),
        ),
        source_repository_patterns=("*.list", "*.sources"),
        conflicting_services=("snapd", "apparmor"),
        services_to_stop=("snapd",),
        backup_paths=DEB_BACKUP_PATHS,
        notes=DEB_NOTES,
    ),
    PlanTemplate(
        family=DistroFamily.ROCKY_LINUX,
        versions=(8, 9),
        complexity=Complexity.LOW,
        source_release_packages=ROCKY_RELEASE_PACKAGES,
        backup_paths=RPM_BACKUP_PATHS,
        notes=("The host already runs Rocky Linux; continuing reinstalls the release package and repositories.",),
    ),
)


def rocky_repositories(major: int) -> Tuple[RepositorySpec, ...]:
    """Target repository set for a Rocky Linux major version, in priority order"""
    key_file = ROCKY_KEY_FILES.get(major, ROCKY_KEY_FILES[8])
    if major < 8:
        # Legacy os/updates/extras layout
        return tuple(
            RepositorySpec(f"rocky-{name.lower()}", f"Rocky Linux {major} - {name}",
                           f"{ROCKY_MIRROR}/{major}/{name.lower()}/$basearch/",
                           enabled=True, gpg_key_url=key_file, priority=priority)
            for name, priority in (("Base", 10), ("Updates", 20), ("Extras", 30))
        )

    # PowerTools was renamed CRB in Rocky Linux 9
    tools = "PowerTools" if major == 8 else "CRB"
    return (
        RepositorySpec("rocky-baseos", f"Rocky Linux {major} - BaseOS",
                       f"{ROCKY_MIRROR}/{major}/BaseOS/$basearch/os/",
                       enabled=True, gpg_key_url=key_file, priority=10, metadata_expire=86400),
        RepositorySpec("rocky-appstream", f"Rocky Linux {major} - AppStream",
                       f"{ROCKY_MIRROR}/{major}/AppStream/$basearch/os/",
                       enabled=True, gpg_key_url=key_file, priority=20, metadata_expire=86400),
        RepositorySpec(f"rocky-{tools.lower()}", f"Rocky Linux {major} - {tools}",
                       f"{ROCKY_MIRROR}/{major}/{tools}/$basearch/os/",
                       enabled=True, gpg_key_url=key_file, priority=30, metadata_expire=86400),
        RepositorySpec("rocky-devel", f"Rocky Linux {major} - Devel",
                       f"{ROCKY_MIRROR}/{major}/Devel/$basearch/os/",
                       enabled=False, gpg_key_url=key_file, priority=90, metadata_expire=86400),
    )


def rpm_tool(major: int) -> str:
    """yum on EL7 and earlier, dnf afterwards"""
    return "yum" if major < 8 else "dnf"


def _template_variables(identity: SystemIdentity) -> Dict[str, Any]:
    major = identity.major_version
    parts = identity.version.split('.')
    sle_version = f"{parts[0]}-SP{parts[1]}" if len(parts) > 1 and parts[1] not in ('', '0') else parts[0]
    variables = {
        'major': major,
        'version': identity.version,
        'sle_version': sle_version,
        'codename': '',
    }
    codenames = DEB_CODENAMES.get(identity.family)
    if codenames is not None:
        if major not in codenames:
            raise UnsupportedSource(
                f"{identity.family.value} {identity.version} is not a supported release",
                remediation=f"Supported releases: {', '.join(str(v) for v in sorted(codenames))}"
            )
        variables['codename'] = codenames[major]
    return variables


class PlanRegistry:
    """Resolves a SystemIdentity to its migration plan"""

    def __init__(self, table: Tuple[PlanTemplate, ...] = PLAN_TABLE,
                 target_family: DistroFamily = TARGET_FAMILY):
        self.table = table
        self.target_family = target_family

    def resolve(self, identity: SystemIdentity) -> Union[MigrationPlan, AlreadyMigrated]:
        """Look up the plan for an identity

        Matching is by exact family first, then by major version containment.
        The result depends only on the identity.

        Raises:
            UnsupportedSource: no row matches
        """
        rows = [row for row in self.table if row.family == identity.family]
        if not rows:
            raise UnsupportedSource(
                f"No migration plan for {identity.family.value}",
                remediation=f"Supported sources: {', '.join(self.supported_sources())}"
            )

        major = identity.major_version
        for row in rows:
            if row.contains(major):
                plan = self._build_plan(row, identity)
                if identity.family == self.target_family:
                    logger.info(f"{identity} already runs the target distribution")
                    return AlreadyMigrated(identity=identity, plan=plan)
                logger.info(f"Selected plan {identity.family.value} {identity.version} -> "
                            f"{plan.target_family.value} {plan.target_version} ({plan.complexity.value})")
                return plan

        ranges = ", ".join(f"{row.versions[0]}-{row.versions[1]}" for row in rows)
        raise UnsupportedSource(
            f"Unsupported version: {identity.family.value} {identity.version}",
            remediation=f"Supported {identity.family.value} versions: {ranges}"
        )

    def supported_sources(self) -> List[str]:
        """Human readable list of supported sources"""
        return [f"{row.family.value} {row.versions[0]}-{row.versions[1]}" for row in self.table]

    def _build_plan(self, row: PlanTemplate, identity: SystemIdentity) -> MigrationPlan:
        variables = _template_variables(identity)
        major = variables['major']
        target_major = row.target_version if row.target_version is not None else major

        source_manager = row.source_package_manager
        if source_manager == "dnf" and package_system_for(row.family) == PackageSystem.RPM:
            source_manager = rpm_tool(major)

        packages_to_remove = frozenset(
            row.source_release_packages + row.extra_packages_to_remove + row.third_party_packages
        ) if identity.family != self.target_family else frozenset()

        packages_to_install = frozenset(
            ROCKY_BRANDING_PACKAGES + (EPEL_RELEASE_URL.format(major=target_major),)
        )

        return MigrationPlan(
            source_family=row.family,
            source_version_range=row.versions,
            target_family=self.target_family,
            target_version=str(target_major),
            target_repositories=rocky_repositories(target_major),
            packages_to_remove=packages_to_remove,
            packages_to_install=packages_to_install,
            minimum_free_space_bytes=MINIMUM_FREE_SPACE[row.complexity],
            complexity=row.complexity,
            release_packages=ROCKY_RELEASE_PACKAGES,
            source_release_packages=row.source_release_packages,
            third_party_packages=row.third_party_packages,
            gpg_keys=(ROCKY_KEY_URLS.get(target_major, ROCKY_KEY_URLS[8]),),
            rollback_repositories=tuple(repo.render(variables) for repo in row.rollback_repositories),
            source_repository_patterns=row.source_repository_patterns,
            conflicting_services=row.conflicting_services,
            services_to_stop=row.services_to_stop,
            source_package_manager=source_manager,
            target_package_manager=rpm_tool(target_major),
            backup_paths=row.backup_paths,
            notes=row.notes,
        )


def describe_plan(plan: MigrationPlan) -> List[str]:
    """Printable summary of a plan"""
    lines = [
        f"Source:            {plan.source_family.value} {plan.source_version_range[0]}-{plan.source_version_range[1]}",
        f"Target:            {plan.target_family.value} {plan.target_version}",
        f"Complexity:        {plan.complexity.value}",
        f"Free space needed: {plan.minimum_free_space_bytes // GIB} GiB",
        f"Package managers:  {plan.source_package_manager} -> {plan.target_package_manager}",
        "Target repositories:",
    ]
    for repo in sorted(plan.target_repositories, key=lambda r: r.priority):
        state = "enabled" if repo.enabled else "disabled"
        lines.append(f"  [{repo.priority:>3}] {repo.id:<20} {state:<9} {repo.base_url}")
    if plan.packages_to_remove:
        lines.append(f"Packages to remove:  {', '.join(sorted(plan.packages_to_remove))}")
    lines.append(f"Release packages:    {', '.join(plan.release_packages)}")
    lines.append(f"Packages to install: {', '.join(sorted(plan.packages_to_install))}")
    if plan.services_to_stop and plan.requires_service_stop:
        lines.append(f"Services to stop:    {', '.join(plan.services_to_stop)}")
    for note in plan.notes:
        lines.append(f"NOTE: {note}")
    return lines
