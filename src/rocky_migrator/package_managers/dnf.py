#!/usr/bin/env python3
"""
DNF/YUM package manager implementation for RHEL-based systems (RHEL, CentOS,
Oracle Linux, AlmaLinux, Rocky Linux)
"""

import logging
from typing import List

from .base import PackageManager, pid_file_active
from ..exceptions import (
    PackageInstallError, PackageRemoveError, PackageUpdateError,
    MetadataError, GPGImportError
)

logger = logging.getLogger(__name__)

# dnf exits with 100 from check-update when updates are available
CHECK_UPDATE_AVAILABLE = 100


class DnfPackageManager(PackageManager):
    """Package manager for DNF, or YUM on EL7

    With a root_dir other than /, dnf runs with --installroot and rpm with
    --root so both act on the mounted system.
    """

    def __init__(self, binary: str = 'dnf', root_dir: str = "/"):
        super().__init__(binary, root_dir)
        self.rpm_path = 'rpm'
        self.lock_files = [
            self._host_path('/var/run/dnf.pid'),
            self._host_path('/var/run/yum.pid'),
        ]

    def _dnf(self, *args: str) -> List[str]:
        cmd = [self.name]
        if self.rooted:
            cmd.append(f"--installroot={self.root_dir}")
        return cmd + list(args)

    def _rpm(self, *args: str) -> List[str]:
        cmd = [self.rpm_path]
        if self.rooted:
            cmd.extend(['--root', self.root_dir])
        return cmd + list(args)

    def clean(self) -> None:
        self._run_checked(self._dnf('clean', 'all'), MetadataError, "Cleaning package cache")

    def refresh_metadata(self) -> None:
        self._run_checked(self._dnf('makecache'), MetadataError, "Refreshing repository metadata")

    def install(self, names: List[str]) -> None:
        if not names:
            return
        logger.info(f"Installing: {' '.join(names)}")
        self._run_checked(self._dnf('install', '-y', *names),
                          PackageInstallError, f"Installing {' '.join(names)}")

    def remove(self, names: List[str]) -> None:
        """Remove packages without touching their dependents

        Identity packages are depended upon by most of the base system, so the
        solver is bypassed and rpm erases exactly the named packages.
        """
        if not names:
            return
        logger.info(f"Removing: {' '.join(names)}")
        self._run_checked(self._rpm('-e', '--nodeps', *names),
                          PackageRemoveError, f"Removing {' '.join(names)}")

    def update(self, allow_replace: bool = False) -> None:
        cmd = self._dnf('update', '-y')
        # yum has no --allowerasing
        if allow_replace and self.name == 'dnf':
            cmd.append('--allowerasing')
        self._run_checked(cmd, PackageUpdateError, "Updating packages")

    def autoremove(self) -> None:
        self._run_checked(self._dnf('autoremove', '-y'), PackageRemoveError, "Removing unneeded packages")

    def list_installed(self) -> List[str]:
        result = self._run_checked(self._rpm('-qa', '--queryformat', '%{NAME}\\n'),
                                   MetadataError, "Listing installed packages")
        return sorted({line.strip() for line in result.stdout.splitlines() if line.strip()})

    def is_repository_healthy(self, repo_id: str) -> bool:
        result = self._run_command(self._dnf('repolist', '--enabled'))
        if result.returncode != 0:
            logger.debug(f"repolist failed: {result.stderr.strip()}")
            return False
        for line in result.stdout.splitlines():
            fields = line.split()
            if fields and fields[0].split('/')[0] == repo_id:
                return True
        return False

    def import_key(self, url: str) -> None:
        logger.info(f"Importing GPG key {url}")
        self._run_checked(self._rpm('--import', url), GPGImportError, f"Importing key {url}")

    def is_locked(self) -> bool:
        for path in self.lock_files:
            if pid_file_active(path):
                logger.debug(f"Package database lock held: {path}")
                return True
        return False

    def has_pending_updates(self) -> bool:
        result = self._run_command(self._dnf('check-update', '--quiet'))
        return result.returncode == CHECK_UPDATE_AVAILABLE
