#!/usr/bin/env python3
"""
Zypper package manager implementation for SUSE systems (SLES, openSUSE Leap)
"""

import logging
from typing import List

from .base import PackageManager, pid_file_active
from ..exceptions import (
    PackageInstallError, PackageRemoveError, PackageUpdateError,
    MetadataError, GPGImportError
)

logger = logging.getLogger(__name__)


class ZypperPackageManager(PackageManager):
    """Package manager for Zypper"""

    def __init__(self, root_dir: str = "/"):
        super().__init__('zypper', root_dir)
        self.rpm_path = 'rpm'
        self.lock_files = [self._host_path('/run/zypp.pid'), self._host_path('/var/run/zypp.pid')]

    def _zypper(self, *args: str) -> List[str]:
        cmd = [self.name, '--non-interactive']
        if self.rooted:
            cmd.extend(['--root', self.root_dir])
        return cmd + list(args)

    def _rpm(self, *args: str) -> List[str]:
        cmd = [self.rpm_path]
        if self.rooted:
            cmd.extend(['--root', self.root_dir])
        return cmd + list(args)

    def clean(self) -> None:
        self._run_checked(self._zypper('clean', '--all'), MetadataError, "Cleaning package cache")

    def refresh_metadata(self) -> None:
        self._run_checked(self._zypper('refresh'), MetadataError, "Refreshing repository metadata")

    def install(self, names: List[str]) -> None:
        if not names:
            return
        logger.info(f"Installing: {' '.join(names)}")
        self._run_checked(self._zypper('install') + list(names),
                          PackageInstallError, f"Installing {' '.join(names)}")

    def remove(self, names: List[str]) -> None:
        if not names:
            return
        logger.info(f"Removing: {' '.join(names)}")
        self._run_checked(self._rpm('-e', '--nodeps', *names),
                          PackageRemoveError, f"Removing {' '.join(names)}")

    def update(self, allow_replace: bool = False) -> None:
        cmd = self._zypper('update')
        if allow_replace:
            cmd.append('--allow-vendor-change')
        self._run_checked(cmd, PackageUpdateError, "Updating packages")

    def autoremove(self) -> None:
        # zypper has no autoremove; purging old kernels is the closest cleanup
        self._run_checked(self._zypper('purge-kernels'), PackageRemoveError, "Purging old kernels")

    def list_installed(self) -> List[str]:
        result = self._run_checked(self._rpm('-qa', '--queryformat', '%{NAME}\\n'),
                                   MetadataError, "Listing installed packages")
        return sorted({line.strip() for line in result.stdout.splitlines() if line.strip()})

    def is_repository_healthy(self, repo_id: str) -> bool:
        result = self._run_command(self._zypper('refresh', repo_id))
        return result.returncode == 0

    def import_key(self, url: str) -> None:
        logger.info(f"Importing GPG key {url}")
        self._run_checked(self._rpm('--import', url), GPGImportError, f"Importing key {url}")

    def is_locked(self) -> bool:
        return any(pid_file_active(path) for path in self.lock_files)

    def has_pending_updates(self) -> bool:
        result = self._run_command(self._zypper('list-updates'))
        if result.returncode != 0:
            return False
        return any(line.startswith('v ') for line in result.stdout.splitlines())
