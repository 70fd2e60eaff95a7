#!/usr/bin/env python3
"""
APT package manager implementation for Debian-based systems
"""

import os
import fcntl
import logging
from typing import List, Optional, Dict

from .base import PackageManager
from ..exceptions import (
    PackageInstallError, PackageRemoveError, PackageUpdateError,
    MetadataError, GPGImportError
)

logger = logging.getLogger(__name__)

DPKG_LOCK_FILES = [
    '/var/lib/dpkg/lock-frontend',
    '/var/lib/dpkg/lock',
    '/var/lib/apt/lists/lock',
]


class AptPackageManager(PackageManager):
    """Package manager for APT (Debian, Ubuntu, etc.)"""

    def __init__(self, root_dir: str = "/"):
        super().__init__('apt-get', root_dir)
        self.dpkg_query_path = 'dpkg-query'
        self.apt_cache_path = 'apt-cache'
        self.lock_files = [self._host_path(path) for path in DPKG_LOCK_FILES]

    def _environment(self) -> Optional[Dict[str, str]]:
        env = dict(os.environ)
        env['DEBIAN_FRONTEND'] = 'noninteractive'
        return env

    def _root_options(self) -> List[str]:
        """apt options that point it and dpkg at the mounted system"""
        if not self.rooted:
            return []
        return ['-o', f"Dir={self.root_dir}", '-o', f"DPkg::Chroot-Directory={self.root_dir}"]

    def _apt(self, *args: str) -> List[str]:
        return [self.name] + self._root_options() + list(args)

    def clean(self) -> None:
        self._run_checked(self._apt('clean'), MetadataError, "Cleaning package cache")

    def refresh_metadata(self) -> None:
        self._run_checked(self._apt('update'), MetadataError, "Refreshing repository metadata")

    def install(self, names: List[str]) -> None:
        if not names:
            return
        logger.info(f"Installing: {' '.join(names)}")
        self._run_checked(self._apt('install', '-y', *names),
                          PackageInstallError, f"Installing {' '.join(names)}")

    def remove(self, names: List[str]) -> None:
        if not names:
            return
        logger.info(f"Removing: {' '.join(names)}")
        self._run_checked(self._apt('remove', '-y', *names),
                          PackageRemoveError, f"Removing {' '.join(names)}")

    def update(self, allow_replace: bool = False) -> None:
        command = 'dist-upgrade' if allow_replace else 'upgrade'
        self._run_checked(self._apt('-y', command), PackageUpdateError, "Updating packages")

    def autoremove(self) -> None:
        self._run_checked(self._apt('autoremove', '-y'), PackageRemoveError, "Removing unneeded packages")

    def list_installed(self) -> List[str]:
        cmd = [self.dpkg_query_path]
        if self.rooted:
            cmd.append(f"--admindir={self._host_path('/var/lib/dpkg')}")
        result = self._run_checked(cmd + ['-W', '-f=${Package} ${Status}\\n'],
                                   MetadataError, "Listing installed packages")
        names = set()
        for line in result.stdout.splitlines():
            parts = line.split()
            # "<name> install ok installed"
            if len(parts) >= 4 and parts[-1] == 'installed':
                names.add(parts[0])
        return sorted(names)

    def is_repository_healthy(self, repo_id: str) -> bool:
        result = self._run_command([self.apt_cache_path] + self._root_options() + ['policy'])
        return result.returncode == 0 and repo_id in result.stdout

    def import_key(self, url: str) -> None:
        logger.info(f"Importing GPG key {url}")
        cmd = ['apt-key']
        if self.rooted:
            cmd.extend(['--keyring', self._host_path('/etc/apt/trusted.gpg')])
        self._run_checked(cmd + ['adv', '--fetch-keys', url], GPGImportError, f"Importing key {url}")

    def is_locked(self) -> bool:
        """Probe the dpkg locks the way apt itself does, with fcntl"""
        for path in self.lock_files:
            if not os.path.exists(path):
                continue
            try:
                fd = os.open(path, os.O_RDWR)
            except OSError as e:
                logger.debug(f"Cannot open {path}: {e}")
                continue
            try:
                fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                logger.debug(f"Package database lock held: {path}")
                return True
            else:
                fcntl.lockf(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
        return False

    def has_pending_updates(self) -> bool:
        result = self._run_command(self._apt('-s', 'upgrade'))
        if result.returncode != 0:
            return False
        return any(line.startswith('Inst ') for line in result.stdout.splitlines())
