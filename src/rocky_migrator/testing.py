#!/usr/bin/env python3
"""
In-memory stand-ins used by the test suite

FakePackageManager keeps its package database in a set and can drop files
into a root directory when a package is installed, which is how the tests
make a temporary tree change identity the way a real release package does.
"""

import os
from typing import Dict, Iterable, List, Optional

from .exceptions import (
    PackageInstallError, PackageRemoveError, PackageUpdateError,
    MetadataError, GPGImportError
)
from .package_managers.base import PackageManager

OS_RELEASE_TEMPLATE = """NAME="{name}"
VERSION="{version}"
ID="{id}"
VERSION_ID="{version}"
PRETTY_NAME="{name} {version}"
"""


def os_release(os_id: str, name: str, version: str) -> str:
    return OS_RELEASE_TEMPLATE.format(id=os_id, name=name, version=version)


def write_file(root_dir: str, path: str, content: str) -> str:
    full_path = os.path.join(root_dir, path.lstrip('/'))
    os.makedirs(os.path.dirname(full_path), exist_ok=True)
    with open(full_path, 'w') as f:
        f.write(content)
    return full_path


def read_file(root_dir: str, path: str) -> str:
    with open(os.path.join(root_dir, path.lstrip('/')), 'r') as f:
        return f.read()


class FakePackageManager(PackageManager):
    """Package manager backed by a Python set"""

    def __init__(self, name: str = 'dnf', root_dir: str = "/",
                 installed: Iterable[str] = (),
                 package_files: Optional[Dict[str, Dict[str, str]]] = None,
                 fail_install: Iterable[str] = (),
                 fail_remove: Iterable[str] = (),
                 fail_refresh: bool = False,
                 fail_import: bool = False,
                 fail_update: bool = False,
                 fail_list: bool = False,
                 locked: bool = False,
                 pending_updates: bool = False,
                 healthy: bool = True):
        self.installed = set(installed)
        self.package_files = package_files or {}
        self.fail_install = set(fail_install)
        self.fail_remove = set(fail_remove)
        self.fail_refresh = fail_refresh
        self.fail_import = fail_import
        self.fail_update = fail_update
        self.fail_list = fail_list
        self.locked = locked
        self.pending_updates = pending_updates
        self.healthy = healthy
        self.calls: List[tuple] = []
        self.imported_keys: List[str] = []
        super().__init__(name, root_dir)

    def _check_available(self) -> bool:
        return True

    def clean(self) -> None:
        self.calls.append(('clean',))

    def refresh_metadata(self) -> None:
        self.calls.append(('refresh_metadata',))
        if self.fail_refresh:
            raise MetadataError("metadata download failed", command=[self.name, 'makecache'], returncode=1)

    def install(self, names: List[str]) -> None:
        self.calls.append(('install', tuple(names)))
        failing = [name for name in names if name in self.fail_install]
        if failing:
            raise PackageInstallError(f"No package {' '.join(failing)} available",
                                      command=[self.name, 'install'] + list(names), returncode=1)
        for name in names:
            self.installed.add(name)
            for path, content in self.package_files.get(name, {}).items():
                write_file(self.root_dir, path, content)

    def remove(self, names: List[str]) -> None:
        self.calls.append(('remove', tuple(names)))
        failing = [name for name in names if name in self.fail_remove]
        if failing:
            raise PackageRemoveError(f"Cannot remove {' '.join(failing)}", returncode=1)
        self.installed.difference_update(names)

    def update(self, allow_replace: bool = False) -> None:
        self.calls.append(('update', allow_replace))
        if self.fail_update:
            raise PackageUpdateError("update failed", returncode=1)

    def autoremove(self) -> None:
        self.calls.append(('autoremove',))

    def list_installed(self) -> List[str]:
        if self.fail_list:
            raise MetadataError("rpm database is broken", returncode=1)
        return sorted(self.installed)

    def is_repository_healthy(self, repo_id: str) -> bool:
        return self.healthy

    def import_key(self, url: str) -> None:
        self.calls.append(('import_key', url))
        if self.fail_import:
            raise GPGImportError(f"cannot fetch {url}", returncode=1)
        self.imported_keys.append(url)

    def is_locked(self) -> bool:
        return self.locked

    def has_pending_updates(self) -> bool:
        return self.pending_updates

    def called(self, operation: str) -> bool:
        return any(call[0] == operation for call in self.calls)


class FakePackageManagerFactory:
    """Hands out preconfigured fakes by package manager name"""

    def __init__(self, managers: Dict[str, FakePackageManager]):
        self.managers = managers
        self.created: List[str] = []

    def create(self, name: str) -> FakePackageManager:
        self.created.append(name)
        if name not in self.managers:
            raise ValueError(f"Unknown package manager: {name}")
        return self.managers[name]


class FakeServiceManager:
    """Service manager that never touches systemd"""

    def __init__(self, active: Iterable[str] = (), system_state: str = "running"):
        self.active = set(active)
        self.stopped: List[str] = []
        self.state = system_state

    def is_active(self, service: str) -> bool:
        return service in self.active

    def stop_active(self, services: List[str]) -> List[str]:
        for service in services:
            if service in self.active and service != 'sshd':
                self.active.discard(service)
                self.stopped.append(service)
        return []

    def system_state(self) -> str:
        return self.state
