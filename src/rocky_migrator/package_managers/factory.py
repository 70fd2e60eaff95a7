#!/usr/bin/env python3
"""
Package manager factory implementation
"""

import logging
from typing import List

from .base import PackageManager
from .apt import AptPackageManager
from .dnf import DnfPackageManager
from .zypper import ZypperPackageManager

logger = logging.getLogger(__name__)

SUPPORTED_MANAGERS = ('dnf', 'yum', 'zypper', 'apt')


class PackageManagerFactory:
    """Factory for creating package system adapters by name"""

    def __init__(self, root_dir: str = "/"):
        self.root_dir = root_dir

    def create(self, name: str) -> PackageManager:
        """Create the adapter for a package manager name

        Raises:
            ValueError: the name is not a known package manager
        """
        if name in ('dnf', 'yum'):
            return DnfPackageManager(binary=name, root_dir=self.root_dir)
        if name == 'zypper':
            return ZypperPackageManager(root_dir=self.root_dir)
        if name in ('apt', 'apt-get'):
            return AptPackageManager(root_dir=self.root_dir)
        raise ValueError(f"Unknown package manager: {name}")

    def create_for_system(self) -> List[PackageManager]:
        """Create all package managers available on the current system"""
        package_managers = []

        for name in SUPPORTED_MANAGERS:
            manager = self.create(name)
            if manager.available:
                logger.info(f"Package manager available: {manager.name}")
                package_managers.append(manager)
            else:
                logger.debug(f"Package manager not available: {manager.name}")

        return package_managers
