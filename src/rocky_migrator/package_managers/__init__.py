"""
Package system adapters for rocky-migrator.

Each adapter wraps one native package tool behind the PackageManager interface.
"""

from .base import PackageManager
from .factory import PackageManagerFactory
from .apt import AptPackageManager
from .dnf import DnfPackageManager
from .zypper import ZypperPackageManager

__all__ = [
    'PackageManager',
    'PackageManagerFactory',
    'AptPackageManager',
    'DnfPackageManager',
    'ZypperPackageManager',
]
