#!/usr/bin/env python3
"""
Base package manager abstract class and interfaces
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Type
import subprocess
import os
import logging

from ..exceptions import PackageManagerError

logger = logging.getLogger(__name__)


def pid_file_active(path: str) -> bool:
    """Check whether a pid file names a live process"""
    try:
        with open(path, 'r') as f:
            pid = int(f.read().strip() or 0)
    except (OSError, ValueError):
        return False

    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but belongs to another user
        return True
    return True


class PackageManager(ABC):
    """Base class for all package system adapters

    Every operation shells out to the native tooling and treats exit code 0
    as success. Calls block until the tool returns; there is no timeout.
    """

    def __init__(self, name: str, root_dir: str = "/"):
        self.name = name
        self.root_dir = root_dir
        self.available = self._check_available()

    def _check_available(self) -> bool:
        """Check if this package manager is available on the system"""
        try:
            result = subprocess.run(
                [self.name, '--version'],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False
            )
            return result.returncode == 0
        except (FileNotFoundError, PermissionError):
            return False

    def _host_path(self, path: str) -> str:
        return os.path.join(self.root_dir, path.lstrip('/'))

    @property
    def rooted(self) -> bool:
        """Whether commands target a system mounted at root_dir rather than /"""
        return os.path.abspath(self.root_dir) != "/"

    def _environment(self) -> Optional[Dict[str, str]]:
        return None

    def _run_command(self, cmd: List[str]) -> subprocess.CompletedProcess:
        """Run a command and return the result whatever the exit code"""
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
                env=self._environment()
            )
        except FileNotFoundError as e:
            return subprocess.CompletedProcess(cmd, 127, "", str(e))

    def _run_checked(self, cmd: List[str], error_cls: Type[PackageManagerError],
                     description: str) -> subprocess.CompletedProcess:
        """Run a command, raising error_cls on a non-zero exit code"""
        result = self._run_command(cmd)
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            logger.error(f"{description} failed ({' '.join(cmd)}): exit code {result.returncode}")
            if output:
                logger.debug(output)
            raise error_cls(f"{description} failed with exit code {result.returncode}",
                            command=cmd, returncode=result.returncode, output=output)
        return result

    @abstractmethod
    def clean(self) -> None:
        """Drop cached metadata and packages"""
        pass

    @abstractmethod
    def refresh_metadata(self) -> None:
        """Download fresh metadata for the enabled repositories"""
        pass

    @abstractmethod
    def install(self, names: List[str]) -> None:
        """Install packages (names, local paths or URLs)"""
        pass

    @abstractmethod
    def remove(self, names: List[str]) -> None:
        """Remove packages"""
        pass

    @abstractmethod
    def update(self, allow_replace: bool = False) -> None:
        """Update all packages

        Args:
            allow_replace: let the solver erase or replace conflicting packages
        """
        pass

    @abstractmethod
    def autoremove(self) -> None:
        pass

    @abstractmethod
    def list_installed(self) -> List[str]:
        """Names of all installed packages"""
        pass

    @abstractmethod
    def is_repository_healthy(self, repo_id: str) -> bool:
        """Check that a repository is enabled and its metadata is usable"""
        pass

    @abstractmethod
    def import_key(self, url: str) -> None:
        """Import a repository signing key"""
        pass

    @abstractmethod
    def is_locked(self) -> bool:
        """Check whether another process holds the package database lock"""
        pass

    @abstractmethod
    def has_pending_updates(self) -> bool:
        pass
