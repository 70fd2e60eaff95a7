#!/usr/bin/env python3
"""
Pre-migration backup

Captures configuration files, the installed package inventory, the repository
configuration directories and optionally user home directories into a
timestamped directory, and describes the result in a ``snapshot.json``
manifest that rollback reads back.
"""

import os
import json
import shutil
import fnmatch
import tarfile
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple, Iterable

from .exceptions import BackupVerificationFailed, PackageManagerError
from .package_managers.base import PackageManager
from .utils.inspector import SystemIdentity
from .utils.progress import ProgressTracker, OperationType

logger = logging.getLogger(__name__)

MANIFEST_NAME = "snapshot.json"
INVENTORY_NAME = "installed_packages.txt"
REPOSITORIES_DIR = "repositories"
USERS_DIR = "users"

# Names the backup itself writes; configuration copies never take them
RESERVED_NAMES = frozenset((MANIFEST_NAME, INVENTORY_NAME, REPOSITORIES_DIR, USERS_DIR))

# Configuration backed up for every source family
COMMON_CONFIG_PATHS = (
    "/etc/os-release",
    "/etc/passwd",
    "/etc/group",
    "/etc/shadow",
    "/etc/gshadow",
    "/etc/hosts",
    "/etc/hostname",
    "/etc/resolv.conf",
    "/etc/fstab",
    "/etc/ssh/sshd_config",
    "/etc/systemd/system/",
    "/etc/crontab",
    "/var/spool/cron/",
)

USER_DATA_EXCLUDES = ("*.cache", "*.tmp", "*.log")


@dataclass(frozen=True)
class BackupSnapshot:
    """Immutable description of a captured backup"""
    created_at: datetime
    location: str
    config_files: Tuple[Tuple[str, str], ...] = ()
    package_inventory: Tuple[str, ...] = ()
    repository_snapshot: Dict[str, str] = field(default_factory=dict)
    valid: bool = False
    identity: Optional[SystemIdentity] = None
    package_manager: str = ""
    user_archives: Tuple[str, ...] = ()
    skipped: Tuple[str, ...] = ()

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.location, MANIFEST_NAME)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'created_at': self.created_at.isoformat(),
            'location': self.location,
            'config_files': [list(entry) for entry in self.config_files],
            'package_inventory': list(self.package_inventory),
            'repository_snapshot': dict(self.repository_snapshot),
            'valid': self.valid,
            'identity': self.identity.to_dict() if self.identity else None,
            'package_manager': self.package_manager,
            'user_archives': list(self.user_archives),
            'skipped': list(self.skipped),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BackupSnapshot':
        """Create a BackupSnapshot from a dictionary"""
        identity = data.get('identity')
        return cls(
            created_at=datetime.fromisoformat(data['created_at']),
            location=data['location'],
            config_files=tuple((entry[0], entry[1]) for entry in data.get('config_files', [])),
            package_inventory=tuple(data.get('package_inventory', [])),
            repository_snapshot=dict(data.get('repository_snapshot', {})),
            valid=data.get('valid', False),
            identity=SystemIdentity.from_dict(identity) if identity else None,
            package_manager=data.get('package_manager', ''),
            user_archives=tuple(data.get('user_archives', [])),
            skipped=tuple(data.get('skipped', [])),
        )


def unique_path(directory: str, name: str, reserved: Iterable[str] = ()) -> str:
    """Path for name inside directory, suffixed with _1, _2... on collision

    Names in ``reserved`` count as taken even when nothing exists there yet.
    """
    reserved = set(reserved)
    candidate_name = name
    counter = 1
    while candidate_name in reserved or os.path.lexists(os.path.join(directory, candidate_name)):
        candidate_name = f"{name}_{counter}"
        counter += 1
    return os.path.join(directory, candidate_name)


def _exclude_user_data(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    name = os.path.basename(info.name)
    if any(fnmatch.fnmatch(name, pattern) for pattern in USER_DATA_EXCLUDES):
        return None
    return info


class BackupManager:
    """Creates and verifies pre-migration snapshots"""

    def __init__(self, backup_root: str, root_dir: str = "/", show_progress: bool = True):
        self.backup_root = backup_root
        self.root_dir = root_dir
        self.show_progress = show_progress

    def _host_path(self, path: str) -> str:
        return os.path.join(self.root_dir, path.lstrip('/'))

    def _new_location(self) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return unique_path(self.backup_root, timestamp)

    def capture(self, paths: Iterable[str], include_user_data: bool = False,
                package_manager: Optional[PackageManager] = None,
                repository_dirs: Iterable[str] = (),
                identity: Optional[SystemIdentity] = None) -> BackupSnapshot:
        """Capture a snapshot of the host

        Missing paths are skipped and per-file copy failures are recorded in
        ``skipped``; nothing here raises. A snapshot whose inventory could not
        be taken fails verification instead.

        Args:
            paths: host configuration paths, directories copied recursively
            include_user_data: archive every /home/<user>
            package_manager: adapter used for the installed package inventory
            repository_dirs: repository configuration directories to snapshot
            identity: pre-migration identity, recorded for rollback
        """
        created_at = datetime.now()
        location = self._new_location()
        skipped: List[str] = []

        try:
            os.makedirs(location)
        except OSError as e:
            logger.error(f"Cannot create backup directory {location}: {e}")
            return BackupSnapshot(created_at=created_at, location=location, identity=identity,
                                  package_manager=package_manager.name if package_manager else "",
                                  skipped=tuple(paths))

        logger.info(f"Creating backup in {location}")

        config_files = self._copy_paths(list(dict.fromkeys(paths)), location, skipped)
        inventory = self._write_inventory(package_manager, location)
        repository_snapshot = self._copy_repository_dirs(repository_dirs, location, skipped)
        user_archives = self._archive_users(location, skipped) if include_user_data else []

        snapshot = BackupSnapshot(
            created_at=created_at,
            location=location,
            config_files=tuple(config_files),
            package_inventory=tuple(inventory),
            repository_snapshot=repository_snapshot,
            valid=False,
            identity=identity,
            package_manager=package_manager.name if package_manager else "",
            user_archives=tuple(user_archives),
            skipped=tuple(skipped),
        )

        try:
            self._write_manifest(snapshot)
        except OSError as e:
            logger.error(f"Could not write backup manifest: {e}")

        logger.info(f"Backup captured: {len(config_files)} paths, {len(inventory)} packages, "
                    f"{len(skipped)} skipped")
        return snapshot

    def _copy_paths(self, paths: List[str], location: str, skipped: List[str]) -> List[Tuple[str, str]]:
        copied = []
        disable = None if self.show_progress else True

        with ProgressTracker(OperationType.BACKUP, total=len(paths), desc="Backing up configuration",
                             unit="paths", disable=disable) as progress:
            for path in paths:
                progress.update(1, status=path)
                source = self._host_path(path)
                if not os.path.lexists(source):
                    logger.debug(f"Not present, skipping: {path}")
                    continue

                name = os.path.basename(path.rstrip('/')) or "root"
                destination = unique_path(location, name, reserved=RESERVED_NAMES)
                try:
                    if os.path.isdir(source) and not os.path.islink(source):
                        shutil.copytree(source, destination, symlinks=True)
                    else:
                        shutil.copy2(source, destination)
                except (OSError, shutil.Error) as e:
                    logger.warning(f"Could not back up {path}: {e}")
                    skipped.append(path)
                    continue

                logger.debug(f"Backed up {path} -> {destination}")
                copied.append((path, destination))

        return copied

    def _write_inventory(self, package_manager: Optional[PackageManager], location: str) -> List[str]:
        if package_manager is None:
            logger.warning("No package manager available, package inventory not captured")
            return []

        try:
            inventory = sorted(set(package_manager.list_installed()))
        except PackageManagerError as e:
            logger.warning(f"Could not list installed packages: {e}")
            return []

        try:
            with open(os.path.join(location, INVENTORY_NAME), 'w') as f:
                for name in inventory:
                    f.write(f"{name}\n")
        except OSError as e:
            logger.warning(f"Could not write package inventory: {e}")
            return []

        return inventory

    def _copy_repository_dirs(self, repository_dirs: Iterable[str], location: str,
                              skipped: List[str]) -> Dict[str, str]:
        snapshot = {}
        target_dir = os.path.join(location, REPOSITORIES_DIR)

        for repo_dir in dict.fromkeys(repository_dirs):
            source = self._host_path(repo_dir)
            if not os.path.isdir(source):
                # Absent at capture time; rollback removes it again
                snapshot[repo_dir] = ""
                continue

            try:
                os.makedirs(target_dir, exist_ok=True)
                destination = unique_path(target_dir, os.path.basename(repo_dir.rstrip('/')))
                shutil.copytree(source, destination, symlinks=True)
            except (OSError, shutil.Error) as e:
                logger.warning(f"Could not back up repository directory {repo_dir}: {e}")
                skipped.append(repo_dir)
                continue
            snapshot[repo_dir] = destination

        return snapshot

    def _archive_users(self, location: str, skipped: List[str]) -> List[str]:
        home = self._host_path("/home")
        if not os.path.isdir(home):
            return []

        archives = []
        users_dir = os.path.join(location, USERS_DIR)
        try:
            os.makedirs(users_dir, exist_ok=True)
            users = sorted(os.listdir(home))
        except OSError as e:
            logger.warning(f"Could not archive home directories: {e}")
            skipped.append("/home")
            return []

        for user in users:
            user_home = os.path.join(home, user)
            if not os.path.isdir(user_home):
                continue

            archive = os.path.join(users_dir, f"user_{user}_backup.tar.gz")
            logger.info(f"Archiving home directory of {user}")
            try:
                with tarfile.open(archive, "w:gz") as tar:
                    tar.add(user_home, arcname=user, filter=_exclude_user_data)
            except (OSError, tarfile.TarError) as e:
                logger.warning(f"Could not archive /home/{user}: {e}")
                skipped.append(f"/home/{user}")
                continue
            archives.append(archive)

        return archives

    def _write_manifest(self, snapshot: BackupSnapshot) -> None:
        with open(snapshot.manifest_path, 'w') as f:
            json.dump(snapshot.to_dict(), f, indent=2)

    def verify(self, snapshot: BackupSnapshot) -> bool:
        """Check that the backup directory exists and holds a package inventory

        The inventory file on disk must list at least one package; the copy
        held in the snapshot is not trusted on its own.
        """
        if not os.path.isdir(snapshot.location):
            logger.error(f"Backup directory missing: {snapshot.location}")
            return False
        if not snapshot.package_inventory:
            logger.error("Backup has an empty package inventory")
            return False

        inventory_path = os.path.join(snapshot.location, INVENTORY_NAME)
        try:
            with open(inventory_path, 'r') as f:
                names = [line.strip() for line in f if line.strip()]
        except OSError as e:
            logger.error(f"Cannot read {inventory_path}: {e}")
            return False
        if not names:
            logger.error(f"{inventory_path} lists no packages")
            return False
        return True

    def seal(self, snapshot: BackupSnapshot) -> BackupSnapshot:
        """Mark a verified snapshot valid and persist its manifest

        Raises:
            BackupVerificationFailed: the manifest could not be written
        """
        sealed = replace(snapshot, valid=True)
        try:
            self._write_manifest(sealed)
        except OSError as e:
            raise BackupVerificationFailed(
                f"Cannot write backup manifest {sealed.manifest_path}",
                remediation="Free space or fix permissions in the backup directory",
                details=str(e)
            ) from e
        logger.info(f"Backup verified: {snapshot.location}")
        return sealed

    def load(self, location: str) -> BackupSnapshot:
        """Read a snapshot back from its manifest

        Raises:
            BackupVerificationFailed: the manifest is missing or unreadable
        """
        manifest = os.path.join(location, MANIFEST_NAME)
        try:
            with open(manifest, 'r') as f:
                data = json.load(f)
            return BackupSnapshot.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            raise BackupVerificationFailed(
                f"Cannot read backup manifest {manifest}",
                remediation="Check that the backup directory still exists",
                details=str(e)
            ) from e
