#!/usr/bin/env python3
"""
Rollback of a failed or unwanted migration

Restores configuration and repository directories from the snapshot recorded
in the run state, reinstalls the source release packages and checks that the
host identifies as the pre-migration distribution again.
"""

import os
import shutil
import logging
from typing import Optional, List

from .exceptions import (
    MigrationError, BackupVerificationFailed, PackageManagerError,
    RollbackIncompleteError
)
from .backup import BackupManager, BackupSnapshot
from .package_managers.factory import PackageManagerFactory
from .package_managers.base import PackageManager
from .state import MigrationState, StateStore, Outcome
from .utils.inspector import SystemInspector, SystemIdentity
from .utils.progress import ProgressTracker, OperationType
from .utils.repositories import replace_directory, store_for
from .utils.service import ServiceManager

logger = logging.getLogger(__name__)

# Stopped before restoring; they hold files the restore rewrites
ROLLBACK_SERVICES = ("subscription-manager", "rhsmcertd", "cockpit", "firewalld")


class RollbackExecutor:
    """Reverts the host to the snapshot referenced by a run state"""

    def __init__(self,
                 backup_manager: BackupManager,
                 state_store: StateStore,
                 adapter_factory: Optional[PackageManagerFactory] = None,
                 inspector: Optional[SystemInspector] = None,
                 service_manager: Optional[ServiceManager] = None,
                 root_dir: str = "/"):
        self.backup_manager = backup_manager
        self.state_store = state_store
        self.adapter_factory = adapter_factory or PackageManagerFactory(root_dir)
        self.inspector = inspector or SystemInspector(root_dir)
        self.service_manager = service_manager or ServiceManager()
        self.root_dir = root_dir

    def _host_path(self, path: str) -> str:
        return os.path.join(self.root_dir, path.lstrip('/'))

    def rollback(self, state: MigrationState) -> MigrationState:
        """Roll the host back to its pre-migration state

        Raises:
            RollbackIncompleteError: no valid backup, the source release
                packages could not be reinstalled, or the host does not
                identify as the source distribution afterwards
        """
        if state.outcome == Outcome.ROLLED_BACK:
            raise RollbackIncompleteError(
                "The last run has already been rolled back",
                remediation="Run a new migration before rolling back again"
            )

        snapshot = self._load_snapshot(state)
        expected = snapshot.identity or state.source_identity
        logger.info(f"Rolling back to {expected} from backup {snapshot.location}")

        self._stop_services(state)
        self._restore_config_files(snapshot, state)
        self._restore_repositories(snapshot, state)
        adapter = self._reinstall_source_packages(snapshot, state)

        try:
            current = self.inspector.inspect()
        except MigrationError as e:
            raise self._incomplete(state, f"Cannot read the release information after rollback: {e.message}")

        if expected is not None and not self._same_distribution(current, expected):
            raise self._incomplete(
                state, f"Host identifies as {current} after rollback, expected {expected}"
            )

        self._check_health(adapter, state)

        state.rolled_back()
        self.state_store.save(state)
        logger.info(f"Rollback complete, host identifies as {current}")
        return state

    def _load_snapshot(self, state: MigrationState) -> BackupSnapshot:
        if not state.snapshot_ref:
            raise RollbackIncompleteError(
                "No valid backup recorded for the last run",
                remediation="Rollback needs the backup taken before migrating; restore manually"
            )

        try:
            snapshot = self.backup_manager.load(state.snapshot_ref)
        except BackupVerificationFailed as e:
            raise RollbackIncompleteError(
                f"No valid backup at {state.snapshot_ref}",
                details=e.details
            ) from e

        if not snapshot.valid or not self.backup_manager.verify(snapshot):
            raise RollbackIncompleteError(f"No valid backup at {state.snapshot_ref}")

        return snapshot

    def _stop_services(self, state: MigrationState) -> None:
        services = list(ROLLBACK_SERVICES)
        if state.plan:
            services.extend(s for s in state.plan.conflicting_services if s not in services)
        for service in self.service_manager.stop_active(services):
            state.warn(f"Could not stop service {service}")

    def _restore_config_files(self, snapshot: BackupSnapshot, state: MigrationState) -> None:
        """Copy every archived path back, one at a time"""
        with ProgressTracker(OperationType.ROLLBACK, total=len(snapshot.config_files),
                             desc="Restoring configuration", unit="paths") as progress:
            for path, archived in snapshot.config_files:
                progress.update(1, status=path)
                destination = self._host_path(path)
                try:
                    if os.path.isdir(archived):
                        replace_directory(archived, destination)
                    else:
                        os.makedirs(os.path.dirname(destination), exist_ok=True)
                        shutil.copy2(archived, destination)
                except (OSError, shutil.Error) as e:
                    state.warn(f"Could not restore {path}: {e}")
                    continue
                logger.debug(f"Restored {path}")

    def _restore_repositories(self, snapshot: BackupSnapshot, state: MigrationState) -> None:
        for repo_dir, archived in snapshot.repository_snapshot.items():
            destination = self._host_path(repo_dir)
            try:
                if archived:
                    replace_directory(archived, destination)
                    logger.info(f"Restored repository directory {repo_dir}")
                elif os.path.isdir(destination):
                    # Did not exist before the migration
                    shutil.rmtree(destination)
                    logger.info(f"Removed repository directory {repo_dir}")
            except (OSError, shutil.Error) as e:
                state.warn(f"Could not restore repository directory {repo_dir}: {e}")

    def _reinstall_source_packages(self, snapshot: BackupSnapshot,
                                   state: MigrationState) -> Optional[PackageManager]:
        """Put the source release packages back

        Raises:
            RollbackIncompleteError: the release packages could not be installed
        """
        plan = state.plan
        name = snapshot.package_manager or (plan.source_package_manager if plan else "")
        if not name:
            state.warn("No package manager recorded in the backup, release packages not reinstalled")
            return None

        adapter = self.adapter_factory.create(name)
        self._best_effort(state, "Cleaning package cache", adapter.clean)

        if plan is None:
            return adapter

        if plan.source_family != plan.target_family:
            installed = set(self._installed(adapter, state))
            target_release = [p for p in plan.release_packages if p in installed]
            if target_release:
                self._best_effort(state, "Removing target release packages", adapter.remove, target_release)

        inventory = set(snapshot.package_inventory)
        packages = [p for p in plan.source_release_packages if p in inventory] or list(plan.source_release_packages)
        try:
            adapter.install(packages)
        except PackageManagerError as e:
            raise self._incomplete(state, f"Could not reinstall {', '.join(packages)}: {e}")

        installed = self._installed(adapter, state)
        missing = [p for p in packages if p not in installed]
        if installed and missing:
            raise self._incomplete(state, f"Release packages not installed after rollback: {', '.join(missing)}")

        self._best_effort(state, "Refreshing repository metadata", adapter.refresh_metadata)
        return adapter

    def _check_health(self, adapter: Optional[PackageManager], state: MigrationState) -> None:
        """Warn about restored repositories that do not work and a degraded system"""
        if adapter is not None:
            for repo in store_for(adapter.name, self.root_dir).scan():
                if repo.enabled and not adapter.is_repository_healthy(repo.id):
                    state.warn(f"Restored repository {repo.id} is not healthy")

        system_state = self.service_manager.system_state()
        if system_state != "running":
            state.warn(f"System state is '{system_state}'; check failed units with 'systemctl --failed'")

    @staticmethod
    def _installed(adapter: PackageManager, state: MigrationState) -> List[str]:
        try:
            return adapter.list_installed()
        except PackageManagerError as e:
            state.warn(f"Could not list installed packages: {e}")
            return []

    @staticmethod
    def _best_effort(state: MigrationState, description: str, func, *args) -> None:
        try:
            func(*args)
        except PackageManagerError as e:
            state.warn(f"{description} failed: {e}")

    @staticmethod
    def _same_distribution(current: SystemIdentity, expected: SystemIdentity) -> bool:
        return (current.family == expected.family
                and current.major_version == expected.major_version)

    def _incomplete(self, state: MigrationState, message: str) -> RollbackIncompleteError:
        error = RollbackIncompleteError(
            message,
            remediation="Restore the remaining files manually from the backup directory"
        )
        state.fail(error)
        self.state_store.save(state)
        return error
