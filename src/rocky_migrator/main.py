#!/usr/bin/env python3
"""
Main application module for Rocky Migrator - in-place migration to Rocky Linux

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional, Callable, Iterable

from .exceptions import (
    MigrationError, MigrationCancelled, InsufficientDiskSpace, PackageManagerLocked, HostIOFailed,
    BackupVerificationFailed, GPGImportFailed, MetadataRefreshFailed,
    ReleasePackageInstallFailed, MigrationVerificationFailed,
    PackageManagerError, PackageInstallError, GPGImportError, MetadataError
)
from .backup import BackupManager, BackupSnapshot, COMMON_CONFIG_PATHS
from .plans import PlanRegistry, MigrationPlan, AlreadyMigrated, GIB
from .state import MigrationState, StateStore, Phase, Outcome, MODIFYING_PHASES
from .package_managers.base import PackageManager
from .package_managers.factory import PackageManagerFactory
from .utils.config import config
from .utils.inspector import SystemInspector, SystemIdentity, free_disk_space
from .utils.progress import ProgressTracker, OperationType
from .utils.repositories import REPOSITORY_DIRS, store_for
from .utils.service import ServiceManager

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FALLBACK_LOG_DIR = os.path.expanduser("~/.local/share/rocky-migrator")


def configure_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Log to the console and to a file

    Falls back to a file under the user's data directory when the configured
    log file cannot be opened, and to the console alone if that fails too.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    candidates = [log_file or config.get("log_file"),
                  os.path.join(FALLBACK_LOG_DIR, "rocky-migrator.log")]

    for candidate in candidates:
        if not candidate:
            continue
        try:
            os.makedirs(os.path.dirname(candidate) or ".", exist_ok=True)
            handlers.append(logging.FileHandler(candidate))
            break
        except OSError:
            continue

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )


def confirm_decline(prompt: str) -> bool:
    return False


@dataclass
class RunContext:
    """Objects shared by the phases of one run"""
    state: MigrationState
    snapshot: Optional[BackupSnapshot] = None
    source_adapter: Optional[PackageManager] = None
    target_adapter: Optional[PackageManager] = None
    final_identity: Optional[SystemIdentity] = None

    @property
    def plan(self) -> MigrationPlan:
        return self.state.plan


class MigrationOrchestrator:
    """Drives a migration through its phases

    Each phase either completes and advances ``state.phase`` or raises a
    MigrationError, which ends the run as Failed with ``state.phase`` left at
    the last completed phase. An OSError escaping a phase is reported as
    HostIOFailed. Nothing is rolled back automatically.
    """

    def __init__(self,
                 inspector: Optional[SystemInspector] = None,
                 registry: Optional[PlanRegistry] = None,
                 backup_manager: Optional[BackupManager] = None,
                 adapter_factory: Optional[PackageManagerFactory] = None,
                 state_store: Optional[StateStore] = None,
                 service_manager: Optional[ServiceManager] = None,
                 confirm: Callable[[str], bool] = confirm_decline,
                 free_space: Callable[[str], int] = free_disk_space,
                 root_dir: Optional[str] = None,
                 include_user_data: Optional[bool] = None,
                 extra_backup_paths: Optional[Iterable[str]] = None,
                 show_progress: bool = True):
        self.root_dir = root_dir or config.get("root_dir", "/")
        self.inspector = inspector or SystemInspector(self.root_dir)
        self.registry = registry or PlanRegistry()
        self.backup_manager = backup_manager or BackupManager(
            config.get_backup_dir(), self.root_dir, show_progress=show_progress)
        self.adapter_factory = adapter_factory or PackageManagerFactory(self.root_dir)
        self.state_store = state_store or StateStore(config.get("state_file"))
        self.service_manager = service_manager or ServiceManager()
        self.confirm = confirm
        self.free_space = free_space
        self.include_user_data = (config.get("include_user_data", False)
                                  if include_user_data is None else include_user_data)
        self.extra_backup_paths = list(config.get("extra_backup_paths", [])
                                       if extra_backup_paths is None else extra_backup_paths)
        self.show_progress = show_progress

    def run(self) -> MigrationState:
        """Run a migration and return the terminal state"""
        ctx = RunContext(state=MigrationState())
        phases = [
            (self._detect, Phase.DETECTED),
            (self._check_requirements, Phase.REQUIREMENTS_CHECKED),
            (self._backup, Phase.BACKED_UP),
            (self._verify_backup, Phase.BACKUP_VERIFIED),
            (self._prepare_rollback, Phase.ROLLBACK_PREPARED),
            (self._prepare_system, Phase.SYSTEM_PREPARED),
            (self._install_target_repositories, Phase.TARGET_REPOSITORIES_INSTALLED),
            (self._migrate, Phase.MIGRATED),
            (self._verify, Phase.VERIFIED),
        ]

        disable = None if self.show_progress else True
        with ProgressTracker(OperationType.MIGRATION, total=len(phases), desc="Migrating",
                             unit="phases", disable=disable) as progress:
            try:
                for step, phase in phases:
                    try:
                        step(ctx)
                    except OSError as e:
                        raise HostIOFailed(
                            f"I/O error on the way to phase {phase.value}",
                            remediation="Check free space and permissions on the paths named in the details",
                            details=str(e)
                        ) from e
                    ctx.state.advance(phase)
                    progress.update(1, status=phase.value)
            except MigrationError as e:
                logger.error(f"Migration failed after phase {ctx.state.phase.value}: {e}")
                ctx.state.fail(e)
            else:
                ctx.state.succeed()

        self._persist(ctx.state)
        logger.info(f"Migration finished: {ctx.state.outcome.value} "
                    f"(last completed phase {ctx.state.phase.value})")
        return ctx.state

    def _persist(self, state: MigrationState) -> None:
        try:
            self.state_store.save(state)
        except OSError as e:
            logger.error(f"Could not persist run state to {self.state_store.path}: {e}")

    def _best_effort(self, state: MigrationState, description: str, func, *args) -> bool:
        """Run an adapter call whose failure is only a warning"""
        try:
            func(*args)
            return True
        except PackageManagerError as e:
            state.warn(f"{description} failed: {e}")
            return False

    # Phases

    def _detect(self, ctx: RunContext) -> None:
        ctx.state.source_identity = self.inspector.inspect()

    def _check_requirements(self, ctx: RunContext) -> None:
        state = ctx.state
        resolved = self.registry.resolve(state.source_identity)

        if isinstance(resolved, AlreadyMigrated):
            prompt = (f"This system already runs {resolved.identity}. "
                      f"Reinstall the Rocky Linux release and repositories?")
            if not self.confirm(prompt):
                raise MigrationCancelled(
                    f"{resolved.identity} is already the target distribution; nothing to do",
                    remediation="Pass --yes to reinstall the release package and repositories"
                )
            plan = resolved.plan
        else:
            plan = resolved
        state.plan = plan

        free = self.free_space(self.root_dir)
        if free < plan.minimum_free_space_bytes:
            raise InsufficientDiskSpace(free, plan.minimum_free_space_bytes, self.root_dir)
        logger.info(f"Free space: {free // GIB} GiB (need {plan.minimum_free_space_bytes // GIB} GiB)")

        adapter = self.adapter_factory.create(plan.source_package_manager)
        ctx.source_adapter = adapter
        if not adapter.available:
            state.warn(f"Package manager {adapter.name} is not available")

        if adapter.is_locked():
            raise PackageManagerLocked(
                f"Another process holds the {adapter.name} lock",
                remediation="Wait for the running package operation to finish and try again"
            )

        if adapter.has_pending_updates():
            state.warn("System has available updates. Consider updating first.")

        for service in plan.conflicting_services:
            if self.service_manager.is_active(service):
                state.warn(f"Potentially conflicting service is running: {service}")

        for note in plan.notes:
            logger.warning(note)

    def _backup(self, ctx: RunContext) -> None:
        plan = ctx.plan
        paths = list(COMMON_CONFIG_PATHS) + list(plan.backup_paths) + self.extra_backup_paths
        repo_dirs = ["/" + REPOSITORY_DIRS[name]
                     for name in (plan.source_package_manager, plan.target_package_manager)]

        snapshot = self.backup_manager.capture(
            paths,
            include_user_data=self.include_user_data,
            package_manager=ctx.source_adapter,
            repository_dirs=repo_dirs,
            identity=ctx.state.source_identity,
        )
        ctx.snapshot = snapshot
        ctx.state.snapshot_ref = snapshot.location
        for path in snapshot.skipped:
            ctx.state.warn(f"Could not back up {path}")

    def _verify_backup(self, ctx: RunContext) -> None:
        if not self.backup_manager.verify(ctx.snapshot):
            raise BackupVerificationFailed(
                f"Backup in {ctx.snapshot.location} failed verification",
                remediation="Check free space and permissions on the backup directory, "
                            "and that the package database can be queried"
            )
        ctx.snapshot = self.backup_manager.seal(ctx.snapshot)

    def _prepare_rollback(self, ctx: RunContext) -> None:
        if ctx.snapshot is None or not ctx.snapshot.valid:
            raise BackupVerificationFailed("Refusing to modify the system without a verified backup")

        plan = ctx.plan
        if not plan.rollback_repositories:
            return

        store = store_for(plan.source_package_manager, self.root_dir)
        filename = f"rollback-{plan.source_family.value.lower()}{store.extension}"
        try:
            store.write(plan.rollback_repositories, filename=filename)
        except OSError as e:
            ctx.state.warn(f"Could not write rollback repository descriptor: {e}")

    def _prepare_system(self, ctx: RunContext) -> None:
        state, plan, adapter = ctx.state, ctx.plan, ctx.source_adapter

        self._best_effort(state, "Updating the current system", adapter.update, False)
        self._best_effort(state, "Cleaning package cache", adapter.clean)

        if plan.requires_service_stop:
            for service in self.service_manager.stop_active(list(plan.services_to_stop)):
                state.warn(f"Could not stop service {service}")

        if plan.source_repository_patterns:
            store = store_for(plan.source_package_manager, self.root_dir)
            try:
                store.disable(plan.source_repository_patterns)
            except OSError as e:
                state.warn(f"Could not disable source repositories: {e}")

        installed = set(ctx.snapshot.package_inventory)
        for package in sorted(plan.packages_to_remove):
            if package in installed:
                self._best_effort(state, f"Removing {package}", adapter.remove, [package])

    def _install_target_repositories(self, ctx: RunContext) -> None:
        plan = ctx.plan
        if plan.requires_adapter_swap:
            logger.info(f"Switching package manager: {plan.source_package_manager} -> {plan.target_package_manager}")
            ctx.target_adapter = self.adapter_factory.create(plan.target_package_manager)
        else:
            ctx.target_adapter = ctx.source_adapter
        adapter = ctx.target_adapter

        store = store_for(plan.target_package_manager, self.root_dir)
        try:
            store.write(plan.target_repositories)
        except OSError as e:
            raise MetadataRefreshFailed(
                f"Cannot write target repository configuration to {store.repo_dir}",
                remediation="Check free space and permissions on the repository directory",
                details=str(e)
            ) from e

        for key in plan.gpg_keys:
            try:
                adapter.import_key(key)
            except GPGImportError as e:
                raise GPGImportFailed(
                    f"Could not import GPG key {key}",
                    remediation="Check network access to the key server",
                    details=e.output
                ) from e

        self._best_effort(ctx.state, "Cleaning package cache", adapter.clean)
        try:
            adapter.refresh_metadata()
        except MetadataError as e:
            raise MetadataRefreshFailed(
                "Could not refresh metadata for the target repositories",
                remediation="Check network access to the Rocky Linux mirrors",
                details=e.output
            ) from e

    def _migrate(self, ctx: RunContext) -> None:
        state, plan, adapter = ctx.state, ctx.plan, ctx.target_adapter

        try:
            adapter.install(list(plan.release_packages))
        except PackageInstallError as e:
            raise ReleasePackageInstallFailed(
                f"Could not install {', '.join(plan.release_packages)}",
                remediation="Review the package manager output; manual intervention is required",
                details=e.output
            ) from e

        self._best_effort(state, "Updating packages", adapter.update, True)
        for package in sorted(plan.packages_to_install):
            self._best_effort(state, f"Installing {package}", adapter.install, [package])
        self._best_effort(state, "Removing unneeded packages", adapter.autoremove)

    def _verify(self, ctx: RunContext) -> None:
        state, plan = ctx.state, ctx.plan

        try:
            identity = self.inspector.inspect()
        except MigrationError as e:
            raise MigrationVerificationFailed(
                "Cannot read the release information after migrating",
                details=e.message
            ) from e

        if identity.family != plan.target_family:
            raise MigrationVerificationFailed(
                f"System identifies as {identity} after migrating, expected {plan.target_family.value}",
                remediation="Inspect the release packages; rollback is available with 'rocky-migrator rollback'"
            )
        ctx.final_identity = identity
        logger.info(f"System now identifies as {identity}")

        for repo in plan.target_repositories:
            if repo.enabled and not ctx.target_adapter.is_repository_healthy(repo.id):
                state.warn(f"Repository {repo.id} is not healthy")

        system_state = self.service_manager.system_state()
        if system_state != "running":
            state.warn(f"System state is '{system_state}'; check failed units with 'systemctl --failed'")


def summary_lines(state: MigrationState) -> List[str]:
    """Operator summary of a terminal state"""
    lines = []
    source = str(state.source_identity) if state.source_identity else "unknown"
    target = (f"{state.plan.target_family.value} {state.plan.target_version}"
              if state.plan else "n/a")

    lines.append(f"Outcome:              {state.outcome.value}")
    lines.append(f"Source:               {source}")
    lines.append(f"Target:               {target}")
    lines.append(f"Last completed phase: {state.phase.value}")
    if state.snapshot_ref:
        lines.append(f"Backup location:      {state.snapshot_ref}")
    if state.failure_reason:
        lines.append(f"Failure:              {state.failure_reason}: {state.failure_message}")
    if state.warnings:
        lines.append(f"Warnings:             {len(state.warnings)}")
        lines.extend(f"  - {warning}" for warning in state.warnings)

    if state.outcome == Outcome.SUCCEEDED:
        lines.append("Next steps: reboot the system and check that all services start correctly.")
    elif state.outcome == Outcome.FAILED and state.snapshot_ref and state.phase in MODIFYING_PHASES:
        lines.append("The system was modified. Run 'rocky-migrator rollback' to restore it from the backup.")
    elif state.outcome == Outcome.ROLLED_BACK:
        lines.append("Next steps: reboot the system and verify the original distribution is working.")
    return lines
