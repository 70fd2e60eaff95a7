#!/usr/bin/env python3
"""
Exception types for Rocky Migrator

Every fatal condition of a migration or rollback run is raised as one of the
MigrationError subclasses below. The class name doubles as the failure reason
that is recorded in the persisted run state.
"""

from typing import Optional


class MigrationError(Exception):
    """Base exception for all migration errors"""

    def __init__(self, message: str, remediation: Optional[str] = None,
                 details: Optional[str] = None):
        """Initialize the error

        Args:
            message: Human-readable error message
            remediation: Suggested next step for the operator
            details: Technical details for debugging (command output, paths)
        """
        super().__init__(message)
        self.message = message
        self.remediation = remediation
        self.details = details

    @property
    def kind(self) -> str:
        """Name of the failure kind, used as the persisted failure reason"""
        return type(self).__name__

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.remediation:
            parts.append(f"To fix: {self.remediation}")
        return "\n".join(parts)


class UnreadableReleaseInfo(MigrationError):
    """No recognizable distribution descriptor could be parsed"""


class UnsupportedSource(MigrationError):
    """The detected distribution/version has no migration plan"""


class InsufficientDiskSpace(MigrationError):
    """Not enough free space for the selected plan"""

    def __init__(self, free_bytes: int, required_bytes: int, path: str = "/"):
        self.free_bytes = free_bytes
        self.required_bytes = required_bytes
        super().__init__(
            f"Insufficient disk space on {path}: need {required_bytes // (1024 * 1024)}MB, "
            f"have {free_bytes // (1024 * 1024)}MB",
            remediation="Free up disk space or extend the root filesystem before migrating"
        )


class PackageManagerLocked(MigrationError):
    """Another process holds the package database lock"""


class BackupVerificationFailed(MigrationError):
    """The pre-migration snapshot did not pass verification"""


class GPGImportFailed(MigrationError):
    """A target repository signing key could not be imported"""


class MetadataRefreshFailed(MigrationError):
    """Target repository metadata could not be refreshed"""


class ReleasePackageInstallFailed(MigrationError):
    """The target release/identity package could not be installed"""


class MigrationVerificationFailed(MigrationError):
    """The host does not identify as the target distribution after migrating"""


class MigrationCancelled(MigrationError):
    """The operator declined to continue"""


class HostIOFailed(MigrationError):
    """A file operation on the host or the backup directory failed unexpectedly"""


class RollbackIncompleteError(MigrationError):
    """Rollback could not restore the pre-migration identity"""


class PackageManagerError(Exception):
    """Base class for failures reported by a package manager invocation"""

    def __init__(self, message: str, command: Optional[list] = None,
                 returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.output = output


class PackageInstallError(PackageManagerError):
    """Package installation failed"""


class PackageRemoveError(PackageManagerError):
    """Package removal failed"""


class PackageUpdateError(PackageManagerError):
    """System update failed"""


class MetadataError(PackageManagerError):
    """Repository metadata could not be cleaned or refreshed"""


class GPGImportError(PackageManagerError):
    """Signing key import failed"""
