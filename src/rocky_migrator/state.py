#!/usr/bin/env python3
"""
Run state for migrations and rollbacks

The state record is passed explicitly through every phase and persisted as a
JSON file at each terminal transition so a later rollback or ``status`` call
can pick it up.
"""

import os
import json
import logging
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional

from .plans import MigrationPlan
from .utils.inspector import SystemIdentity

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "/var/lib/rocky-migrator/migration_state.json"


class Phase(Enum):
    """Migration phases, in execution order"""
    INIT = "Init"
    DETECTED = "Detected"
    REQUIREMENTS_CHECKED = "RequirementsChecked"
    BACKED_UP = "BackedUp"
    BACKUP_VERIFIED = "BackupVerified"
    ROLLBACK_PREPARED = "RollbackPrepared"
    SYSTEM_PREPARED = "SystemPrepared"
    TARGET_REPOSITORIES_INSTALLED = "TargetRepositoriesInstalled"
    MIGRATED = "Migrated"
    VERIFIED = "Verified"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"


# A run that fails after one of these phases may have modified the host
MODIFYING_PHASES = (
    Phase.BACKUP_VERIFIED,
    Phase.ROLLBACK_PREPARED,
    Phase.SYSTEM_PREPARED,
    Phase.TARGET_REPOSITORIES_INSTALLED,
    Phase.MIGRATED,
    Phase.VERIFIED,
)


class Outcome(Enum):
    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"


EXIT_CODES = {
    Outcome.SUCCEEDED: 0,
    Outcome.FAILED: 1,
    Outcome.ROLLED_BACK: 2,
}
EXIT_ROLLBACK_INCOMPLETE = 3


@dataclass
class MigrationState:
    """Record of one migration run

    ``phase`` always names the last phase that completed; when a run fails the
    outcome becomes Failed and ``phase`` is left where the failure happened.
    """
    phase: Phase = Phase.INIT
    outcome: Outcome = Outcome.IN_PROGRESS
    source_identity: Optional[SystemIdentity] = None
    plan: Optional[MigrationPlan] = None
    snapshot_ref: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    failure_message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def advance(self, phase: Phase) -> None:
        logger.info(f"Phase completed: {phase.value}")
        self.phase = phase

    def warn(self, message: str) -> None:
        """Record a non-fatal problem"""
        logger.warning(message)
        self.warnings.append(message)

    def fail(self, error: Exception) -> None:
        self.outcome = Outcome.FAILED
        self.failure_reason = getattr(error, 'kind', type(error).__name__)
        self.failure_message = getattr(error, 'message', str(error))
        self.completed_at = datetime.now()

    def succeed(self) -> None:
        self.phase = Phase.SUCCEEDED
        self.outcome = Outcome.SUCCEEDED
        self.completed_at = datetime.now()

    def rolled_back(self) -> None:
        self.phase = Phase.ROLLED_BACK
        self.outcome = Outcome.ROLLED_BACK
        self.failure_reason = None
        self.failure_message = None
        self.completed_at = datetime.now()

    @property
    def exit_code(self) -> int:
        return EXIT_CODES.get(self.outcome, 1)

    @property
    def is_terminal(self) -> bool:
        return self.outcome != Outcome.IN_PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'phase': self.phase.value,
            'outcome': self.outcome.value,
            'source_identity': self.source_identity.to_dict() if self.source_identity else None,
            'plan': self.plan.to_dict() if self.plan else None,
            'snapshot_ref': self.snapshot_ref,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'failure_reason': self.failure_reason,
            'failure_message': self.failure_message,
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MigrationState':
        """Create a MigrationState from a dictionary"""
        identity = data.get('source_identity')
        plan = data.get('plan')
        completed_at = data.get('completed_at')
        return cls(
            phase=Phase(data.get('phase', Phase.INIT.value)),
            outcome=Outcome(data.get('outcome', Outcome.IN_PROGRESS.value)),
            source_identity=SystemIdentity.from_dict(identity) if identity else None,
            plan=MigrationPlan.from_dict(plan) if plan else None,
            snapshot_ref=data.get('snapshot_ref'),
            started_at=datetime.fromisoformat(data['started_at']) if data.get('started_at') else datetime.now(),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            failure_reason=data.get('failure_reason'),
            failure_message=data.get('failure_message'),
            warnings=list(data.get('warnings', [])),
        )


class StateStore:
    """Persists the host-wide run state as JSON"""

    def __init__(self, path: str = DEFAULT_STATE_FILE):
        self.path = path

    def save(self, state: MigrationState) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(state.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved run state to {self.path}")

    def load(self) -> Optional[MigrationState]:
        """Load the last persisted state, or None when no run was recorded"""
        if not os.path.exists(self.path):
            return None
        with open(self.path, 'r') as f:
            data = json.load(f)
        return MigrationState.from_dict(data)
