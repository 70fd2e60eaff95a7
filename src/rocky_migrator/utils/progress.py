#!/usr/bin/env python3
"""
Terminal progress bars for backup copies, migration phases and rollback restores
"""

import logging
from typing import Optional
from enum import Enum

from tqdm import tqdm

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """What a progress bar is counting"""
    BACKUP = "backup"
    MIGRATION = "migration"
    ROLLBACK = "rollback"


class ProgressTracker:
    """tqdm bar that counts steps of one operation

    Used as a context manager; the bar is closed with "Error" as its final
    status when the block raises.
    """

    def __init__(self,
                 operation_type: OperationType,
                 total: int = 0,
                 desc: str = "",
                 unit: str = "steps",
                 disable: Optional[bool] = None):
        """
        Args:
            operation_type: kind of operation, used for the default description
            total: number of steps, 0 when unknown
            desc: bar label
            unit: what a step is (paths, phases...)
            disable: hide the bar; None lets tqdm decide from the terminal
        """
        self.operation_type = operation_type
        self.total = total
        self.desc = desc or operation_type.value.capitalize()
        self.unit = unit
        self.disable = disable
        self.completed = 0
        self.pbar: Optional[tqdm] = None

    def __enter__(self) -> 'ProgressTracker':
        self.pbar = tqdm(
            total=self.total or None,
            desc=self.desc,
            unit=self.unit,
            disable=self.disable,
            leave=False,
        )
        return self

    def update(self, n: int = 1, status: str = "") -> None:
        """Count n finished steps, showing status next to the bar"""
        if self.pbar is None:
            return
        self.completed += n
        self.pbar.update(n)
        if status:
            self.pbar.set_postfix_str(status)

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.pbar is None:
            return
        status = "Error" if exc_type else "Complete"
        self.pbar.set_postfix_str(status)
        self.pbar.close()
        self.pbar = None
        logger.debug(f"{self.desc}: {status} ({self.completed}/{self.total} {self.unit})")
