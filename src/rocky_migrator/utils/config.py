#!/usr/bin/env python3
"""
Configuration module for Rocky Migrator

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
import json
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DIR = "/backup/pre_migration"
DEFAULT_STATE_FILE = "/var/lib/rocky-migrator/migration_state.json"
DEFAULT_LOG_FILE = "/var/log/rocky-migrator.log"

DEFAULTS = {
    "backup_dir": DEFAULT_BACKUP_DIR,
    "state_file": DEFAULT_STATE_FILE,
    "log_file": DEFAULT_LOG_FILE,
    "root_dir": "/",
    "include_user_data": False,
    "extra_backup_paths": [],
}

CONFIG_ENV_VAR = "ROCKY_MIGRATOR_CONFIG"
CONFIG_FILE = os.environ.get(
    CONFIG_ENV_VAR,
    os.path.join(os.path.expanduser("~/.config/rocky-migrator"), "config.json")
)


class Config:
    """Settings stored as JSON on top of DEFAULTS

    Nothing is written until a value is set, so read-only commands never
    create the configuration directory.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or CONFIG_FILE
        self.config = self._read()

    def _read(self) -> Dict[str, Any]:
        settings = dict(DEFAULTS)
        if not os.path.exists(self.path):
            return settings

        try:
            with open(self.path, 'r') as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Ignoring unreadable configuration {self.path}: {e}")
            return settings

        for key, value in stored.items():
            if key not in DEFAULTS:
                logger.warning(f"Unknown configuration key in {self.path}: {key}")
                continue
            settings[key] = value
        logger.debug(f"Loaded configuration from {self.path}")
        return settings

    def _write(self) -> bool:
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(self.config, f, indent=2)
        except OSError as e:
            logger.error(f"Could not save configuration to {self.path}: {e}")
            return False
        logger.info(f"Saved configuration to {self.path}")
        return True

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> bool:
        """Store a value and save the file; False when it cannot be saved"""
        self.config[key] = value
        return self._write()

    def get_backup_dir(self) -> str:
        return self.config.get("backup_dir") or DEFAULT_BACKUP_DIR

    def set_backup_dir(self, backup_dir: str) -> bool:
        """Use backup_dir for future backups, creating it now

        Returns:
            False when the directory cannot be created or the file saved
        """
        backup_dir = os.path.expanduser(backup_dir)
        try:
            os.makedirs(backup_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot use backup directory {backup_dir}: {e}")
            return False
        return self.set("backup_dir", backup_dir)


def parse_value(key: str, value: str) -> Any:
    """Convert a command line string to the type of the key's default"""
    default = DEFAULTS.get(key)
    if isinstance(default, bool):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(default, list):
        return [item for item in (part.strip() for part in value.split(',')) if item]
    return value


config = Config()
