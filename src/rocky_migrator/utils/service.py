#!/usr/bin/env python3
"""
systemd service helpers used around a migration
"""

import subprocess
import logging
from typing import List

logger = logging.getLogger(__name__)


class ServiceManager:
    """Thin wrapper over systemctl"""

    def __init__(self, systemctl: str = "systemctl"):
        self.systemctl = systemctl

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.systemctl] + args
        try:
            return subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                  text=True, check=False)
        except FileNotFoundError as e:
            logger.debug(f"{self.systemctl} not available: {e}")
            return subprocess.CompletedProcess(cmd, 127, "", str(e))

    def is_active(self, service: str) -> bool:
        return self._run(['is-active', '--quiet', service]).returncode == 0

    def stop(self, service: str) -> bool:
        """Stop a service, returning whether systemctl succeeded"""
        result = self._run(['stop', service])
        if result.returncode != 0:
            logger.debug(f"systemctl stop {service}: {result.stderr.strip()}")
        return result.returncode == 0

    def stop_active(self, services: List[str]) -> List[str]:
        """Stop the services that are running

        Returns:
            The services that were running but could not be stopped
        """
        failed = []
        for service in services:
            if service == 'sshd':
                # Never cut the operator's session
                continue
            if not self.is_active(service):
                continue
            logger.info(f"Stopping service: {service}")
            if not self.stop(service):
                failed.append(service)
        return failed

    def system_state(self) -> str:
        """Output of ``systemctl is-system-running`` (running, degraded, ...)"""
        result = self._run(['is-system-running'])
        return result.stdout.strip() or "unknown"
