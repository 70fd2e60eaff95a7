#!/usr/bin/env python3
"""
Repository configuration stores for Rocky Migrator

Reads, writes and disables repository definitions in the package manager
configuration directories: INI style ``.repo`` files for dnf/yum and zypper,
one-line ``.list`` and deb822 ``.sources`` files for apt, plus apt's
top-level ``sources.list``.
"""

import os
import re
import logging
import shutil
import fnmatch
from abc import ABC, abstractmethod
from typing import List, Iterable, Optional, Dict

from ..plans import RepositorySpec

logger = logging.getLogger(__name__)

# Repository configuration directory of each package manager, relative to the root
REPOSITORY_DIRS = {
    'dnf': 'etc/yum.repos.d',
    'yum': 'etc/yum.repos.d',
    'zypper': 'etc/zypp/repos.d',
    'apt': 'etc/apt/sources.list.d',
}

SECTION_PATTERN = re.compile(r'^\s*\[([^\]]+)\]\s*$')
ENABLED_PATTERN = re.compile(r'^(\s*enabled\s*=\s*)(\S+)', re.IGNORECASE)
DEB_LINE_PATTERN = re.compile(r'^\s*(deb|deb-src)\s')


def matches_any(filename: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive glob match of a file name"""
    name = filename.lower()
    return any(fnmatch.fnmatch(name, pattern.lower()) for pattern in patterns)


def replace_directory(source: str, destination: str) -> None:
    """Replace destination wholesale with a copy of source"""
    if os.path.isdir(destination):
        shutil.rmtree(destination)
    elif os.path.exists(destination):
        os.remove(destination)
    shutil.copytree(source, destination, symlinks=True)


class RepositoryStore(ABC):
    """A package manager repository configuration directory"""

    extension = ""

    def __init__(self, repo_dir: str):
        self.repo_dir = repo_dir

    def _files(self) -> List[str]:
        if not os.path.isdir(self.repo_dir):
            return []
        return sorted(
            name for name in os.listdir(self.repo_dir)
            if os.path.isfile(os.path.join(self.repo_dir, name))
        )

    def write(self, specs: Iterable[RepositorySpec], filename: Optional[str] = None) -> List[str]:
        """Write repository definitions in priority order

        Args:
            specs: repositories to write
            filename: put every spec in this file instead of one file per spec

        Returns:
            Paths of the files written
        """
        os.makedirs(self.repo_dir, exist_ok=True)
        ordered = sorted(specs, key=lambda spec: spec.priority)

        if filename:
            groups = {filename: ordered}
        else:
            groups = {f"{spec.id}{self.extension}": [spec] for spec in ordered}

        written = []
        for name, group in groups.items():
            path = os.path.join(self.repo_dir, name)
            with open(path, 'w') as f:
                f.write(self.render(group))
            logger.info(f"Wrote repository file {path}")
            written.append(path)
        return written

    @abstractmethod
    def render(self, specs: List[RepositorySpec]) -> str:
        pass

    @abstractmethod
    def disable(self, patterns: Iterable[str]) -> List[str]:
        """Disable every repository in files matching the patterns

        Returns:
            Paths of the files that were changed
        """
        pass

    @abstractmethod
    def scan(self) -> List[RepositorySpec]:
        """Parse the repository definitions currently configured"""
        pass


class YumRepositoryStore(RepositoryStore):
    """INI ``.repo`` files, shared by dnf, yum and zypper"""

    extension = ".repo"

    def render(self, specs: List[RepositorySpec]) -> str:
        blocks = []
        for spec in specs:
            lines = [
                f"[{spec.id}]",
                f"name={spec.display_name}",
                f"baseurl={spec.base_url}",
                f"enabled={1 if spec.enabled else 0}",
                f"gpgcheck={1 if spec.gpgcheck else 0}",
            ]
            if spec.gpg_key_url:
                lines.append(f"gpgkey={spec.gpg_key_url}")
            lines.append(f"priority={spec.priority}")
            if spec.metadata_expire is not None:
                lines.append(f"metadata_expire={spec.metadata_expire}")
            blocks.append("\n".join(lines) + "\n")
        return "\n".join(blocks)

    def disable(self, patterns: Iterable[str]) -> List[str]:
        patterns = list(patterns)
        changed = []
        for name in self._files():
            if not name.endswith(self.extension) or not matches_any(name, patterns):
                continue
            path = os.path.join(self.repo_dir, name)
            with open(path, 'r') as f:
                original = f.read()
            updated = self._disable_sections(original)
            if updated != original:
                with open(path, 'w') as f:
                    f.write(updated)
                logger.info(f"Disabled repositories in {path}")
                changed.append(path)
        return changed

    @staticmethod
    def _disable_sections(content: str) -> str:
        """Set enabled=0 in every section, adding the key where it is missing"""
        output = []
        section_has_enabled = True

        for line in content.splitlines():
            if SECTION_PATTERN.match(line):
                if not section_has_enabled:
                    output.append("enabled=0")
                section_has_enabled = False
                output.append(line)
                continue

            match = ENABLED_PATTERN.match(line)
            if match:
                section_has_enabled = True
                output.append(f"{match.group(1)}0")
                continue

            output.append(line)

        if not section_has_enabled:
            output.append("enabled=0")

        return "\n".join(output) + "\n"

    def scan(self) -> List[RepositorySpec]:
        repos = []
        for name in self._files():
            if not name.endswith(self.extension):
                continue
            path = os.path.join(self.repo_dir, name)
            try:
                with open(path, 'r') as f:
                    content = f.read()
            except OSError as e:
                logger.warning(f"Could not read {path}: {e}")
                continue
            repos.extend(self._parse(content))
        return repos

    @staticmethod
    def _parse(content: str) -> List[RepositorySpec]:
        repos = []
        current = None
        values: Dict[str, str] = {}

        def flush():
            if current:
                repos.append(RepositorySpec(
                    id=current,
                    display_name=values.get('name', current),
                    base_url=values.get('baseurl', values.get('mirrorlist', values.get('metalink', ''))),
                    enabled=values.get('enabled', '1').strip() not in ('0', 'false', 'no'),
                    gpg_key_url=values.get('gpgkey', ''),
                    priority=int(values['priority']) if values.get('priority', '').isdigit() else 99,
                    gpgcheck=values.get('gpgcheck', '1').strip() not in ('0', 'false', 'no'),
                ))

        for line in content.splitlines():
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith('#') or line.startswith(';'):
                continue

            section = SECTION_PATTERN.match(line)
            if section:
                flush()
                current = section.group(1).strip()
                values = {}
            elif '=' in line and current:
                key, value = line.split('=', 1)
                values[key.strip().lower()] = value.strip()

        flush()
        return repos


class AptRepositoryStore(RepositoryStore):
    """apt ``sources.list.d`` directory and the ``sources.list`` beside it"""

    extension = ".list"

    @property
    def main_list(self) -> str:
        return os.path.join(os.path.dirname(self.repo_dir.rstrip('/')), "sources.list")

    def _paths(self, patterns: Optional[List[str]] = None) -> List[str]:
        """sources.list first, then the files of sources.list.d"""
        candidates = []
        if os.path.isfile(self.main_list):
            candidates.append(self.main_list)
        candidates.extend(os.path.join(self.repo_dir, name) for name in self._files())
        if patterns is None:
            return candidates
        return [path for path in candidates if matches_any(os.path.basename(path), patterns)]

    def render(self, specs: List[RepositorySpec]) -> str:
        lines = []
        for spec in specs:
            lines.append(f"# {spec.display_name}")
            options = f"[signed-by={spec.gpg_key_url}] " if spec.gpg_key_url else ""
            entry = f"deb {options}{spec.base_url} {spec.distribution}".rstrip()
            lines.append(entry if spec.enabled else f"# {entry}")
        return "\n".join(lines) + "\n"

    def disable(self, patterns: Iterable[str]) -> List[str]:
        changed = []
        for path in self._paths(list(patterns)):
            with open(path, 'r') as f:
                original = f.read()

            if path.endswith('.sources'):
                updated = self._disable_deb822(original)
            elif path.endswith('.list'):
                updated = self._disable_one_line(original)
            else:
                continue

            if updated != original:
                with open(path, 'w') as f:
                    f.write(updated)
                logger.info(f"Disabled repositories in {path}")
                changed.append(path)
        return changed

    @staticmethod
    def _disable_one_line(content: str) -> str:
        output = []
        for line in content.splitlines():
            output.append(f"# {line}" if DEB_LINE_PATTERN.match(line) else line)
        return "\n".join(output) + "\n"

    @staticmethod
    def _disable_deb822(content: str) -> str:
        """Set ``Enabled: no`` on every stanza"""
        stanzas = [stanza for stanza in re.split(r'\n\s*\n', content.strip()) if stanza.strip()]
        output = []
        for stanza in stanzas:
            lines = [line for line in stanza.splitlines() if not line.lower().startswith('enabled:')]
            lines.append("Enabled: no")
            output.append("\n".join(lines))
        return "\n\n".join(output) + "\n"

    def scan(self) -> List[RepositorySpec]:
        repos = []
        for path in self._paths():
            if not path.endswith('.list'):
                continue
            try:
                with open(path, 'r') as f:
                    lines = f.read().splitlines()
            except OSError as e:
                logger.warning(f"Could not read {path}: {e}")
                continue

            for line in lines:
                stripped = line.strip()
                enabled = True
                if stripped.startswith('#'):
                    stripped = stripped.lstrip('#').strip()
                    enabled = False
                if not DEB_LINE_PATTERN.match(stripped):
                    continue

                parts = stripped.split()
                # Drop the [options] block
                parts = [part for part in parts[1:] if not (part.startswith('[') or part.endswith(']'))]
                if len(parts) < 2:
                    continue
                url, distribution = parts[0], " ".join(parts[1:])
                # Same "<uri> <suite>" form apt-cache policy prints
                repos.append(RepositorySpec(
                    id=f"{url.rstrip('/')} {parts[1]}",
                    display_name=f"{url} {distribution}",
                    base_url=url,
                    enabled=enabled,
                    distribution=distribution,
                ))
        return repos


def store_for(package_manager: str, root_dir: str = "/") -> RepositoryStore:
    """Repository store for a package manager name"""
    if package_manager in ('apt', 'apt-get'):
        return AptRepositoryStore(os.path.join(root_dir, REPOSITORY_DIRS['apt']))
    relative = REPOSITORY_DIRS.get(package_manager)
    if relative is None:
        raise ValueError(f"Unknown package manager: {package_manager}")
    return YumRepositoryStore(os.path.join(root_dir, relative))
