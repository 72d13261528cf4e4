# FILE: scribe/actions/dependencies.py
"""Package installation for add-dependency actions.

`pnpm add` is tried first; if it fails (or is not installed) the same packages
are installed with `npm install --legacy-peer-deps`.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

from sqlalchemy.orm import Session

from scribe.memory import service as memory_service
from scribe.memory.models import Message

from .config import INSTALL_TIMEOUT
from .errors import DependencyInstallError

logger = logging.getLogger(__name__)

PREFERRED_INSTALL = ["pnpm", "add"]
FALLBACK_INSTALL = ["npm", "install", "--legacy-peer-deps"]

_ADD_DEPENDENCY_TAG_RE = re.compile(
    r'(<add-dependency\s[^>]*packages="[^"]*"[^>]*>)([\s\S]*?)(</add-dependency>)',
    re.IGNORECASE,
)


@dataclass
class InstallResult:
    stdout: str
    stderr: str
    tool: str

    @property
    def output(self) -> str:
        return self.stdout + (f"\n{self.stderr}" if self.stderr else "")


def _run_install(command: List[str], cwd: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        command,
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=INSTALL_TIMEOUT,
    )


def install_packages(packages: Sequence[str], cwd: Union[str, Path]) -> InstallResult:
    """
    Install packages into the project at cwd.

    Raises:
        DependencyInstallError: if both the preferred and the fallback tool fail
    """
    if not packages:
        raise DependencyInstallError("no packages to install")

    cwd = str(cwd)
    failures: List[str] = []
    for command in (PREFERRED_INSTALL, FALLBACK_INSTALL):
        full = [*command, *packages]
        logger.info("[dependencies] Running %s in %s", " ".join(full), cwd)
        try:
            result = _run_install(full, cwd)
        except FileNotFoundError:
            failures.append(f"{command[0]}: not installed")
            continue
        except subprocess.TimeoutExpired:
            failures.append(f"{command[0]}: timed out after {INSTALL_TIMEOUT}s")
            continue

        if result.returncode == 0:
            return InstallResult(stdout=result.stdout, stderr=result.stderr, tool=command[0])
        failures.append(f"{command[0]} exited with {result.returncode}: {result.stderr.strip()[:500]}")
        logger.warning("[dependencies] %s failed with code %s", command[0], result.returncode)

    raise DependencyInstallError("; ".join(failures))


def annotate_install_output(content: str, install_output: str) -> str:
    """Put the installer output into the body of every add-dependency tag."""
    return _ADD_DEPENDENCY_TAG_RE.sub(
        lambda m: f"{m.group(1)}{install_output}{m.group(3)}",
        content,
    )


async def execute_add_dependency(
    db: Session,
    message: Message,
    packages: Sequence[str],
    project_root: Union[str, Path],
) -> InstallResult:
    """Install packages once and record the installer output on the message."""
    result = await asyncio.to_thread(install_packages, packages, project_root)
    updated = annotate_install_output(message.content, result.output)
    if updated != message.content:
        memory_service.update_message_content(db, message.id, updated)
    return result
