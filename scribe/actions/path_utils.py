# FILE: scribe/actions/path_utils.py
"""Path utilities for project-relative paths emitted by the model.

This module handles:
- Path normalization (hidden chars, quotes, slashes, dot segments)
- Safe joining of a relative path onto a project root
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from typing import Union

from .config import FUNCTIONS_DIR, PROJECTS_ROOT

logger = logging.getLogger(__name__)


class UnsafePathError(ValueError):
    """A path would resolve outside the project root."""


def normalize_path(path: str) -> str:
    """
    Normalize a project-relative path.

    Handles:
    - Hidden characters (\\r, \\n, \\t) and surrounding whitespace/quotes
    - Backslash -> forward slash
    - Leading "/" and "./" removal
    - "." and ".." segment collapsing

    Raises:
        UnsafePathError: if the path climbs above the project root
    """
    if not path:
        return path

    path = path.replace("\r", "").replace("\n", "").replace("\t", "")
    path = path.strip().strip('"').strip("'").strip()
    path = path.replace("\\", "/")

    # Drive-letter and absolute paths are treated as project-relative
    if len(path) >= 2 and path[1] == ":" and path[0].isalpha():
        path = path[2:]
    path = path.lstrip("/")

    if not path:
        raise UnsafePathError("path is empty after normalization")

    normalized = posixpath.normpath(path)
    if normalized == "." or normalized == ".." or normalized.startswith("../"):
        raise UnsafePathError(f"path escapes project root: {path}")
    return normalized


def safe_join(root: Union[str, Path], relative_path: str) -> Path:
    """
    Join a relative path onto root, refusing anything that lands outside it.

    Symlinks are not followed for the containment check so a project may
    symlink in shared folders.
    """
    root_abs = Path(os.path.abspath(root))
    candidate = Path(os.path.abspath(root_abs / normalize_path(relative_path)))
    if candidate != root_abs and root_abs not in candidate.parents:
        raise UnsafePathError(f"{relative_path} resolves outside {root_abs}")
    return candidate


def resolve_project_root(root_path: str) -> Path:
    """Absolute directory for a Project.root_path (relative values live under PROJECTS_ROOT)."""
    path = Path(root_path).expanduser()
    if path.is_absolute():
        return path
    return Path(PROJECTS_ROOT).expanduser() / path


# =============================================================================
# Deployable units
# =============================================================================

def is_server_function(path: str) -> bool:
    """True if path lives under the deployable functions directory."""
    try:
        norm = normalize_path(path)
    except UnsafePathError:
        return False
    return norm.startswith(FUNCTIONS_DIR + "/")


def get_function_name_from_path(path: str) -> str:
    """
    Function name for a deployable path.

    A path without an extension is a function directory and names itself;
    a file belongs to the function named by its parent directory.
    """
    norm = normalize_path(path)
    if posixpath.splitext(norm)[1]:
        return posixpath.basename(posixpath.dirname(norm))
    return posixpath.basename(norm)


def read_function_source(full_path: Path) -> str:
    """Source of a function: the file itself, or index.ts for a directory path."""
    if full_path.suffix == "":
        return (full_path / "index.ts").read_text(encoding="utf-8")
    return full_path.read_text(encoding="utf-8")
