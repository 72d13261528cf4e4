# FILE: scribe/git_utils.py
"""
Git utilities for Scribe.

Thin wrappers over the `git` CLI used by the action pipeline:
- Read-only: current commit, short hash
- Status: uncommitted files
- Mutating: add, remove, add-all, commit (optionally amending)

Read helpers return a GitResult and never raise. Mutating helpers raise
GitCommandError so callers decide whether a failure is fatal.
"""
from __future__ import annotations
import subprocess
from pathlib import Path
from typing import List, Optional
from dataclasses import dataclass
from enum import Enum
import logging

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30

# Identity used when the repository has none configured
DEFAULT_AUTHOR_NAME = "Scribe"
DEFAULT_AUTHOR_EMAIL = "scribe@localhost"


class GitError(Enum):
    """Git operation error types."""
    NO_GIT_REPO = "NO_GIT_REPO"
    UNRESOLVED_COMMIT = "UNRESOLVED_COMMIT"
    INVALID_BRANCH = "INVALID_BRANCH"
    GIT_NOT_INSTALLED = "GIT_NOT_INSTALLED"
    COMMAND_FAILED = "COMMAND_FAILED"


@dataclass
class GitResult:
    """Result of a git operation."""
    success: bool
    value: Optional[str] = None
    error: Optional[GitError] = None
    error_message: Optional[str] = None


class GitCommandError(Exception):
    """A mutating git command failed."""

    def __init__(self, message: str, error: GitError = GitError.COMMAND_FAILED):
        super().__init__(message)
        self.error = error


def _run_git(args: List[str], repo_path: str, timeout: int = GIT_TIMEOUT) -> GitResult:
    """Run `git <args>` in repo_path and wrap the outcome."""
    cmd = ["git", *args]
    try:
        result = subprocess.run(
            cmd,
            cwd=str(repo_path),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return GitResult(
            success=False,
            error=GitError.GIT_NOT_INSTALLED,
            error_message="git command not found - is git installed?",
        )
    except subprocess.TimeoutExpired:
        return GitResult(
            success=False,
            error=GitError.COMMAND_FAILED,
            error_message=f"git {args[0]} timed out after {timeout} seconds",
        )

    if result.returncode != 0:
        return GitResult(
            success=False,
            error=GitError.COMMAND_FAILED,
            error_message=f"git {' '.join(args)} failed: {result.stderr.strip() or result.stdout.strip()}",
        )
    return GitResult(success=True, value=result.stdout)


def _require(result: GitResult) -> str:
    if not result.success:
        raise GitCommandError(result.error_message or "git command failed", result.error or GitError.COMMAND_FAILED)
    return result.value or ""


def get_current_commit(
    repo_path: Optional[str] = None,
    branch: Optional[str] = None,
) -> GitResult:
    """
    Get the current commit hash for a repository.

    Args:
        repo_path: Path to the git repository. If None, uses current working directory.
        branch: Optional branch name to get HEAD of. If None, uses current HEAD.

    Returns:
        GitResult with commit hash on success, or error details on failure.

    Behavior:
        - Default: Returns HEAD of the currently checked-out branch
        - With branch: Returns HEAD of specified branch (does NOT switch branches)
        - No .git: Returns NO_GIT_REPO error
    """
    work_dir = Path(repo_path) if repo_path else Path.cwd()

    # Check if .git exists
    git_dir = work_dir / ".git"
    if not git_dir.exists():
        # Check if we're in a subdirectory of a git repo
        current = work_dir.resolve()
        while current != current.parent:
            if (current / ".git").exists():
                work_dir = current
                break
            current = current.parent
        else:
            return GitResult(
                success=False,
                error=GitError.NO_GIT_REPO,
                error_message=f"No .git directory found in {work_dir} or its parents",
            )

    result = _run_git(["rev-parse", branch or "HEAD"], str(work_dir), timeout=10)
    if not result.success:
        stderr = result.error_message or ""
        if branch and "unknown revision" in stderr.lower():
            return GitResult(
                success=False,
                error=GitError.INVALID_BRANCH,
                error_message=f"Branch '{branch}' not found: {stderr}",
            )
        if result.error == GitError.GIT_NOT_INSTALLED:
            return result
        return GitResult(
            success=False,
            error=GitError.UNRESOLVED_COMMIT,
            error_message=stderr,
        )

    commit_hash = (result.value or "").strip()
    if not commit_hash:
        return GitResult(
            success=False,
            error=GitError.UNRESOLVED_COMMIT,
            error_message="git rev-parse returned empty output",
        )
    return GitResult(success=True, value=commit_hash)


def get_commit_short(commit_hash: str, length: int = 7) -> str:
    """Get short form of commit hash."""
    return commit_hash[:length] if commit_hash else ""


# =============================================================================
# Mutating operations
# =============================================================================

def git_add(repo_path: str, filepath: str) -> None:
    """Stage a single path (file or directory)."""
    _require(_run_git(["add", "--", filepath], repo_path))


def git_remove(repo_path: str, filepath: str) -> None:
    """Stage the removal of a path that is already gone from the working tree."""
    _require(_run_git(["rm", "-r", "--cached", "--quiet", "--", filepath], repo_path))


def git_add_all(repo_path: str) -> None:
    """Stage every change in the working tree, including deletions."""
    _require(_run_git(["add", "-A"], repo_path))


def git_commit(repo_path: str, message: str, amend: bool = False) -> str:
    """
    Commit the index and return the new commit hash.

    With amend=True the previous commit is replaced (message included).
    """
    args = [
        "-c", f"user.name={_config_value(repo_path, 'user.name') or DEFAULT_AUTHOR_NAME}",
        "-c", f"user.email={_config_value(repo_path, 'user.email') or DEFAULT_AUTHOR_EMAIL}",
        "commit", "--allow-empty", "-m", message,
    ]
    if amend:
        args.append("--amend")
    _require(_run_git(args, repo_path))

    head = get_current_commit(repo_path=repo_path)
    if not head.success:
        raise GitCommandError(head.error_message or "commit created but HEAD unresolved", GitError.UNRESOLVED_COMMIT)
    logger.info("[git_utils] Committed %s in %s", get_commit_short(head.value), repo_path)
    return head.value


def get_uncommitted_files(repo_path: str) -> List[str]:
    """List paths with staged, unstaged or untracked changes."""
    output = _require(_run_git(["status", "--porcelain", "--untracked-files=all"], repo_path))
    files: List[str] = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        path = line[3:]
        # Renames are reported as "old -> new"
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        files.append(path.strip('"'))
    return files


def _config_value(repo_path: str, key: str) -> Optional[str]:
    result = _run_git(["config", "--get", key], repo_path, timeout=10)
    if not result.success:
        return None
    value = (result.value or "").strip()
    return value or None
