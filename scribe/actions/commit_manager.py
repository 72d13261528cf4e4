# FILE: scribe/actions/commit_manager.py
"""Commit manager: one commit per applied response.

Stages what the response wrote, commits with a summary message, then folds in
any other uncommitted files (edits the user made meanwhile) by amending. An
amend failure is returned as data; the primary commit stands.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from scribe import git_utils
from scribe.memory import service as memory_service

from .config import COMMIT_MARKER, OUT_OF_BAND_NOTE
from .schemas import ChangeSummary, CommitOutcome

logger = logging.getLogger(__name__)


def describe_changes(summary: ChangeSummary) -> List[str]:
    """Change fragments in pipeline order: deletes, renames, writes, packages, SQL."""
    changes: List[str] = []
    if summary.deleted:
        changes.append(f"deleted {len(summary.deleted)} file(s)")
    if summary.renamed:
        changes.append(f"renamed {len(summary.renamed)} file(s)")
    if summary.written:
        changes.append(f"wrote {len(summary.written)} file(s)")
    if summary.packages:
        changes.append(f"added {', '.join(summary.packages)} package(s)")
    if summary.sql_count:
        changes.append(f"executed {summary.sql_count} SQL queries")
    return changes


def build_commit_message(summary: ChangeSummary, chat_summary: Optional[str] = None) -> str:
    changes = ", ".join(describe_changes(summary))
    if chat_summary:
        return f"{COMMIT_MARKER} {chat_summary} - {changes}"
    return f"{COMMIT_MARKER} {changes}"


def commit_changes(
    db: Session,
    project_root: Union[str, Path],
    message_id: int,
    summary: ChangeSummary,
    chat_summary: Optional[str] = None,
) -> CommitOutcome:
    """
    Stage, commit, amend with out-of-band files, and record the hash on the message.

    Raises:
        git_utils.GitCommandError: if staging or the primary commit fails
    """
    repo = str(project_root)
    for path in summary.written:
        # A failed install still lists the manifest, which may not exist
        if not (Path(repo) / path).exists():
            logger.warning("[commit_manager] Not staging missing file %s", path)
            continue
        git_utils.git_add(repo, path)

    message = build_commit_message(summary, chat_summary)
    commit_hash = git_utils.git_commit(repo, message)
    logger.info("[commit_manager] Committed changes: %s", message)

    outcome = CommitOutcome(commit_hash=commit_hash)
    extra_files = git_utils.get_uncommitted_files(repo)
    if extra_files:
        outcome.extra_files = extra_files
        try:
            git_utils.git_add_all(repo)
            outcome.commit_hash = git_utils.git_commit(repo, message + OUT_OF_BAND_NOTE, amend=True)
            logger.info("[commit_manager] Amended commit with out-of-band files: %s", ", ".join(extra_files))
        except git_utils.GitCommandError as e:
            logger.error("[commit_manager] Failed to commit out-of-band files %s: %s", ", ".join(extra_files), e)
            outcome.extra_files_error = str(e)

    memory_service.set_message_commit_hash(db, message_id, outcome.commit_hash)
    return outcome
