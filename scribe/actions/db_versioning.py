# FILE: scribe/actions/db_versioning.py
"""Database branch snapshots keyed to the project's current code version."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scribe import git_utils
from scribe.memory import service as memory_service
from scribe.memory.models import DatabaseSnapshot, Project

from .errors import DatabaseVersioningError

logger = logging.getLogger(__name__)

# Version key used before the project's first commit
INITIAL_VERSION = "initial"


def store_db_snapshot_at_current_version(
    db: Session,
    project: Project,
    project_root: Union[str, Path],
) -> DatabaseSnapshot:
    """
    Record the database branch state at the project's current commit.

    Raises:
        DatabaseVersioningError: if the snapshot cannot be stored
    """
    if not project.database_branch_id:
        raise DatabaseVersioningError(f"project {project.id} has no database branch")

    head = git_utils.get_current_commit(repo_path=str(project_root))
    version = head.value if head.success else INITIAL_VERSION

    try:
        snapshot = memory_service.create_database_snapshot(
            db,
            project_id=project.id,
            branch_id=project.database_branch_id,
            commit_hash=version,
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseVersioningError(f"could not store snapshot for branch {project.database_branch_id}: {e}") from e

    logger.info(
        "[db_versioning] Snapshot of branch %s at %s for project %s",
        project.database_branch_id, git_utils.get_commit_short(version), project.id,
    )
    return snapshot
