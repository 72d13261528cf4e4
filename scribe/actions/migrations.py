# FILE: scribe/actions/migrations.py
"""SQL migration files for executed execute-sql actions."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Union

from .config import MIGRATIONS_DIR
from .errors import MigrationWriteError

logger = logging.getLogger(__name__)

_NUMBERED_RE = re.compile(r"^(\d+)_.*\.sql$")


def _slugify(text: Optional[str]) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", (text or "").lower()).strip("_")
    return slug[:60].rstrip("_") or "migration"


def next_migration_number(migrations_dir: Path) -> int:
    highest = -1
    if migrations_dir.is_dir():
        for entry in migrations_dir.iterdir():
            match = _NUMBERED_RE.match(entry.name)
            if match:
                highest = max(highest, int(match.group(1)))
    return highest + 1


def write_migration_file(
    project_root: Union[str, Path],
    statement: str,
    description: Optional[str] = None,
) -> str:
    """
    Write `statement` as the next numbered migration and return its project-relative path.

    Files are named NNNN_<description_slug>.sql under MIGRATIONS_DIR.
    """
    migrations_dir = Path(project_root) / MIGRATIONS_DIR
    try:
        migrations_dir.mkdir(parents=True, exist_ok=True)
        number = next_migration_number(migrations_dir)
        filename = f"{number:04d}_{_slugify(description)}.sql"
        content = statement if statement.endswith("\n") else statement + "\n"
        (migrations_dir / filename).write_text(content, encoding="utf-8")
    except OSError as e:
        raise MigrationWriteError(f"could not write migration in {migrations_dir}: {e}") from e

    relative = f"{MIGRATIONS_DIR}/{filename}"
    logger.info("[migrations] Wrote %s", relative)
    return relative
