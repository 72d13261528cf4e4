# FILE: scribe/actions/config.py
"""Configuration constants for the action pipeline.

All values come from environment variables (loaded from .env by main.py).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

# =============================================================================
# PROJECT LAYOUT
# =============================================================================

# Project.root_path values that are relative resolve under this directory
PROJECTS_ROOT = os.getenv("SCRIBE_PROJECTS_ROOT", str(Path.home() / "scribe-apps"))

# Files under this directory are deployable functions on the remote backend
FUNCTIONS_DIR = os.getenv("SCRIBE_FUNCTIONS_DIR", "supabase/functions").strip("/")

# Executed SQL statements are persisted here as numbered migration files
MIGRATIONS_DIR = os.getenv("SCRIBE_MIGRATIONS_DIR", "supabase/migrations").strip("/")

# Dependency manifest and lock files recorded as written after an install
PACKAGE_MANIFEST = "package.json"
LOCK_FILES = ("pnpm-lock.yaml", "package-lock.json")

# =============================================================================
# PIPELINE TOGGLES
# =============================================================================

WRITE_SQL_MIGRATIONS = os.getenv("SCRIBE_WRITE_SQL_MIGRATIONS", "false").lower() in {"1", "true", "yes"}

# Prefix of every commit message created by the pipeline
COMMIT_MARKER = "[scribe]"
OUT_OF_BAND_NOTE = " + extra files edited outside of Scribe"

# =============================================================================
# EXTERNAL TOOLS
# =============================================================================

INSTALL_TIMEOUT = int(os.getenv("SCRIBE_INSTALL_TIMEOUT", "300"))

# Type-checker run against the overlay; {tsbuildinfo} is replaced with the cache file
TYPECHECK_CMD = os.getenv(
    "SCRIBE_TYPECHECK_CMD",
    "npx tsc --noEmit --pretty false --incremental --tsBuildInfoFile {tsbuildinfo}",
)
TYPECHECK_TIMEOUT = float(os.getenv("SCRIBE_TYPECHECK_TIMEOUT", "60"))
TYPECHECK_CACHE_DIR = os.getenv("SCRIBE_TYPECHECK_CACHE_DIR", str(Path("data") / "typecheck-cache"))

# Remote SQL/function-hosting backend
REMOTE_API_URL = os.getenv("SCRIBE_REMOTE_API_URL", "https://api.supabase.com/v1")
REMOTE_API_TOKEN = os.getenv("SCRIBE_REMOTE_API_TOKEN", "")
REMOTE_TIMEOUT = int(os.getenv("SCRIBE_REMOTE_TIMEOUT", "60"))


@dataclass
class PipelineSettings:
    """Per-invocation toggles for process_full_response_actions."""
    write_sql_migrations: bool = WRITE_SQL_MIGRATIONS

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        return cls()
