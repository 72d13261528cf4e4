# FILE: tests/conftest.py
"""
Pytest configuration for Scribe test suite.

Configures:
- pytest-asyncio for async test support
- in-memory SQLite session shared across threads
- throwaway git repositories for pipeline tests
"""
import shutil
import subprocess
import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

pytest_plugins = ["pytest_asyncio"]

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def engine():
    from scribe.db import Base
    from scribe.memory import models  # noqa: F401
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create in-memory database for testing."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@localhost", *args],
        cwd=str(repo),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path):
    """A git repository with one committed file (src/app.ts)."""
    repo = tmp_path / "project"
    (repo / "src").mkdir(parents=True)
    (repo / "src" / "app.ts").write_text("export const value = 1;\n", encoding="utf-8")
    git(repo, "init", "--quiet")
    git(repo, "add", "-A")
    git(repo, "commit", "--quiet", "-m", "init")
    return repo


@pytest.fixture
def project_records(db_session, tmp_path):
    """Factory: (project, chat, message) rows for a response applied to root."""
    from scribe.memory import schemas, service

    def make(root: Path, content: str, linked_database_project_id=None, database_branch_id=None):
        project = service.create_project(db_session, schemas.ProjectCreate(
            name=f"project-{root.name}",
            root_path=str(root),
            linked_database_project_id=linked_database_project_id,
            database_branch_id=database_branch_id,
        ))
        chat = service.create_chat(db_session, schemas.ChatCreate(project_id=project.id, title="test"))
        service.create_message(db_session, schemas.MessageCreate(chat_id=chat.id, role="user", content="do it"))
        message = service.create_message(db_session, schemas.MessageCreate(
            chat_id=chat.id, role="assistant", content=content,
        ))
        return project, chat, message

    return make
