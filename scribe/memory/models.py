# FILE: scribe/memory/models.py
"""
SQLAlchemy ORM models for the Scribe message store.

A Project owns a directory on disk (root_path) and, optionally, a linked
remote database project and a development branch of that database. Chats
belong to a project; messages belong to a chat. Assistant messages carry the
approval state and the commit produced when their actions were applied.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from scribe.db import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    root_path = Column(String(500), nullable=False)  # Relative paths resolve under SCRIBE_PROJECTS_ROOT

    # Remote database project used for SQL actions and function deploys
    linked_database_project_id = Column(String(100), nullable=True)
    # Development branch that gets a snapshot before every applied response
    database_branch_id = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    chats = relationship("Chat", back_populates="project", cascade="all, delete-orphan")
    snapshots = relationship("DatabaseSnapshot", back_populates="project", cascade="all, delete-orphan")


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="chats")
    messages = relationship("Message", back_populates="chat", cascade="all, delete-orphan")


class Message(Base):
    """
    Chat message storage.

    For assistant messages, `content` is the raw model response including its
    action tags. After the response is applied, warning/error annotations are
    appended to it, `approval_state` becomes "approved" and `commit_hash`
    records the commit that captured the changes (if any).
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # "user" | "assistant" | "system"
    content = Column(Text, nullable=False)

    # None until the response is applied or rejected
    approval_state = Column(String(20), nullable=True)
    commit_hash = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="messages")


class DatabaseSnapshot(Base):
    """
    Point-in-time marker for a project's database branch.

    Keyed to the git commit that was current when the snapshot was taken so the
    database can be restored alongside a code version.
    """
    __tablename__ = "database_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    branch_id = Column(String(100), nullable=False)
    commit_hash = Column(String(64), nullable=False, index=True)
    captured_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="snapshots")
