# FILE: scribe/memory/service.py
"""
Memory service layer for Scribe.

Plain functions over a SQLAlchemy session. The action pipeline only needs the
message lookups and the three message updates (content, approval, commit).
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from scribe.memory import models, schemas


# ============== PROJECT ==============

def create_project(db: Session, data: schemas.ProjectCreate) -> models.Project:
    project = models.Project(
        name=data.name,
        root_path=data.root_path,
        linked_database_project_id=data.linked_database_project_id,
        database_branch_id=data.database_branch_id,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def get_project(db: Session, project_id: int) -> Optional[models.Project]:
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def get_project_by_name(db: Session, name: str) -> Optional[models.Project]:
    return db.query(models.Project).filter(models.Project.name == name).first()


# ============== CHAT ==============

def create_chat(db: Session, data: schemas.ChatCreate) -> models.Chat:
    chat = models.Chat(project_id=data.project_id, title=data.title)
    db.add(chat)
    db.commit()
    db.refresh(chat)
    return chat


def get_chat(db: Session, chat_id: int) -> Optional[models.Chat]:
    return db.query(models.Chat).filter(models.Chat.id == chat_id).first()


# ============== MESSAGE ==============

def create_message(db: Session, data: schemas.MessageCreate) -> models.Message:
    message = models.Message(chat_id=data.chat_id, role=data.role, content=data.content)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def get_message(db: Session, message_id: int) -> Optional[models.Message]:
    return db.query(models.Message).filter(models.Message.id == message_id).first()


def get_assistant_message(db: Session, message_id: int, chat_id: int) -> Optional[models.Message]:
    """Look up a message by id, requiring it to be an assistant message of `chat_id`."""
    return (
        db.query(models.Message)
        .filter(
            models.Message.id == message_id,
            models.Message.role == "assistant",
            models.Message.chat_id == chat_id,
        )
        .first()
    )


def list_chat_messages(db: Session, chat_id: int) -> List[models.Message]:
    return (
        db.query(models.Message)
        .filter(models.Message.chat_id == chat_id)
        .order_by(models.Message.id.asc())
        .all()
    )


def update_message_content(db: Session, message_id: int, content: str) -> Optional[models.Message]:
    message = get_message(db, message_id)
    if not message:
        return None
    message.content = content
    db.commit()
    db.refresh(message)
    return message


def set_message_approval(db: Session, message_id: int, approval_state: str) -> Optional[models.Message]:
    message = get_message(db, message_id)
    if not message:
        return None
    message.approval_state = approval_state
    db.commit()
    db.refresh(message)
    return message


def set_message_commit_hash(db: Session, message_id: int, commit_hash: Optional[str]) -> Optional[models.Message]:
    message = get_message(db, message_id)
    if not message:
        return None
    message.commit_hash = commit_hash
    db.commit()
    db.refresh(message)
    return message


# ============== DATABASE SNAPSHOTS ==============

def create_database_snapshot(
    db: Session,
    project_id: int,
    branch_id: str,
    commit_hash: str,
) -> models.DatabaseSnapshot:
    snapshot = models.DatabaseSnapshot(
        project_id=project_id,
        branch_id=branch_id,
        commit_hash=commit_hash,
    )
    db.add(snapshot)
    db.commit()
    db.refresh(snapshot)
    return snapshot


def get_database_snapshot(db: Session, project_id: int, commit_hash: str) -> Optional[models.DatabaseSnapshot]:
    return (
        db.query(models.DatabaseSnapshot)
        .filter(
            models.DatabaseSnapshot.project_id == project_id,
            models.DatabaseSnapshot.commit_hash == commit_hash,
        )
        .order_by(models.DatabaseSnapshot.id.desc())
        .first()
    )
