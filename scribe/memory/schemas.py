# FILE: scribe/memory/schemas.py
"""
Memory module Pydantic schemas.
"""
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict


# ============== PROJECT ==============

class ProjectCreate(BaseModel):
    name: str
    root_path: str
    linked_database_project_id: Optional[str] = None
    database_branch_id: Optional[str] = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    root_path: str
    linked_database_project_id: Optional[str]
    database_branch_id: Optional[str]
    created_at: datetime
    updated_at: datetime


# ============== CHAT ==============

class ChatCreate(BaseModel):
    project_id: int
    title: Optional[str] = None


class ChatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    title: Optional[str]
    created_at: datetime


# ============== MESSAGE ==============

class MessageCreate(BaseModel):
    chat_id: int
    role: Literal["user", "assistant", "system"]
    content: str


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    role: str
    content: str
    approval_state: Optional[str] = None
    commit_hash: Optional[str] = None
    created_at: datetime
