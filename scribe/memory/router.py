# FILE: scribe/memory/router.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from scribe.db import get_db
from scribe.memory import service, schemas

router = APIRouter(
    prefix="/memory",
    tags=["memory"],
)


# ============== PROJECTS ==============

@router.post("/projects", response_model=schemas.ProjectOut, status_code=201)
def create_project(data: schemas.ProjectCreate, db: Session = Depends(get_db)):
    existing = service.get_project_by_name(db, data.name)
    if existing:
        raise HTTPException(status_code=400, detail="Project name already exists")
    return service.create_project(db, data)


@router.get("/projects/{project_id}", response_model=schemas.ProjectOut)
def get_project(project_id: int, db: Session = Depends(get_db)):
    project = service.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


# ============== CHATS ==============

@router.post("/chats", response_model=schemas.ChatOut, status_code=201)
def create_chat(data: schemas.ChatCreate, db: Session = Depends(get_db)):
    project = service.get_project(db, data.project_id)
    if not project:
        raise HTTPException(status_code=400, detail="Project not found")
    return service.create_chat(db, data)


@router.get("/chats/{chat_id}/messages", response_model=List[schemas.MessageOut])
def list_messages(chat_id: int, db: Session = Depends(get_db)):
    chat = service.get_chat(db, chat_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return service.list_chat_messages(db, chat_id)


# ============== MESSAGES ==============

@router.post("/messages", response_model=schemas.MessageOut, status_code=201)
def create_message(data: schemas.MessageCreate, db: Session = Depends(get_db)):
    chat = service.get_chat(db, data.chat_id)
    if not chat:
        raise HTTPException(status_code=400, detail="Chat not found")
    return service.create_message(db, data)


@router.get("/messages/{message_id}", response_model=schemas.MessageOut)
def get_message(message_id: int, db: Session = Depends(get_db)):
    message = service.get_message(db, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message
