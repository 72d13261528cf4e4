# FILE: scribe/actions/router.py
"""Actions Router: parse, preview and apply the actions in a model response.

Endpoints:
- POST /actions/parse - Extract actions and parse warnings
- POST /actions/dry-run - Search-replace tags that would fail against disk
- POST /actions/problems - Type-check the project as if the response were applied
- POST /actions/chats/{chat_id}/messages/{message_id}/apply - Apply and commit
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from scribe.db import get_db
from scribe.memory import service as memory_service

from .errors import TypecheckError, TypecheckTimeoutError
from .path_utils import resolve_project_root
from .response_processor import dry_run_search_replace, process_full_response_actions
from .tag_parser import extract_with_warnings
from .typecheck import generate_problem_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/actions", tags=["actions"])


# =============================================================================
# Request/Response Models
# =============================================================================

class ParseRequest(BaseModel):
    full_response: str


class ChatResponseRequest(BaseModel):
    """A response evaluated against the project the chat belongs to."""
    chat_id: int
    full_response: str


class DryRunIssue(BaseModel):
    file_path: str
    error: str


class DryRunResponse(BaseModel):
    issues: List[DryRunIssue]


class ApplyRequest(BaseModel):
    chat_summary: Optional[str] = None
    full_response: Optional[str] = None  # Defaults to the stored message content


def _project_root_for_chat(db: Session, chat_id: int) -> Path:
    chat = memory_service.get_chat(db, chat_id)
    if not chat or not chat.project:
        raise HTTPException(status_code=404, detail="Chat not found")
    return resolve_project_root(chat.project.root_path)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/parse")
def parse_response(request: ParseRequest) -> Dict[str, Any]:
    return extract_with_warnings(request.full_response).to_dict()


@router.post("/dry-run", response_model=DryRunResponse)
def dry_run(request: ChatResponseRequest, db: Session = Depends(get_db)):
    root = _project_root_for_chat(db, request.chat_id)
    return DryRunResponse(issues=dry_run_search_replace(request.full_response, root))


@router.post("/problems")
async def problems(request: ChatResponseRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Advisory type-check. Never touches the project on disk."""
    root = _project_root_for_chat(db, request.chat_id)
    try:
        report = await generate_problem_report(request.full_response, project_root=root)
    except TypecheckTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except TypecheckError as e:
        logger.error("[actions] Type-check failed for chat %s: %s", request.chat_id, e)
        raise HTTPException(status_code=500, detail=str(e))
    return report.to_dict()


@router.post("/chats/{chat_id}/messages/{message_id}/apply")
async def apply_response(
    chat_id: int,
    message_id: int,
    request: ApplyRequest = ApplyRequest(),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    full_response = request.full_response
    if full_response is None:
        message = memory_service.get_assistant_message(db, message_id, chat_id)
        if not message:
            raise HTTPException(status_code=404, detail="Message not found")
        full_response = message.content

    result = await process_full_response_actions(
        db,
        full_response,
        chat_id,
        message_id,
        request.chat_summary,
    )
    return result.to_dict()
