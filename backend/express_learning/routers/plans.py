from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..ai_client import AIClient, get_ai_client
from ..db import get_db
from ..generation import (
    chapter_to_dict,
    create_learning_plan,
    encode_document,
    generate_chapter_content,
    generate_plan_content,
    get_plan,
    list_chapters,
    plan_to_dict,
)
from ..generation_queue import ChapterQueue
from ..models import LearningPlan
from ..rendering import export_plan_markdown
from .auth import User, get_current_user, get_optional_user


router = APIRouter(prefix="/plans", tags=["plans"])

logger = logging.getLogger(__name__)


class NextStepRequest(BaseModel):
    topic: str


# One lazy-load queue per plan for the lifetime of the process
_queues: Dict[str, ChapterQueue] = {}


def _queue_for(db: Session, plan_id: str) -> ChapterQueue:
    get_plan(db, plan_id)
    rows = [chapter_to_dict(ch) for ch in list_chapters(db, plan_id)]
    queue = _queues.get(plan_id)
    if queue is None:
        queue = ChapterQueue(plan_id, rows)
        _queues[plan_id] = queue
    else:
        queue.sync(rows)
    return queue


@router.post("", status_code=201)
async def create_plan(
    topic: str = Form(""),
    urgency: str = Form("2h"),
    level: str = Form("beginner"),
    language: str = Form("english"),
    mode: str = Form("standard"),
    document: Optional[UploadFile] = File(None),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    document_context = None
    if document is not None and document.filename:
        data = await document.read()
        logger.info("Received document %s (%d bytes, %s)", document.filename, len(data), document.content_type)
        document_context = encode_document(data, document.filename, document.content_type)
    plan = create_learning_plan(
        db,
        topic=topic,
        urgency=urgency,
        level=level,
        language=language,
        mode=mode,
        document_context=document_context,
        user_id=user.username if user else None,
    )
    return {"success": True, "plan_id": plan.id}


@router.get("")
def list_plans(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = db.scalars(
        select(LearningPlan).where(LearningPlan.user_id == user.username).order_by(LearningPlan.created_at.desc())
    )
    return {"plans": [plan_to_dict(p) for p in rows]}


@router.get("/{plan_id}")
def read_plan(plan_id: str, db: Session = Depends(get_db)):
    plan = get_plan(db, plan_id)
    return {"plan": plan_to_dict(plan), "chapters": [chapter_to_dict(ch) for ch in list_chapters(db, plan_id)]}


@router.post("/{plan_id}/generate")
async def generate_outline(plan_id: str, db: Session = Depends(get_db), client: AIClient = Depends(get_ai_client)):
    return await generate_plan_content(db, plan_id, client)


@router.post("/{plan_id}/next", status_code=201)
async def create_next_plan(
    plan_id: str,
    req: NextStepRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    parent = get_plan(db, plan_id)
    plan = create_learning_plan(
        db,
        topic=req.topic,
        urgency=parent.urgency,
        level=parent.level,
        language=parent.language,
        mode=parent.mode,
        user_id=user.username if user else parent.user_id,
    )
    return {"success": True, "plan_id": plan.id}


@router.get("/{plan_id}/export", response_class=PlainTextResponse)
def export_plan(plan_id: str, db: Session = Depends(get_db)):
    plan = get_plan(db, plan_id)
    body = export_plan_markdown(plan_to_dict(plan), [chapter_to_dict(ch) for ch in list_chapters(db, plan_id)])
    return PlainTextResponse(body, media_type="text/markdown")


@router.get("/{plan_id}/queue")
def queue_state(plan_id: str, db: Session = Depends(get_db)):
    return _queue_for(db, plan_id).snapshot()


@router.post("/{plan_id}/queue/step")
async def queue_step(plan_id: str, db: Session = Depends(get_db), client: AIClient = Depends(get_ai_client)):
    queue = _queue_for(db, plan_id)

    async def _generate(chapter_id: str):
        result = await generate_chapter_content(db, chapter_id, client)
        return result["chapter"]

    attempted = await queue.step(_generate)
    return {**queue.snapshot(), "attempted_chapter_id": attempted}


@router.post("/{plan_id}/queue/retry/{chapter_id}")
def queue_retry(plan_id: str, chapter_id: str, db: Session = Depends(get_db)):
    queue = _queue_for(db, plan_id)
    try:
        queue.retry(chapter_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Chapter not found in plan")
    return queue.snapshot()
