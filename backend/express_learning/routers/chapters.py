from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..ai_client import AIClient, get_ai_client
from ..db import get_db
from ..generation import chapter_to_dict, generate_chapter_content, get_chapter, set_chapter_completed
from ..rendering import render_visual

router = APIRouter(prefix="/chapters", tags=["chapters"])


class CompleteRequest(BaseModel):
	completed: bool = True


@router.post("/{chapter_id}/generate")
async def generate_detail(chapter_id: str, db: Session = Depends(get_db), client: AIClient = Depends(get_ai_client)):
	return await generate_chapter_content(db, chapter_id, client)


@router.post("/{chapter_id}/complete")
def complete_chapter(chapter_id: str, req: CompleteRequest = CompleteRequest(), db: Session = Depends(get_db)):
	chapter = set_chapter_completed(db, chapter_id, req.completed)
	return {"success": True, "chapter": chapter_to_dict(chapter)}


@router.get("/{chapter_id}/visual")
def chapter_visual(chapter_id: str, db: Session = Depends(get_db)):
	chapter = get_chapter(db, chapter_id)
	return {"chapter_id": chapter.id, "visual_type": chapter.visual_type, **render_visual(chapter.visual_type, chapter.visual_content)}
