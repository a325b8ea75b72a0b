"""
Generation pipelines.

A plan is produced in up to three LLM steps:

1. outline - one call per plan, writes the chapter rows (titles, mental
   models, takeaways) with empty detail fields;
2. detail - one call per chapter, fills explanation, misconception,
   example, quiz and visual;
3. translation - optional extra call per chapter when the plan language is
   not English.

Nothing here retries. Errors propagate to the caller, which decides whether
to offer the user a retry.
"""
from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .ai_client import AIClient, pdf_file_part
from .errors import ContentTooShortError, ExpressLearningError, InvalidJSONError, NotFoundError, ValidationError
from .models import PLAN_STATUSES, Chapter, LearningPlan
from .parsing import extract_json, normalize_chapter_detail, normalize_outline, to_string_list, to_text
from .prompts import (
    DETAIL_SYSTEM_PROMPT,
    OUTLINE_SYSTEM_PROMPT,
    STORY_SYSTEM_PROMPT,
    TRANSLATION_SYSTEM_PROMPT,
    build_chapter_detail_prompt,
    build_document_outline_prompt,
    build_story_outline_prompt,
    build_topic_outline_prompt,
    build_translation_prompt,
    user_message,
)
from .settings import settings


logger = logging.getLogger(__name__)

PLAN_MODES = ("standard", "story")
DETAIL_FIELDS = ("explanation", "common_misconception", "real_world_example", "quiz_question", "quiz_answer")
TRANSLATABLE_FIELDS = DETAIL_FIELDS + ("title", "mental_model", "key_takeaway", "curriculum_strategy", "next_steps")

_ENGLISH = {"english", "en", "en-us", "en-gb", ""}
_STATUS_RANK = {status: rank for rank, status in enumerate(PLAN_STATUSES)}


def is_english(language: Optional[str]) -> bool:
    return (language or "").strip().lower() in _ENGLISH


def advance_status(plan: LearningPlan, status: str) -> bool:
    """Move ``plan.status`` forward to ``status``; backwards moves are ignored."""
    if _STATUS_RANK[status] <= _STATUS_RANK.get(plan.status, 0):
        return False
    plan.status = status
    return True


def plan_to_dict(plan: LearningPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "user_id": plan.user_id,
        "topic": plan.topic,
        "urgency": plan.urgency,
        "level": plan.level,
        "language": plan.language,
        "mode": plan.mode,
        "status": plan.status,
        "intent": plan.intent,
        "curriculum_strategy": plan.curriculum_strategy,
        "has_document": bool(plan.document_context),
        "next_steps": list(plan.next_steps or []),
        "created_at": plan.created_at.isoformat() if plan.created_at else None,
    }


def chapter_to_dict(chapter: Chapter) -> Dict[str, Any]:
    return {
        "id": chapter.id,
        "plan_id": chapter.plan_id,
        "order": chapter.order,
        "title": chapter.title,
        "mental_model": chapter.mental_model,
        "key_takeaway": chapter.key_takeaway,
        "explanation": chapter.explanation,
        "common_misconception": chapter.common_misconception,
        "real_world_example": chapter.real_world_example,
        "quiz_question": chapter.quiz_question,
        "quiz_answer": chapter.quiz_answer,
        "visual_type": chapter.visual_type,
        "visual_content": chapter.visual_content,
        "is_completed": bool(chapter.is_completed),
    }


def get_plan(db: Session, plan_id: str) -> LearningPlan:
    plan = db.get(LearningPlan, plan_id)
    if plan is None:
        raise NotFoundError("Plan not found", error_code="PLAN_NOT_FOUND")
    return plan


def get_chapter(db: Session, chapter_id: str) -> Chapter:
    chapter = db.get(Chapter, chapter_id)
    if chapter is None:
        raise NotFoundError("Chapter not found", error_code="CHAPTER_NOT_FOUND")
    return chapter


def list_chapters(db: Session, plan_id: str) -> List[Chapter]:
    return list(db.scalars(select(Chapter).where(Chapter.plan_id == plan_id).order_by(Chapter.order)))


def count_chapters(db: Session, plan_id: str) -> int:
    return db.scalar(select(func.count()).select_from(Chapter).where(Chapter.plan_id == plan_id)) or 0


# ============================================================================
# PLAN CREATION
# ============================================================================

def encode_document(data: bytes, filename: Optional[str], content_type: Optional[str]) -> str:
    is_pdf = "pdf" in (content_type or "").lower() or (filename or "").lower().endswith(".pdf")
    if not is_pdf:
        raise ValidationError("Only PDF files are supported.", error_code="UNSUPPORTED_DOCUMENT")
    if len(data) > settings.max_document_bytes:
        limit_mb = settings.max_document_bytes // (1024 * 1024)
        raise ValidationError(f"File too large. Max {limit_mb}MB.", error_code="DOCUMENT_TOO_LARGE")
    if not data:
        raise ValidationError("Uploaded document is empty.", error_code="EMPTY_DOCUMENT")
    return base64.b64encode(data).decode("ascii")


def create_learning_plan(
    db: Session,
    *,
    topic: str,
    urgency: str = "2h",
    level: str = "beginner",
    language: str = "english",
    mode: str = "standard",
    document_context: Optional[str] = None,
    user_id: Optional[str] = None,
) -> LearningPlan:
    topic = (topic or "").strip()
    if not topic:
        raise ValidationError("Topic is required", error_code="TOPIC_REQUIRED")
    mode = (mode or "standard").strip().lower()
    if mode not in PLAN_MODES:
        raise ValidationError(f"mode must be one of {list(PLAN_MODES)}", error_code="INVALID_MODE")
    logger.info("Creating plan for topic=%r mode=%s document=%s", topic, mode, bool(document_context))
    plan = LearningPlan(
        user_id=user_id,
        topic=topic,
        urgency=(urgency or "2h").strip(),
        level=(level or "beginner").strip(),
        language=(language or "english").strip(),
        mode=mode,
        status="generating",
        document_context=document_context,
        next_steps=[],
    )
    db.add(plan)
    try:
        db.commit()
    except SQLAlchemyError as err:
        db.rollback()
        logger.exception("Failed to init plan")
        raise ExpressLearningError("Failed to init plan", error_code="STORAGE_ERROR") from err
    db.refresh(plan)
    return plan


# ============================================================================
# OUTLINE STEP
# ============================================================================

def _outline_messages(plan: LearningPlan) -> List[Dict[str, Any]]:
    args = (plan.topic, plan.urgency, plan.level, plan.language)
    if plan.document_context:
        return [
            {"role": "system", "content": OUTLINE_SYSTEM_PROMPT},
            user_message(build_document_outline_prompt(*args), pdf_file_part(plan.document_context)),
        ]
    if plan.mode == "story":
        return [
            {"role": "system", "content": STORY_SYSTEM_PROMPT},
            user_message(build_story_outline_prompt(*args)),
        ]
    return [
        {"role": "system", "content": OUTLINE_SYSTEM_PROMPT},
        user_message(build_topic_outline_prompt(*args)),
    ]


async def generate_plan_content(db: Session, plan_id: str, client: Optional[AIClient] = None) -> Dict[str, Any]:
    plan = get_plan(db, plan_id)
    existing = count_chapters(db, plan_id)
    if existing > 0:
        logger.info("Plan %s already has %d chapters, skipping outline", plan_id, existing)
        return {"success": True, "skipped": True, "chapter_count": existing}

    logger.info("Generating outline for plan %s", plan_id)
    owns_client = client is None
    client = client or AIClient()
    try:
        raw = await client.complete(_outline_messages(plan), json_mode=True)
    finally:
        if owns_client:
            await client.aclose()
    logger.info("Outline response received for plan %s", plan_id)

    outline = normalize_outline(extract_json(raw))
    story_mode = plan.mode == "story"
    rows = []
    for index, ch in enumerate(outline["chapters"], start=1):
        rows.append(Chapter(
            plan_id=plan.id,
            order=index,
            title=ch["title"],
            mental_model=ch["mental_model"],
            key_takeaway=ch["key_takeaway"],
            visual_type="image" if story_mode and ch["scene"] else "text",
            visual_content=ch["scene"] if story_mode else "",
        ))
    db.add_all(rows)
    plan.intent = outline["intent"]
    plan.curriculum_strategy = outline["curriculum_strategy"] or None
    plan.next_steps = outline["next_steps"]
    advance_status(plan, "structure_ready")
    try:
        db.commit()
    except IntegrityError as err:
        # Another request inserted the outline between our count and commit
        db.rollback()
        existing = count_chapters(db, plan_id)
        if existing > 0:
            logger.info("Plan %s outline written concurrently, keeping %d chapters", plan_id, existing)
            return {"success": True, "skipped": True, "chapter_count": existing}
        raise ExpressLearningError("Failed to save chapters", error_code="STORAGE_ERROR") from err
    except SQLAlchemyError as err:
        db.rollback()
        logger.exception("Failed to save chapters for plan %s", plan_id)
        raise ExpressLearningError("Failed to save chapters", error_code="STORAGE_ERROR") from err
    logger.info("Saved %d chapters for plan %s (intent=%s)", len(rows), plan_id, plan.intent)
    return {"success": True, "skipped": False, "chapter_count": len(rows)}


# ============================================================================
# DETAIL STEP
# ============================================================================

def _previous_completed(db: Session, chapter: Chapter) -> List[Dict[str, Any]]:
    rows = db.scalars(
        select(Chapter)
        .where(Chapter.plan_id == chapter.plan_id, Chapter.order < chapter.order, Chapter.explanation != "")
        .order_by(Chapter.order)
    )
    return [{"order": r.order, "title": r.title, "key_takeaway": r.key_takeaway} for r in rows]


async def generate_chapter_content(db: Session, chapter_id: str, client: Optional[AIClient] = None) -> Dict[str, Any]:
    chapter = get_chapter(db, chapter_id)
    plan = get_plan(db, chapter.plan_id)
    story_mode = plan.mode == "story"
    prompt = build_chapter_detail_prompt(
        topic=plan.topic,
        level=plan.level,
        intent="story" if story_mode else (plan.intent or "learning"),
        title=chapter.title,
        mental_model=chapter.mental_model,
        key_takeaway=chapter.key_takeaway,
        previous=_previous_completed(db, chapter),
        has_document=bool(plan.document_context),
    )
    file_part = pdf_file_part(plan.document_context) if plan.document_context else None
    messages = [{"role": "system", "content": DETAIL_SYSTEM_PROMPT}, user_message(prompt, file_part)]

    logger.info("Generating detail for chapter %s (%r)", chapter_id, chapter.title)
    owns_client = client is None
    client = client or AIClient()
    try:
        raw = await client.complete(messages, json_mode=True)
        try:
            data = extract_json(raw)
        except InvalidJSONError as err:
            raise InvalidJSONError("Invalid JSON in chapter detail response", context=err.context) from err
        detail = normalize_chapter_detail(data)
        length = len(detail["explanation"].strip())
        if length < settings.min_explanation_chars:
            raise ContentTooShortError(length, settings.min_explanation_chars)
        if not is_english(plan.language):
            translated = await translate_content({k: detail[k] for k in DETAIL_FIELDS}, plan.language, client)
            detail.update(translated)
    finally:
        if owns_client:
            await client.aclose()

    if story_mode and (detail["visual_type"] != "image" or not detail["visual_content"]) and chapter.visual_content:
        detail["visual_type"] = "image"
        detail["visual_content"] = chapter.visual_content
    for key, value in detail.items():
        setattr(chapter, key, value)
    db.flush()
    if not db.scalar(
        select(func.count()).select_from(Chapter).where(Chapter.plan_id == plan.id, Chapter.explanation == "")
    ):
        advance_status(plan, "generated")
    try:
        db.commit()
    except SQLAlchemyError as err:
        db.rollback()
        logger.exception("Failed to update chapter %s", chapter_id)
        raise ExpressLearningError("Failed to update chapter", error_code="STORAGE_ERROR") from err
    db.refresh(chapter)
    logger.info("Chapter %s ready (%d chars, visual=%s)", chapter_id, length, chapter.visual_type)
    return {"success": True, "chapter": chapter_to_dict(chapter)}


def set_chapter_completed(db: Session, chapter_id: str, completed: bool = True) -> Chapter:
    chapter = get_chapter(db, chapter_id)
    chapter.is_completed = completed
    db.commit()
    db.refresh(chapter)
    return chapter


# ============================================================================
# TRANSLATION STEP
# ============================================================================

def _translatable(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return bool(value) and all(isinstance(v, str) for v in value)
    return False


async def translate_content(
    content: Dict[str, Any],
    target_language: str,
    client: Optional[AIClient] = None,
) -> Dict[str, Any]:
    """Translate the text fields of ``content`` into ``target_language``.

    English targets are a pass-through without any LLM call. Only keys in
    ``TRANSLATABLE_FIELDS`` are sent; everything else (visual type and
    content, ids, flags) is returned untouched.
    """
    if is_english(target_language):
        return dict(content)
    payload = {k: v for k, v in content.items() if k in TRANSLATABLE_FIELDS and _translatable(v)}
    if not payload:
        return dict(content)

    logger.info("Translating %d fields into %s", len(payload), target_language)
    messages = [
        {"role": "system", "content": TRANSLATION_SYSTEM_PROMPT},
        user_message(build_translation_prompt(payload, target_language)),
    ]
    owns_client = client is None
    client = client or AIClient()
    try:
        raw = await client.complete(messages, json_mode=True)
    finally:
        if owns_client:
            await client.aclose()
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise InvalidJSONError("Invalid JSON: translation reply is not an object")

    result = dict(content)
    for key, original in payload.items():
        if key not in data:
            continue
        if isinstance(original, list):
            translated: Any = to_string_list(data[key])
        else:
            translated = to_text(data[key])
        if translated:
            result[key] = translated
    return result
