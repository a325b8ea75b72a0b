"""
Defensive parsing of LLM output.

Models in JSON mode still wrap replies in markdown fences now and then, rename
fields ("mentalModel", "misconception", "quiz": {...}) and return arrays where
a string was requested. Everything here turns that drift into the flat shape
the ``chapters`` and ``learning_plans`` tables expect.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Optional

from .errors import InvalidJSONError, MissingChaptersError


INTENTS = ("learning", "solving", "preparing")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?\s*```\s*$")
_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")

_CHAPTER_LIST_KEYS = ("chapters", "Chapters", "sections", "modules", "steps")
_TITLE_KEYS = ("title", "chapter_title", "chapterTitle", "name", "heading")
_MENTAL_MODEL_KEYS = ("mental_model", "mentalModel", "analogy", "approach", "memory_trick", "memoryTrick")
_TAKEAWAY_KEYS = ("key_takeaway", "keyTakeaway", "takeaway", "result", "key_fact", "keyFact", "key_insight")
_SCENE_KEYS = ("scene", "image_prompt", "visual_prompt", "illustration", "visual_content")

_VISUAL_ALIASES = {
    "mermaid": "mermaid",
    "diagram": "mermaid",
    "flowchart": "mermaid",
    "flow": "mermaid",
    "react": "react",
    "table": "react",
    "chart": "react",
    "image": "image",
    "illustration": "image",
    "picture": "image",
    "text": "text",
}


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    return cleaned


def extract_json(text: Optional[str]) -> Any:
    """Parse the first JSON document found in ``text``.

    Tries, in order: the raw text, the body of a fenced code block, the
    outermost ``{...}`` span and the outermost ``[...]`` span.
    """
    if not text or not text.strip():
        raise InvalidJSONError("AI returned an empty response")
    candidates = [text.strip(), strip_code_fences(text)]
    code_block = _CODE_BLOCK_RE.search(text)
    if code_block:
        candidates.append(code_block.group(1))
    for opener, closer in (("{", "}"), ("[", "]")):
        first = text.find(opener)
        last = text.rfind(closer)
        if first != -1 and last > first:
            candidates.append(text[first : last + 1])
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (TypeError, ValueError):
            continue
    raise InvalidJSONError(context={"preview": text[:200]})


def pick(data: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def to_text(value: Any, separator: str = "\n\n") -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        parts = [to_text(v, "\n") for v in value]
        return separator.join(p for p in parts if p)
    if isinstance(value, dict):
        lines = []
        for k, v in value.items():
            rendered = to_text(v, "\n")
            if rendered:
                lines.append(f"{k}: {rendered}")
        return "\n".join(lines)
    return str(value)


def to_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = [_BULLET_RE.sub("", line).strip() for line in value.splitlines()]
    elif isinstance(value, (list, tuple)):
        items = [to_text(v, " ") for v in value]
    else:
        items = [to_text(value)]
    return [i for i in items if i]


def normalize_intent(value: Any) -> str:
    text = to_text(value).lower()
    for intent in INTENTS:
        if intent in text:
            return intent
    if "solve" in text or "writ" in text:
        return "solving"
    if "prepar" in text or "revis" in text:
        return "preparing"
    return "learning"


def normalize_visual_type(value: Any) -> str:
    key = to_text(value).lower().strip("\"' ")
    return _VISUAL_ALIASES.get(key, "text")


def normalize_visual_content(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return json.dumps(value, ensure_ascii=False)


def _normalize_outline_chapter(raw: Any, index: int) -> Dict[str, str]:
    if isinstance(raw, str):
        return {"title": raw.strip() or f"Chapter {index}", "mental_model": "", "key_takeaway": "", "scene": ""}
    if not isinstance(raw, dict):
        raw = {}
    title = to_text(pick(raw, _TITLE_KEYS), " ")
    return {
        "title": title or f"Chapter {index}",
        "mental_model": to_text(pick(raw, _MENTAL_MODEL_KEYS)),
        "key_takeaway": to_text(pick(raw, _TAKEAWAY_KEYS)),
        "scene": to_text(pick(raw, _SCENE_KEYS)),
    }


def normalize_outline(data: Any) -> Dict[str, Any]:
    """Flatten an outline reply into intent, strategy, chapters and next steps."""
    if isinstance(data, list):
        data = {"chapters": data}
    if not isinstance(data, dict):
        raise MissingChaptersError()
    chapters = pick(data, _CHAPTER_LIST_KEYS)
    if not isinstance(chapters, list) or not chapters:
        raise MissingChaptersError()
    return {
        "intent": normalize_intent(data.get("intent")),
        "curriculum_strategy": to_text(pick(data, ("curriculum_strategy", "curriculumStrategy", "strategy")), " "),
        "chapters": [_normalize_outline_chapter(ch, i) for i, ch in enumerate(chapters, start=1)],
        "next_steps": to_string_list(pick(data, ("next_steps", "nextSteps"), [])),
    }


def normalize_chapter_detail(data: Any) -> Dict[str, str]:
    if not isinstance(data, dict):
        raise InvalidJSONError("Invalid JSON: expected an object with chapter fields")
    quiz = data.get("quiz")
    quiz_question = pick(data, ("quiz_question", "quizQuestion", "question"))
    quiz_answer = pick(data, ("quiz_answer", "quizAnswer", "answer"))
    if isinstance(quiz, dict):
        quiz_question = quiz_question if quiz_question is not None else quiz.get("question")
        quiz_answer = quiz_answer if quiz_answer is not None else quiz.get("answer")
    elif isinstance(quiz, str) and quiz_question is None:
        quiz_question = quiz
    visual = data.get("visual")
    visual_type = pick(data, ("visual_type", "visualType"))
    visual_content = pick(data, ("visual_content", "visualContent"))
    if isinstance(visual, dict):
        visual_type = visual_type if visual_type is not None else visual.get("type")
        visual_content = visual_content if visual_content is not None else visual.get("content")
    return {
        "explanation": to_text(pick(data, ("explanation", "content", "body", "text"))),
        "common_misconception": to_text(pick(data, ("common_misconception", "commonMisconception", "misconception", "myth"))),
        "real_world_example": to_text(pick(data, ("real_world_example", "realWorldExample", "example"))),
        "quiz_question": to_text(quiz_question),
        "quiz_answer": to_text(quiz_answer),
        "visual_type": normalize_visual_type(visual_type),
        "visual_content": normalize_visual_content(visual_content),
    }
