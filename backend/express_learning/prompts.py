from __future__ import annotations

import json
from typing import Any, Dict, List, Optional


OUTLINE_SYSTEM_PROMPT = "You are a strict, no-nonsense teacher. You hate fluff. Output valid JSON."
STORY_SYSTEM_PROMPT = "You are a master storyteller who teaches through narrative. Output valid JSON."
DETAIL_SYSTEM_PROMPT = "You are a domain expert. You prioritize deep understanding over simplification. Output valid JSON."
TRANSLATION_SYSTEM_PROMPT = "You are a professional technical translator. Output valid JSON."


# ============================================================================
# OUTLINE STEP
# ============================================================================

_INTENT_RULES = """
INTENT DETECTION (choose EXACTLY ONE - this determines everything)

SOLVING - the user wants you to DO THE WORK and produce a deliverable.
Keywords: "solve", "answer", "calculate", "complete", "write", "do", "finish", "assignment", "homework", "help me with".

PREPARING - the user wants quick revision for a test or interview.
Keywords: "prepare", "revise", "interview", "exam", "test", "review", "remember", "cram", "last minute", "key points".

LEARNING - the user wants to UNDERSTAND concepts (default).
Keywords: "explain", "teach", "understand", "what is", "how does", "why", "learn about".

DECISION RULES:
1. If the user says "solve", "answer", "complete", "write", "do this" -> SOLVING
2. If the user mentions exam/interview/test/revision -> PREPARING
3. Only choose LEARNING if the user wants to understand or learn concepts
Do NOT mix intents. The detected intent controls ALL subsequent output.

IF LEARNING: each chapter teaches ONE concept; each chapter continues where the previous one left off.
IF SOLVING: you are NOT making a plan, you ARE writing the answer. Each chapter is ONE COMPLETED SECTION
of the deliverable and key_takeaway holds THE ACTUAL RESULT (e.g. "Total cost = $150 + $75 + $25 = $250",
never "Calculate the total cost").
IF PREPARING: each chapter is one key point to remember, with mnemonics, quick facts and common mistakes.
""".strip()

_OUTLINE_QUALITY_RULES = """
OUTPUT QUALITY RULES:
- Keep chapter titles short, specific and action-oriented ("How Engines Ignite" rather than "Combustion").
- Every chapter has a distinct "mental_model" (analogy, approach or memory trick depending on intent).
- Keep "key_takeaway" to 1-2 dense, specific sentences.
- "curriculum_strategy" is exactly 2 sentences explaining the chapter sequence.
- "next_steps" lists 3-4 concrete, specific follow-up topics.
""".strip()

_OUTLINE_SCHEMA = """
Output JSON (valid JSON only, no extra text):
{
  "intent": "learning" | "solving" | "preparing",
  "curriculum_strategy": "...",
  "chapters": [{ "title": "...", "mental_model": "...", "key_takeaway": "..." }],
  "next_steps": ["..."]
}
""".strip()


def _context_block(urgency: str, level: str, language: str) -> str:
    return (
        "Context:\n"
        f"- Urgency: {urgency}\n"
        f"- Level: {level}\n"
        f"- Language: {language} (write every text field in this language, keep technical terms in English)"
    )


def build_topic_outline_prompt(topic: str, urgency: str, level: str, language: str) -> str:
    return "\n\n".join([
        "You are an expert curriculum designer.\n"
        'Think first: determine the "Critical Path" to understanding this request before writing.',
        f'The user entered: "{topic}"',
        _INTENT_RULES,
        "Goal: the user must understand the broad concepts AND the specific mechanics. "
        'Avoid vague fluff. Focus on "how it works" and "why it matters".\n'
        "Produce 5-7 chapters.",
        _context_block(urgency, level, language),
        _OUTLINE_QUALITY_RULES,
        _OUTLINE_SCHEMA,
    ])


def build_document_outline_prompt(topic: str, urgency: str, level: str, language: str) -> str:
    return "\n\n".join([
        "Analyze the attached PDF document carefully to create a learning path outline.",
        f'The user entered: "{topic}"',
        _INTENT_RULES,
        "Additional rule: if the PDF contains problems, questions or assignments -> SOLVING.",
        "CRITICAL: generate a sequence of 10-12 mini-chapters tailored to the intent using ONLY information "
        "from the PDF. If the PDF does not contain enough information, still produce the best possible chapters "
        'and note the missing information in "next_steps".',
        _context_block(urgency, level, language),
        _OUTLINE_QUALITY_RULES,
        _OUTLINE_SCHEMA,
        "Chapter fields by intent:\n"
        "- LEARNING: title=concept, mental_model=analogy, key_takeaway=key insight\n"
        "- SOLVING: title=step description, mental_model=approach used, key_takeaway=ACTUAL RESULT\n"
        "- PREPARING: title=topic to remember, mental_model=memory trick, key_takeaway=key fact",
    ])


def build_story_outline_prompt(topic: str, urgency: str, level: str, language: str) -> str:
    return "\n\n".join([
        f'Teach "{topic}" as a short illustrated story in 6-8 scenes.',
        "Each scene is a chapter. A recurring cast of characters discovers the concepts one at a time, "
        "so by the last scene the reader understands the topic.",
        _context_block(urgency, level, language),
        "Each chapter MUST have:\n"
        "- title: the scene title\n"
        "- mental_model: the concept this scene teaches, phrased as an analogy\n"
        "- key_takeaway: the one lesson the reader should keep\n"
        "- scene: a vivid one-paragraph description of the illustration for this scene (no text in the image)",
        "Output JSON (valid JSON only, no extra text):\n"
        "{\n"
        '  "intent": "learning",\n'
        '  "curriculum_strategy": "...",\n'
        '  "chapters": [{ "title": "...", "mental_model": "...", "key_takeaway": "...", "scene": "..." }],\n'
        '  "next_steps": ["..."]\n'
        "}",
    ])


# ============================================================================
# DETAIL STEP
# ============================================================================

_INTENT_INSTRUCTIONS = {
    "learning": (
        "- Be concrete. Use specific examples, not generalities.\n"
        "- Explain the MECHANISM. Don't just say \"it works\", say HOW.\n"
        "- Broad enough to see the big picture, specific enough to be useful."
    ),
    "solving": (
        "- You are WRITING THE ACTUAL DELIVERABLE for this section, not describing what to write.\n"
        "- Show the work: numbers, formulas, concrete decisions and their justification.\n"
        "- The explanation must be submission-ready text."
    ),
    "preparing": (
        "- This is last-minute revision. Lead with what to remember, not how to derive it.\n"
        "- Include a mnemonic or memory trick and the most common exam/interview mistake.\n"
        "- Keep it dense: quick facts, definitions, key numbers."
    ),
    "story": (
        "- Continue the story: write this scene as narrative prose (8-12 lines) in which the characters "
        "discover the concept.\n"
        "- The concept must be explained correctly inside the story, not in a separate lecture.\n"
        "- Keep visual_type \"image\" and describe the scene illustration in visual_content."
    ),
}

_VISUAL_DIRECTIVE = """
Visual directive - choose the ONE visual that helps most:
- "mermaid": visual_content is Mermaid flowchart syntax (start with "flowchart TD", quote node labels).
- "react": visual_content is a JSON array of row objects for a comparison table, e.g. [{"Option": "...", "Cost": "..."}].
- "image": visual_content is a one-sentence description of an educational illustration.
- "text": no visual; visual_content is an empty string.
""".strip()

_DETAIL_SCHEMA = """
Structure JSON:
{
  "explanation": "...",
  "common_misconception": "...",
  "real_world_example": "...",
  "quiz_question": "...",
  "quiz_answer": "...",
  "visual_type": "mermaid" | "react" | "image" | "text",
  "visual_content": "..."
}
""".strip()


def _previous_sections(previous: List[Dict[str, Any]]) -> str:
    if not previous:
        return "Previous sections completed: none (this is the first section)."
    lines = ["Previous sections completed (continue from here, do not repeat them):"]
    for ch in previous:
        takeaway = ch.get("key_takeaway") or ""
        lines.append(f"{ch.get('order')}. {ch.get('title')}" + (f" - {takeaway}" if takeaway else ""))
    return "\n".join(lines)


def build_chapter_detail_prompt(
    *,
    topic: str,
    level: str,
    intent: str,
    title: str,
    mental_model: str,
    key_takeaway: str,
    previous: List[Dict[str, Any]],
    has_document: bool = False,
) -> str:
    branch = intent if intent in _INTENT_INSTRUCTIONS else "learning"
    header = f'Write the detailed content for this chapter of a "{topic}" course.'
    if has_document:
        header += " Use ONLY the attached PDF as the source of facts."
    return "\n\n".join([
        header,
        f'Chapter Title: "{title}"\nMental Model: "{mental_model}"\nKey Takeaway: "{key_takeaway}"',
        _previous_sections(previous),
        f"Context:\n- Level: {level}\n- Intent: {branch}",
        "Instruction:\n" + _INTENT_INSTRUCTIONS[branch],
        "Requirements:\n"
        '- explanation: string (5-8 lines of Markdown. Start with the "Why", then the "How".)\n'
        "- common_misconception: string (correct a specific error beginners make)\n"
        "- real_world_example: string (a concrete application in industry or daily life)\n"
        "- quiz_question: string (test deep understanding, not surface facts)\n"
        "- quiz_answer: string",
        _VISUAL_DIRECTIVE,
        _DETAIL_SCHEMA,
    ])


# ============================================================================
# TRANSLATION STEP
# ============================================================================

def build_translation_prompt(content: Dict[str, Any], target_language: str) -> str:
    return "\n\n".join([
        f"Translate the values of this JSON object into {target_language}.",
        "Rules:\n"
        "- Keep every key exactly as it is.\n"
        "- Keep technical terms, code, formulas, units and proper nouns in English.\n"
        "- Keep Markdown formatting and list shapes (arrays stay arrays).\n"
        "- Do not add, drop or summarize content.",
        "Input JSON:\n" + json.dumps(content, ensure_ascii=False, indent=2),
        "Return ONLY the translated JSON object.",
    ])


def user_message(prompt: str, file_part: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if file_part is None:
        return {"role": "user", "content": prompt}
    return {"role": "user", "content": [file_part, {"type": "text", "text": prompt}]}
