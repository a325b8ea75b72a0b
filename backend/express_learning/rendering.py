from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .parsing import strip_code_fences


PLACEHOLDER_CONTENT = {"", "content loading..."}

_DIAGRAM_START_RE = re.compile(
    r"^(graph|flowchart|sequenceDiagram|classDiagram|stateDiagram|erDiagram|journey|gantt|pie|mindmap|timeline)",
    re.IGNORECASE,
)
# Quoted strings are matched first so brackets inside labels are left alone;
# a bracket group is only quoted when it does not open with a quote or a
# nested shape bracket, e.g. A((circle)) or B[(database)].
_LABEL_RE = re.compile(
    r'"[^"\n]*"'
    r'|\[(?!\s*["(\[{])([^\]\n]+)\]'
    r'|\{(?!\s*["(\[{])([^}\n]+)\}'
    r'|\((?!\s*["(\[{])([^)\n]+)\)'
)
_SMART_QUOTES = {"\u201c": '"', "\u201d": '"', "\u2018": "'", "\u2019": "'"}


def _quote_label(match: re.Match) -> str:
    text = match.group(0)
    if text.startswith('"'):
        return text
    label = next(g for g in match.groups() if g is not None).strip()
    label = label.replace('"', "'")
    return f'{text[0]}"{label}"{text[-1]}'


def sanitize_mermaid(chart: Optional[str]) -> Optional[str]:
    """Clean up LLM-written Mermaid so the browser renderer accepts it.

    Returns ``None`` for empty or placeholder content.
    """
    if not isinstance(chart, str) or chart.strip().lower() in PLACEHOLDER_CONTENT:
        return None
    clean = chart.strip()
    if clean.startswith("```"):
        clean = re.sub(r"^```(mermaid)?\n?", "", clean)
        clean = re.sub(r"\n?```$", "", clean)
    clean = re.sub(r"^[\"']|[\"']$", "", clean.strip())
    for smart, plain in _SMART_QUOTES.items():
        clean = clean.replace(smart, plain)
    if not _DIAGRAM_START_RE.match(clean):
        clean = f"flowchart TD\n{clean}"
    lines = clean.split("\n")
    # The first line is the diagram declaration
    return "\n".join([lines[0]] + [_LABEL_RE.sub(_quote_label, line) for line in lines[1:]])


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def parse_table(data: Any) -> Dict[str, Any]:
    if isinstance(data, str):
        raw = data
        text = strip_code_fences(data)
    else:
        raw = None
        text = json.dumps(data)
    looks_structured = text.startswith("{") or text.startswith("[")
    try:
        rows = json.loads(text)
    except ValueError:
        rows = None
    if isinstance(rows, list) and rows and isinstance(rows[0], dict):
        headers = list(rows[0].keys())
        return {
            "kind": "table",
            "headers": headers,
            "rows": [[_cell(row.get(h)) if isinstance(row, dict) else "" for h in headers] for row in rows],
        }
    # Plain descriptive text instead of table JSON
    if raw and raw.strip() and not looks_structured:
        return {"kind": "text", "text": raw.strip()}
    return {"kind": "error", "message": "Could not render table data."}


def render_visual(visual_type: Optional[str], visual_content: Any) -> Dict[str, Any]:
    """Map a chapter's visual tag to a render payload for the client."""
    content = visual_content if visual_content is not None else ""
    if isinstance(content, str) and content.strip().lower() in PLACEHOLDER_CONTENT:
        return {"kind": "none"}
    if visual_type == "mermaid":
        chart = sanitize_mermaid(content if isinstance(content, str) else json.dumps(content))
        return {"kind": "mermaid", "chart": chart} if chart else {"kind": "none"}
    if visual_type == "react":
        return parse_table(content)
    if visual_type == "image":
        return {"kind": "image", "prompt": str(content).strip()}
    return {"kind": "text", "text": content.strip() if isinstance(content, str) else _cell(content)}


def _markdown_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    def esc(cell: str) -> str:
        return cell.replace("|", "\\|").replace("\n", " ")
    lines = [
        "| " + " | ".join(esc(h) for h in headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines += ["| " + " | ".join(esc(c) for c in row) + " |" for row in rows]
    return "\n".join(lines)


def export_plan_markdown(plan: Mapping[str, Any], chapters: Sequence[Mapping[str, Any]]) -> str:
    out: List[str] = [f"# {plan.get('topic', '')}", ""]
    meta = [plan.get("level"), plan.get("urgency"), plan.get("language")]
    out += ["_" + " · ".join(str(m) for m in meta if m) + "_", ""]
    if plan.get("curriculum_strategy"):
        out += [str(plan["curriculum_strategy"]), ""]
    for ch in chapters:
        out += [f"## {ch.get('order')}. {ch.get('title', '')}", ""]
        if ch.get("mental_model"):
            out += [f"> **Mental model:** {ch['mental_model']}", ""]
        visual = render_visual(ch.get("visual_type"), ch.get("visual_content"))
        if visual["kind"] == "mermaid":
            out += ["```mermaid", visual["chart"], "```", ""]
        elif visual["kind"] == "table":
            out += [_markdown_table(visual["headers"], visual["rows"]), ""]
        elif visual["kind"] == "image" and visual["prompt"]:
            out += [f"_Illustration: {visual['prompt']}_", ""]
        if ch.get("explanation"):
            out += [str(ch["explanation"]), ""]
        else:
            out += ["_This chapter has not been generated yet._", ""]
        if ch.get("common_misconception"):
            out += [f"**Common myth:** {ch['common_misconception']}", ""]
        if ch.get("real_world_example"):
            out += [f"**Real world example:** {ch['real_world_example']}", ""]
        if ch.get("quiz_question"):
            out += [f"**Active recall:** {ch['quiz_question']}", ""]
            if ch.get("quiz_answer"):
                out += [f"<details><summary>Answer</summary>{ch['quiz_answer']}</details>", ""]
        if ch.get("key_takeaway"):
            out += [f"**Key takeaway:** {ch['key_takeaway']}", ""]
    next_steps = plan.get("next_steps") or []
    if next_steps:
        out += ["## Next steps", ""]
        out += [f"- {step}" for step in next_steps]
        out.append("")
    return "\n".join(out)
