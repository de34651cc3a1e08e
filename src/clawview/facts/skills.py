"""Skill-invocation facts from agent session transcripts.

Agents load a skill by reading its ``SKILL.md``; the transcript records that
read as a ``toolResult`` message whose text starts with YAML frontmatter
carrying ``name: <skill>``. One such tool result is one skill invocation.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clawview.core.errors import SourceError
from clawview.core.hashing import compute_hash
from clawview.core.timestamps import iso_from_ms, to_ms
from clawview.facts.models import SkillFact

_FRONTMATTER = re.compile(r"\A\s*---\s*\n(.*?)\n---", re.DOTALL)
_NAME = re.compile(r"^name:\s*[\"']?([^\"'\n]+?)[\"']?\s*$", re.MULTILINE)

SKILL_READ_TOOLS = frozenset({"read"})


@dataclass(frozen=True, slots=True)
class SkillHit:
    skill_name: str
    ts_ms: int
    is_error: bool


def frontmatter_skill_name(text: str) -> str | None:
    """``name`` from a leading ``---`` frontmatter block, if any."""
    block = _FRONTMATTER.match(text or "")
    if not block:
        return None
    name = _NAME.search(block.group(1))
    return name.group(1).strip() if name else None


def _message_text(message: dict[str, Any]) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = [c.get("text", "") for c in content if isinstance(c, dict) and c.get("type") == "text"]
    return "\n".join(p for p in parts if isinstance(p, str))


def parse_skill_result(row: Any, known_skills: Mapping[str, str]) -> tuple[str, SkillHit] | None:
    """``(tool_call_id, hit)`` for a transcript row that loaded a known skill."""
    if not isinstance(row, dict):
        return None
    message = row.get("message")
    if not isinstance(message, dict) or message.get("role") != "toolResult":
        return None
    if str(message.get("toolName") or "").lower() not in SKILL_READ_TOOLS:
        return None
    call_id = str(message.get("toolCallId") or "")
    ts = to_ms(message.get("timestamp", row.get("timestamp")))
    if not call_id or ts is None:
        return None
    name = frontmatter_skill_name(_message_text(message))
    if not name:
        return None
    canonical = known_skills.get(name.lower())
    if canonical is None:
        return None
    return call_id, SkillHit(skill_name=canonical, ts_ms=ts, is_error=bool(message.get("isError")))


def build_session_skill_result_index(
    path: Path | str,
    known_skills: Mapping[str, str],
) -> dict[str, list[SkillHit]]:
    """Index one session file's skill loads by tool-call id.

    ``known_skills`` maps lower-cased skill names to their canonical name;
    reads of files that are not a known skill are ignored. Unparseable
    lines are skipped.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise SourceError(f"cannot read session file {path}", cause=e) from e

    index: dict[str, list[SkillHit]] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            continue
        parsed = parse_skill_result(row, known_skills)
        if parsed is not None:
            call_id, hit = parsed
            index.setdefault(call_id, []).append(hit)
    return index


def skill_facts_from_index(index: Mapping[str, Iterable[SkillHit]]) -> list[SkillFact]:
    facts = []
    for call_id, hits in index.items():
        for hit in hits:
            facts.append(
                SkillFact(
                    ts_ms=hit.ts_ms,
                    skill_name=hit.skill_name,
                    tool_call_id=call_id,
                    is_error=hit.is_error,
                    dedupe_key=compute_hash(iso_from_ms(hit.ts_ms), "skill", call_id, hit.skill_name),
                )
            )
    return facts


def known_skill_map(names: Iterable[str]) -> dict[str, str]:
    return {n.lower(): n for n in names if n}


__all__ = [
    "SkillHit",
    "frontmatter_skill_name",
    "parse_skill_result",
    "build_session_skill_result_index",
    "skill_facts_from_index",
    "known_skill_map",
]
