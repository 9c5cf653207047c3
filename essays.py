from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from logic import _field


VERSION_SOURCES = ("Student_Submit", "Teacher_Save", "AI_Generate", "System_Restore")
AUTHORS = ("Student", "Teacher", "AI")

ESSAY_STATUSES = ("Not Started", "Brainstorming", "Drafting", "Reviewing", "Finalized")
SUGGESTION_TYPES = ("Correctness", "Clarity", "Engagement", "Delivery")

SOURCE_TAGS = {
    "AI_Generate": ["AI Assisted"],
    "Teacher_Save": ["Teacher Snapshot"],
}


def count_words(text: str | None) -> int:
    return len((text or "").split())


def _version_value(version: Any) -> Decimal:
    label = (_field(version, "version_number") or "").lstrip("Vv")
    try:
        return Decimal(label)
    except ArithmeticError:
        return Decimal("0")


def next_version_number(versions: list[Any]) -> str:
    if not versions:
        return "V1.0"
    current = max(_version_value(v) for v in versions)
    return f"V{(current + Decimal('0.1')).quantize(Decimal('0.1'))}"


def create_snapshot(
    essay: Any,
    versions: list[Any],
    source: str,
    note: str | None = None,
    author: str = "Teacher",
    now: datetime | None = None,
) -> dict[str, Any]:
    if source not in VERSION_SOURCES:
        raise ValueError(f"Unknown version source: {source}")
    if author not in AUTHORS:
        raise ValueError(f"Unknown author: {author}")
    content = _field(essay, "current_content", "") or ""
    return {
        "id": f"ver-{uuid.uuid4().hex[:12]}",
        "essay_id": _field(essay, "id"),
        "version_number": next_version_number(versions),
        "content": content,
        "author": author,
        "source": source,
        "note": note,
        "tags": list(SOURCE_TAGS.get(source, [])),
        "word_count": count_words(content),
        "created_at": now or datetime.now(timezone.utc),
    }


def restore_version(
    essay: Any,
    versions: list[Any],
    version_id: str,
    now: datetime | None = None,
) -> tuple[dict[str, Any], str]:
    """Back up the current draft, then hand back the content to restore.

    Returns ``(backup_version, restored_content)``; the caller persists the
    backup before overwriting the essay's current content.
    """
    target = next((v for v in versions if _field(v, "id") == version_id), None)
    if target is None:
        raise ValueError(f"Version {version_id} not found")
    label = _field(target, "version_number")
    backup = create_snapshot(
        essay,
        versions,
        "System_Restore",
        note=f"Auto-backup before restoring {label}",
        author="Teacher",
        now=now,
    )
    return backup, _field(target, "content", "") or ""


def apply_suggestion(content: str, suggestion: dict[str, Any]) -> tuple[str, bool]:
    original = suggestion.get("original_text") or ""
    if not original or original not in content:
        return content, False
    return content.replace(original, suggestion.get("suggested_text") or "", 1), True


def toggle_idea_favorite(cards: list[dict[str, Any]], card_id: str) -> list[dict[str, Any]]:
    return [{**c, "is_favorite": not c.get("is_favorite", False)} if c["id"] == card_id else c for c in cards]


def delete_idea(cards: list[dict[str, Any]], card_id: str) -> list[dict[str, Any]]:
    return [c for c in cards if c["id"] != card_id]


def add_context_keyword(current: str | None, text: str) -> str:
    current = current or ""
    separator = "\n" if current.strip() else ""
    return current + separator + text


def normalize_idea_cards(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    cards = []
    for idea in raw:
        if not isinstance(idea, dict) or not idea.get("title"):
            continue
        cards.append(
            {
                "id": f"idea-{uuid.uuid4().hex[:10]}",
                "title": str(idea["title"]),
                "hook": str(idea.get("hook") or ""),
                "core_values": [str(v) for v in idea.get("coreValues") or idea.get("core_values") or []],
                "plot_summary": str(idea.get("plotSummary") or idea.get("plot_summary") or ""),
                "is_favorite": False,
            }
        )
    return cards


def normalize_suggestions(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    suggestions = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        original = item.get("originalText") or item.get("original_text")
        if not original:
            continue
        kind = item.get("type")
        suggestions.append(
            {
                "id": f"sug-{idx}",
                "original_text": original,
                "suggested_text": item.get("suggestedText") or item.get("suggested_text") or "",
                "type": kind if kind in SUGGESTION_TYPES else "Clarity",
                "short_reason": item.get("shortReason") or item.get("short_reason") or "",
                "explanation": item.get("explanation") or "",
            }
        )
    return suggestions


def group_versions_by_day(versions: list[Any]) -> dict[str, list[Any]]:
    ordered = sorted(versions, key=lambda v: _field(v, "created_at"), reverse=True)
    grouped: dict[str, list[Any]] = {}
    for version in ordered:
        day = _field(version, "created_at").strftime("%Y-%m-%d")
        grouped.setdefault(day, []).append(version)
    return grouped
