from __future__ import annotations

import re
import uuid
from datetime import date
from typing import Any

from logic import _field


BASE_YEAR = 2024
MONTH_RE = re.compile(r"\d{4}-\d{2}", re.ASCII)
DAY_RE = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)

CATEGORY_MAP = {
    "Test": "Exam",
    "Extracurriculars": "Activity",
    "Academics": "Academic",
    "Application": "Application",
}
EVENT_CATEGORIES = ("Exam", "Activity", "Application", "Academic", "Other")
EVENT_STATUSES = ("Pending", "In Progress", "Done")
ASSIGNEES = ("Student", "Parent", "Counselor")
ROLE_FILTERS = ("All", "Student", "Counselor")


def month_key(value: date) -> str:
    return f"{value.year}-{value.month:02d}"


def add_months(month: str, count: int) -> str:
    year, mon = (int(part) for part in month.split("-")[:2])
    index = year * 12 + (mon - 1) + count
    return f"{index // 12}-{index % 12 + 1:02d}"


def parse_vague_date(text: str | None, today: date | None = None, base_year: int = BASE_YEAR) -> dict[str, Any]:
    """Turn a free-text deadline such as "Summer G11" into a month span.

    Returns ``{"start": "YYYY-MM", "end": "YYYY-MM" | None, "type": "Point" | "Range"}``.
    Grade markers are read against ``base_year``, the autumn the student starts G11.
    """
    if not text or text == "null":
        return {"start": month_key(today or date.today()), "end": None, "type": "Range"}

    y = base_year
    s = text.lower()

    if MONTH_RE.fullmatch(s):
        return {"start": s, "end": None, "type": "Point"}
    if DAY_RE.fullmatch(s):
        return {"start": s[:7], "end": None, "type": "Point"}

    if "summer" in s:
        if "g11" in s:
            return {"start": f"{y + 1}-06", "end": f"{y + 1}-08", "type": "Range"}
        if "g10" in s:
            return {"start": f"{y}-06", "end": f"{y}-08", "type": "Range"}
    if "winter" in s:
        if "g11" in s:
            return {"start": f"{y}-12", "end": f"{y + 1}-01", "type": "Range"}
    if "fall" in s or "上学期" in s:
        if "g11" in s:
            return {"start": f"{y}-09", "end": f"{y + 1}-01", "type": "Range"}
        if "g12" in s:
            return {"start": f"{y + 1}-09", "end": f"{y + 2}-01", "type": "Range"}
    if "spring" in s or "下学期" in s:
        if "g11" in s:
            return {"start": f"{y + 1}-02", "end": f"{y + 1}-06", "type": "Range"}

    return {"start": f"{y}-12", "end": None, "type": "Point"}


def action_to_event(action: Any, today: date | None = None, base_year: int = BASE_YEAR) -> dict[str, Any]:
    parsed = parse_vague_date(_field(action, "deadline") or "", today=today, base_year=base_year)
    start, end, event_type = parsed["start"], parsed["end"], parsed["type"]

    action_type = _field(action, "type")
    if action_type == "Routine":
        event_type = "Range"
        if not end:
            end = add_months(start, 1)
    elif action_type == "Milestone":
        event_type = "Point"

    action_id = _field(action, "id")
    description = _field(action, "description", "") or ""
    duration = _field(action, "duration", "") or ""
    if duration:
        description = f"{description} (Duration: {duration})"

    return {
        "id": f"evt-{action_id}",
        "title": _field(action, "title", ""),
        "type": event_type,
        "start_date": start,
        "end_date": end,
        "category": CATEGORY_MAP.get(_field(action, "category"), "Other"),
        "status": "Pending",
        "priority": _field(action, "priority", "Medium"),
        "description": description,
        "source_action_id": action_id,
        "assignee": _field(action, "role", "Student"),
        "is_milestone": action_type == "Milestone",
        "tags": [],
    }


def sync_actions_to_timeline(
    events: list[dict[str, Any]],
    actions: list[Any],
    today: date | None = None,
    base_year: int = BASE_YEAR,
) -> list[dict[str, Any]]:
    existing = {_field(e, "source_action_id") for e in events}
    new_events = [action_to_event(a, today=today, base_year=base_year) for a in actions]
    return list(events) + [e for e in new_events if e["source_action_id"] not in existing]


# --- Board helpers ---


def month_keys(events: list[Any], today: date | None = None) -> list[str]:
    current = month_key(today or date.today())
    keys = {add_months(current, i) for i in range(12)}
    for event in events:
        start = _field(event, "start_date") or ""
        if MONTH_RE.match(start):
            keys.add(start[:7])
    return sorted(keys)


def _role_matches(event: Any, role: str) -> bool:
    return role == "All" or _field(event, "assignee") == role


def split_scheduled(events: list[Any], role: str = "All") -> tuple[list[Any], list[Any]]:
    scheduled = [e for e in events if _field(e, "start_date") and _role_matches(e, role)]
    unscheduled = [e for e in events if not _field(e, "start_date") and _role_matches(e, role)]
    return scheduled, unscheduled


def events_in_month(events: list[Any], month: str) -> list[Any]:
    return [e for e in events if (_field(e, "start_date") or "").startswith(month)]


def move_event(events: list[dict[str, Any]], event_id: str, month: str) -> list[dict[str, Any]]:
    return [{**e, "start_date": month} if e["id"] == event_id else e for e in events]


def toggle_event_status(events: list[dict[str, Any]], event_id: str) -> list[dict[str, Any]]:
    return [
        {**e, "status": "Pending" if e["status"] == "Done" else "Done"} if e["id"] == event_id else e
        for e in events
    ]


def upsert_event(
    events: list[dict[str, Any]],
    form: dict[str, Any],
    editing_id: str | None = None,
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    title = (form.get("title") or "").strip()
    if not title:
        raise ValueError("Event title is required")

    event = {
        **form,
        "id": editing_id or f"evt-{uuid.uuid4().hex[:12]}",
        "title": title,
        "start_date": form.get("start_date") or "",
        "end_date": form.get("end_date") or None,
        "category": form.get("category") or "Other",
        "status": form.get("status") or "Pending",
        "priority": form.get("priority") or "Medium",
        "assignee": form.get("assignee") or "Student",
        "type": form.get("type") or "Point",
        "tags": list(form.get("tags") or []),
        "is_milestone": True,
    }

    if editing_id:
        return [event if e["id"] == editing_id else e for e in events], event
    return list(events) + [event], event


def delete_event(events: list[dict[str, Any]], event_id: str) -> list[dict[str, Any]]:
    return [e for e in events if e["id"] != event_id]
