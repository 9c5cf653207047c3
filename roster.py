from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import Any

import pandas as pd

from logic import _field


ALL_VALUES = {"All", "全部", "", None}

RISK_CATEGORIES = ("academic", "target", "task", "material", "comm")
RISK_LABELS = {
    "academic": {"en": "Academic", "zh": "成绩风险"},
    "target": {"en": "Target", "zh": "目标风险"},
    "task": {"en": "Task", "zh": "任务风险"},
    "material": {"en": "Material", "zh": "材料风险"},
    "comm": {"en": "Comm", "zh": "沟通风险"},
}
RISK_SEVERITY = {
    "academic": "high",
    "target": "high",
    "task": "medium",
    "material": "medium",
    "comm": "low",
}
RISK_DETAILS = {
    "academic": {"en": "GPA Drop/Fail", "zh": "GPA波动/挂科"},
    "target": {"en": "Target Mismatch", "zh": "目标偏离/过高"},
    "task": {"en": "Deadline/Overdue", "zh": "节点临近/逾期"},
    "material": {"en": "Missing Items", "zh": "缺失/证据不足"},
    "comm": {"en": "No Response", "zh": "长期未确认"},
}

GRADES = ("G9", "G10", "G11", "G12")
PHASES = (
    "Phase 0 Onboarding",
    "Phase 1 Planning",
    "Phase 2 Tutoring",
    "Phase 3 Application",
    "Phase 4 Admission",
    "Phase 5 Review",
)
STUDENT_STATUSES = ("not_started", "planning", "applying", "offer", "confirmed")

TASK_TABS = ("Today", "Week", "Overdue", "Review", "All")
TASK_CATEGORIES = (
    "onboarding",
    "planning",
    "testing",
    "activity",
    "materials",
    "interview",
    "application",
    "offer",
    "review",
)
CLOSED_TASK_STATUSES = {"Completed", "Review"}


def risk_key(value: str | None) -> str | None:
    """Resolve a risk filter value (key, English or Chinese label) to a category key."""
    if value in ALL_VALUES:
        return None
    lowered = value.lower()
    if lowered in RISK_LABELS:
        return lowered
    for key, labels in RISK_LABELS.items():
        if value in (labels["en"], labels["zh"]) or lowered == labels["en"].lower():
            return key
    return value


def filter_students(
    students: list[Any],
    risk: str | None = None,
    query: str = "",
    grade: str | None = None,
    direction: str | None = None,
    phase: str | None = None,
) -> list[Any]:
    wanted_risk = risk_key(risk)
    needle = (query or "").strip().lower()

    def keep(student: Any) -> bool:
        if wanted_risk and wanted_risk not in (_field(student, "risk_categories") or []):
            return False
        if needle:
            name = (_field(student, "name") or "").lower()
            code = (_field(student, "student_code") or "").lower()
            if needle not in name and needle not in code:
                return False
        if grade not in ALL_VALUES and _field(student, "grade") != grade:
            return False
        if direction not in ALL_VALUES and direction not in (_field(student, "direction") or ""):
            return False
        if phase not in ALL_VALUES and not (_field(student, "phase") or "").startswith(phase):
            return False
        return True

    return [s for s in students if keep(s)]


def new_student_defaults(name: str, code: str, grade: str = "G10", direction: str = "US", phase: str = "Phase 0 Onboarding") -> dict[str, Any]:
    name = (name or "").strip()
    code = (code or "").strip()
    if not name or not code:
        raise ValueError("Student name and student ID are required")
    return {
        "name": name,
        "student_code": code,
        "grade": grade,
        "class_name": "TBD",
        "direction": direction,
        "phase": phase,
        "status": STUDENT_STATUSES[0],
        "target_summary": "TBD",
        "risk_level": "none",
        "risk_categories": [],
        "risk_tags": [],
        "next_task": "Onboarding interview",
        "next_task_due": None,
        "last_contact_at": None,
        "data_completeness": 10,
        "avatar_initials": name[:2].upper(),
    }


def risk_radar(students: list[Any], language: str = "en") -> dict[str, Any]:
    lang = "zh" if (language or "").startswith("zh") else "en"
    counts: Counter[str] = Counter()
    for student in students:
        for category in _field(student, "risk_categories") or []:
            counts[category] += 1
    items = [
        {
            "key": key,
            "label": RISK_LABELS[key][lang],
            "details": RISK_DETAILS[key][lang],
            "severity": RISK_SEVERITY[key],
            "count": counts.get(key, 0),
        }
        for key in RISK_CATEGORIES
    ]
    return {"items": items, "total": sum(item["count"] for item in items)}


def _counter_series(values: list[str]) -> pd.Series:
    return pd.Series(dict(Counter(values).most_common()), dtype="int64")


def phase_distribution(students: list[Any]) -> pd.Series:
    # "Phase 2 Tutoring" -> "Phase 2"
    phases = [" ".join((_field(s, "phase") or "Unknown").split()[:2]) for s in students]
    return _counter_series(phases).sort_index()


def status_distribution(students: list[Any]) -> pd.Series:
    return _counter_series([_field(s, "status") or "unknown" for s in students])


def students_frame(students: list[Any]) -> pd.DataFrame:
    rows = [
        {
            "name": _field(s, "name"),
            "student_id": _field(s, "student_code"),
            "grade": _field(s, "grade"),
            "direction": _field(s, "direction"),
            "phase": _field(s, "phase"),
            "status": _field(s, "status"),
            "target": _field(s, "target_summary"),
            "risk": _field(s, "risk_level"),
            "next_task": _field(s, "next_task"),
            "completeness": _field(s, "data_completeness"),
        }
        for s in students
    ]
    return pd.DataFrame(rows)


# --- Task center ---


def effective_task_status(task: Any, today: date) -> str:
    status = _field(task, "status") or "Pending"
    due = _field(task, "due_date")
    if status not in CLOSED_TASK_STATUSES and due is not None and due < today:
        return "Overdue"
    return status


def _matches_tab(task: Any, tab: str, today: date) -> bool:
    status = effective_task_status(task, today)
    due = _field(task, "due_date")
    if tab == "Today":
        return due == today
    if tab == "Week":
        return status != "Completed" and due is not None and today <= due <= today + timedelta(days=6)
    if tab == "Overdue":
        return status == "Overdue"
    if tab == "Review":
        return status == "Review"
    return True


def filter_tasks(
    tasks: list[Any],
    tab: str = "Today",
    category: str | None = None,
    query: str = "",
    today: date | None = None,
) -> list[Any]:
    if tab not in TASK_TABS:
        raise ValueError(f"Unknown task tab: {tab}")
    today = today or date.today()
    needle = (query or "").strip().lower()
    result = []
    for task in tasks:
        if not _matches_tab(task, tab, today):
            continue
        if category not in ALL_VALUES and _field(task, "category") != category:
            continue
        if needle:
            title = (_field(task, "title") or "").lower()
            student = (_field(task, "student_name") or "").lower()
            if needle not in title and needle not in student:
                continue
        result.append(task)
    return result


def tab_counts(tasks: list[Any], today: date | None = None) -> dict[str, int]:
    today = today or date.today()
    counts = {}
    for tab in TASK_TABS:
        matching = [t for t in tasks if _matches_tab(t, tab, today)]
        if tab == "Today":
            matching = [t for t in matching if effective_task_status(t, today) != "Completed"]
        counts[tab] = len(matching)
    return counts


def batch_complete(tasks: list[dict[str, Any]], task_ids: set[Any]) -> list[dict[str, Any]]:
    return [{**t, "status": "Completed"} if t["id"] in task_ids else t for t in tasks]


# --- Communication ---


def filter_logs(logs: list[Any], log_type: str | None = "All", query: str = "") -> list[Any]:
    needle = (query or "").strip().lower()
    result = []
    for log in logs:
        if log_type not in ALL_VALUES and _field(log, "log_type") != log_type:
            continue
        if needle:
            title = (_field(log, "title") or "").lower()
            content = (_field(log, "content") or "").lower()
            if needle not in title and needle not in content:
                continue
        result.append(log)
    return result


# --- Risk diagnosis ---


def student_snapshot(student: Any, open_tasks: int = 0, materials: int = 0) -> dict[str, Any]:
    """Flatten a student row into the JSON-safe profile sent for diagnosis."""
    due = _field(student, "next_task_due")
    contact = _field(student, "last_contact_at")
    return {
        "name": _field(student, "name"),
        "grade": _field(student, "grade"),
        "direction": _field(student, "direction"),
        "phase": _field(student, "phase"),
        "status": _field(student, "status"),
        "target": _field(student, "target_summary"),
        "risk_level": _field(student, "risk_level"),
        "risk_tags": list(_field(student, "risk_tags") or []),
        "next_task": _field(student, "next_task"),
        "next_task_due": due.isoformat() if due else None,
        "last_contact": contact.date().isoformat() if contact else None,
        "data_completeness": _field(student, "data_completeness"),
        "open_tasks": open_tasks,
        "material_files": materials,
    }


def summarize_diagnosis(dimensions: list[dict[str, Any]]) -> tuple[str, list[str]]:
    """Overall risk level plus the categories flagged high or medium."""
    levels = {d["id"]: d["level"] for d in dimensions}
    categories = [key for key in RISK_CATEGORIES if levels.get(key) in ("high", "medium")]
    for level in ("high", "medium", "low"):
        if level in levels.values():
            return level, categories
    return "none", categories


# --- Recommendation letters ---


RECOMMENDATION_STATUSES = ("Drafting", "Invited", "In Progress", "Completed")


def recommendation_fields(form: dict[str, Any], current: dict[str, Any] | None = None) -> dict[str, Any]:
    merged = {**(current or {}), **form}
    name = (merged.get("recommender_name") or "").strip()
    role = (merged.get("recommender_role") or "").strip()
    if not name or not role:
        raise ValueError("Recommender name and role are required")
    status = merged.get("status") or RECOMMENDATION_STATUSES[0]
    if status not in RECOMMENDATION_STATUSES:
        raise ValueError(f"Unknown recommendation status: {status}")
    return {
        "recommender_name": name,
        "recommender_role": role,
        "status": status,
        "deadline": merged.get("deadline") or None,
        "highlights": merged.get("highlights") or "",
        "ai_polished": bool(merged.get("ai_polished")),
        "letter_content": merged.get("letter_content") or None,
    }
