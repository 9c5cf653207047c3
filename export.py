from __future__ import annotations

import io
import json
from datetime import date, datetime, timezone
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from logic import TIERS, _field

CJK_FONT = "STSong-Light"


def _safe_text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, (list, tuple)):
        return escape(", ".join(str(v) for v in value)) or "-"
    return escape(str(value))


def _json_default(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def build_planning_payload(
    student: Any,
    sim: dict[str, Any],
    selected: list[Any],
    health: dict[str, str],
    gap: list[dict[str, Any]],
    events: list[Any],
    actions: list[Any] | None = None,
) -> dict[str, Any]:
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "student": {
            "name": _field(student, "name"),
            "student_code": _field(student, "student_code"),
            "grade": _field(student, "grade"),
            "direction": _field(student, "direction"),
            "phase": _field(student, "phase"),
            "target_summary": _field(student, "target_summary"),
        },
        "simulator": dict(sim),
        "list_health": health,
        "schools": [
            {
                "university": _field(_field(s, "university", {}), "name"),
                "region": _field(_field(s, "university", {}), "region"),
                "tier": _field(s, "tier"),
                "major": _field(s, "major"),
                "requirements": _field(s, "requirements"),
                "deadlines": _field(s, "deadlines"),
                "portal_link": _field(s, "portal_link"),
            }
            for s in selected
        ],
        "gap_analysis": gap,
        "timeline": [
            {
                "title": _field(e, "title"),
                "start_date": _field(e, "start_date") or None,
                "end_date": _field(e, "end_date"),
                "category": _field(e, "category"),
                "status": _field(e, "status"),
                "assignee": _field(e, "assignee"),
            }
            for e in sorted(events, key=lambda e: _field(e, "start_date") or "9999")
        ],
        "selected_actions": [
            {"title": _field(a, "title"), "role": _field(a, "role"), "deadline": _field(a, "deadline"), "type": _field(a, "type")}
            for a in actions or []
        ],
    }


def build_pdf_report(payload: dict[str, Any], language: str = "en") -> bytes:
    buffer = io.BytesIO()
    student = payload.get("student", {})
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Planning Report - {student.get('name') or 'Student'}")
    styles = getSampleStyleSheet()
    normal = styles["BodyText"]
    heading = styles["Heading2"]
    title = styles["Title"]
    if language.startswith("zh"):
        pdfmetrics.registerFont(UnicodeCIDFont(CJK_FONT))
        for style in (normal, heading, title, styles["Heading3"]):
            style.fontName = CJK_FONT

    story = []
    story.append(Paragraph("Study Abroad Planning Report", title))
    story.append(Paragraph(f"Generated: {_safe_text(payload.get('generated_at'))}", normal))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Student", heading))
    for key in ["name", "student_code", "grade", "direction", "phase", "target_summary"]:
        story.append(Paragraph(f"{key}: {_safe_text(student.get(key))}", normal))
    sim = payload.get("simulator", {})
    story.append(
        Paragraph(
            f"Profile: GPA {_safe_text(sim.get('gpa'))} / TOEFL {_safe_text(sim.get('toefl'))} / SAT {_safe_text(sim.get('sat'))}",
            normal,
        )
    )
    story.append(Spacer(1, 8))

    health = payload.get("list_health", {})
    story.append(Paragraph(f"School List ({_safe_text(health.get('text'))})", heading))
    schools = payload.get("schools", [])
    for tier in TIERS:
        tier_schools = [s for s in schools if s.get("tier") == tier]
        if not tier_schools:
            continue
        story.append(Paragraph(tier, styles["Heading3"]))
        for school in tier_schools:
            story.append(Paragraph(f"- {_safe_text(school.get('university'))} ({_safe_text(school.get('major'))})", normal))
            if school.get("deadlines"):
                story.append(Paragraph(f"Deadlines: {_safe_text(school.get('deadlines'))}", normal))
    if not schools:
        story.append(Paragraph("No schools selected yet.", normal))
    story.append(Spacer(1, 8))

    gap = payload.get("gap_analysis", [])
    if gap:
        story.append(Paragraph("Gap Analysis (vs. Reach average)", heading))
        for metric in gap:
            status = metric.get("status") or "n/a"
            suffix = f" {metric.get('gap')}" if metric.get("gap") is not None else ""
            story.append(Paragraph(f"{_safe_text(metric.get('label'))}: {_safe_text(metric.get('current'))} [{status}{suffix}]", normal))
        story.append(Spacer(1, 8))

    story.append(Paragraph("Timeline", heading))
    events = payload.get("timeline", [])
    for event in events:
        span = event.get("start_date") or "Unscheduled"
        if event.get("end_date"):
            span = f"{span} to {event['end_date']}"
        story.append(
            Paragraph(
                f"{_safe_text(span)}: {_safe_text(event.get('title'))} ({_safe_text(event.get('assignee'))}, {_safe_text(event.get('status'))})",
                normal,
            )
        )
    if not events:
        story.append(Paragraph("No timeline events.", normal))

    actions = payload.get("selected_actions", [])
    if actions:
        story.append(Spacer(1, 8))
        story.append(Paragraph("Selected Actions", heading))
        for action in actions:
            story.append(Paragraph(f"- [{_safe_text(action.get('role'))}] {_safe_text(action.get('title'))}", normal))

    doc.build(story)
    buffer.seek(0)
    return buffer.read()


def build_json_summary(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=True, default=_json_default).encode("utf-8")
