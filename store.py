from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

import essays
import roster
import timeline
from logic import DEFAULT_SIM, university_to_dict
from models import (
    ActionItem,
    AuditLog,
    CommunicationLog,
    CounselorTask,
    EssayTask,
    EssayVersion,
    MaterialFile,
    OfferRecord,
    RecommendationRequest,
    SelectedSchool,
    Student,
    StudentPlan,
    TimelineEvent,
    University,
)

logger = logging.getLogger("counseldesk.store")

EVENT_FIELDS = (
    "id",
    "title",
    "type",
    "start_date",
    "end_date",
    "category",
    "status",
    "priority",
    "description",
    "source_action_id",
    "assignee",
    "is_milestone",
    "tags",
)
ACTION_FIELDS = ("id", "category", "role", "title", "description", "duration", "priority", "deadline", "type", "is_selected")
SCHOOL_FIELDS = ("id", "university_id", "tier", "major", "requirements", "admission_advice", "deadlines", "process", "portal_link")
LOG_TYPES = ("Meeting", "Call", "Email", "WeChat")
MATERIAL_CATEGORIES = ("certs", "portfolios", "activities", "transcripts", "tests", "other")
OFFER_RESULTS = ("Pending", "Admitted", "Rejected", "Deferred", "Waitlisted")
REC_FIELDS = ("recommender_name", "recommender_role", "status", "deadline", "highlights", "ai_polished", "letter_content")


def _uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _audit(db: Session, action: str, student_id: Any = None, **details: Any) -> None:
    db.add(
        AuditLog(
            student_id=_uuid(student_id) if student_id else None,
            action=action,
            details_json=details,
        )
    )
    logger.info("%s student=%s %s", action, student_id, details)


def _row_to_dict(row: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(row, name) for name in fields}


# --- Students ---


def list_students(db: Session) -> list[Student]:
    return db.scalars(select(Student).order_by(Student.created_at.desc(), Student.name)).all()


def get_student(db: Session, student_id: Any) -> Student | None:
    return db.get(Student, _uuid(student_id))


def create_student(
    db: Session,
    name: str,
    code: str,
    grade: str = "G10",
    direction: str = "US",
    phase: str = "Phase 0 Onboarding",
) -> Student:
    fields = roster.new_student_defaults(name, code, grade, direction, phase)
    if db.scalar(select(Student).where(Student.student_code == fields["student_code"])):
        raise ValueError(f"Student ID {fields['student_code']} already exists")
    student = Student(**fields)
    db.add(student)
    db.flush()
    _audit(db, "student_created", student.id, student_code=student.student_code, name=student.name)
    return student


def apply_risk_diagnosis(db: Session, student_id: Any, dimensions: list[dict[str, Any]]) -> Student:
    student = get_student(db, student_id)
    if student is None:
        raise ValueError(f"Student {student_id} not found")
    level, categories = roster.summarize_diagnosis(dimensions)
    student.risk_level = level
    student.risk_categories = categories
    student.risk_tags = [d["status_text"] for d in dimensions if d["id"] in categories]
    _audit(db, "risk_diagnosis_applied", student_id, risk_level=level, categories=categories)
    return student


# --- Planning ---


def list_universities(db: Session, active_only: bool = True) -> list[University]:
    stmt = select(University).order_by(University.rank)
    if active_only:
        stmt = stmt.where(University.active.is_(True))
    return db.scalars(stmt).all()


def get_or_create_plan(db: Session, student_id: Any) -> StudentPlan:
    plan = db.get(StudentPlan, _uuid(student_id))
    if plan is None:
        plan = StudentPlan(
            student_id=_uuid(student_id),
            planning_step=1,
            family_inputs_json={},
            student_inputs_json={},
            target_preferences_json=[],
            sim_gpa=DEFAULT_SIM["gpa"],
            sim_toefl=DEFAULT_SIM["toefl"],
            sim_sat=DEFAULT_SIM["sat"],
        )
        db.add(plan)
        db.flush()
    return plan


def save_plan_state(db: Session, student_id: Any, **fields: Any) -> StudentPlan:
    allowed = {
        "planning_step",
        "family_inputs_json",
        "student_inputs_json",
        "career_result_json",
        "target_preferences_json",
        "sim_gpa",
        "sim_toefl",
        "sim_sat",
    }
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown plan fields: {sorted(unknown)}")
    step = fields.get("planning_step")
    if step is not None and not 1 <= int(step) <= 6:
        raise ValueError("planning_step must be between 1 and 6")

    plan = get_or_create_plan(db, student_id)
    for key, value in fields.items():
        setattr(plan, key, value)
    _audit(db, "plan_saved", student_id, fields=sorted(fields))
    return plan


def list_selected_schools(db: Session, student_id: Any) -> list[dict[str, Any]]:
    rows = db.scalars(
        select(SelectedSchool)
        .where(SelectedSchool.student_id == _uuid(student_id))
        .order_by(SelectedSchool.created_at, SelectedSchool.id)
    ).all()
    result = []
    for row in rows:
        item = _row_to_dict(row, SCHOOL_FIELDS)
        item["university"] = university_to_dict(row.university)
        result.append(item)
    return result


def add_selected_schools(db: Session, student_id: Any, entries: list[dict[str, Any]]) -> int:
    for entry in entries:
        db.add(SelectedSchool(student_id=_uuid(student_id), **{k: entry[k] for k in SCHOOL_FIELDS}))
    if entries:
        _audit(
            db,
            "schools_added",
            student_id,
            schools=[f"{e['university_id']}:{e['major']}" for e in entries],
            tier=entries[0]["tier"],
        )
    return len(entries)


def remove_selected_school(db: Session, student_id: Any, school_id: str) -> None:
    db.execute(
        delete(SelectedSchool).where(
            SelectedSchool.student_id == _uuid(student_id),
            SelectedSchool.id == school_id,
        )
    )
    _audit(db, "school_removed", student_id, school_id=school_id)


def update_selected_school(db: Session, student_id: Any, school: dict[str, Any]) -> None:
    row = db.get(SelectedSchool, school["id"])
    if row is None or row.student_id != _uuid(student_id):
        raise ValueError(f"Selected school {school['id']} not found")
    changed = []
    for key in SCHOOL_FIELDS:
        if key in ("id", "university_id"):
            continue
        if key in school and getattr(row, key) != school[key]:
            setattr(row, key, school[key])
            changed.append(key)
    if changed:
        _audit(db, "school_updated", student_id, school_id=row.id, fields=changed)


def list_action_items(db: Session, student_id: Any) -> list[dict[str, Any]]:
    rows = db.scalars(select(ActionItem).where(ActionItem.student_id == _uuid(student_id)).order_by(ActionItem.id)).all()
    return [_row_to_dict(row, ACTION_FIELDS) for row in rows]


def save_action_items(db: Session, student_id: Any, items: list[dict[str, Any]]) -> int:
    db.execute(delete(ActionItem).where(ActionItem.student_id == _uuid(student_id)))
    for item in items:
        db.add(ActionItem(student_id=_uuid(student_id), **{k: item[k] for k in ACTION_FIELDS}))
    _audit(db, "action_items_saved", student_id, count=len(items))
    return len(items)


# --- Timeline ---


def list_timeline_events(db: Session, student_id: Any) -> list[dict[str, Any]]:
    rows = db.scalars(
        select(TimelineEvent).where(TimelineEvent.student_id == _uuid(student_id)).order_by(TimelineEvent.start_date, TimelineEvent.id)
    ).all()
    return [_row_to_dict(row, EVENT_FIELDS) for row in rows]


def _add_event(db: Session, student_id: Any, event: dict[str, Any]) -> None:
    db.add(TimelineEvent(student_id=_uuid(student_id), **{k: event.get(k) for k in EVENT_FIELDS}))


def sync_actions(
    db: Session,
    student_id: Any,
    actions: list[dict[str, Any]],
    today: date | None = None,
    base_year: int = timeline.BASE_YEAR,
) -> int:
    existing = list_timeline_events(db, student_id)
    merged = timeline.sync_actions_to_timeline(existing, actions, today=today, base_year=base_year)
    added = merged[len(existing):]
    # Event ids are global; another student may already hold one.
    taken = set(db.scalars(select(TimelineEvent.id).where(TimelineEvent.id.in_([e["id"] for e in added]))))
    fresh = [e for e in added if e["id"] not in taken]
    for event in fresh:
        _add_event(db, student_id, event)
    plan = get_or_create_plan(db, student_id)
    plan.planning_step = 6
    _audit(db, "actions_synced", student_id, requested=len(actions), added=len(fresh))
    return len(fresh)


def save_timeline_event(db: Session, student_id: Any, form: dict[str, Any], editing_id: str | None = None) -> dict[str, Any]:
    existing = list_timeline_events(db, student_id)
    if editing_id and not any(e["id"] == editing_id for e in existing):
        raise ValueError(f"Event {editing_id} not found")
    _, event = timeline.upsert_event(existing, form, editing_id=editing_id)
    if editing_id:
        row = db.get(TimelineEvent, editing_id)
        for key in EVENT_FIELDS:
            if key != "id" and key in event:
                setattr(row, key, event[key])
    else:
        _add_event(db, student_id, event)
    _audit(db, "timeline_event_saved", student_id, event_id=event["id"], created=editing_id is None)
    return event


def _student_events(db: Session, student_id: Any, event_id: str) -> list[dict[str, Any]]:
    events = list_timeline_events(db, student_id)
    if not any(e["id"] == event_id for e in events):
        raise ValueError(f"Event {event_id} not found")
    return events


def _write_event(db: Session, events: list[dict[str, Any]], event_id: str) -> dict[str, Any]:
    event = next(e for e in events if e["id"] == event_id)
    row = db.get(TimelineEvent, event_id)
    for key in EVENT_FIELDS:
        if key != "id":
            setattr(row, key, event[key])
    return event


def move_timeline_event(db: Session, student_id: Any, event_id: str, month: str) -> None:
    if not timeline.MONTH_RE.fullmatch(month):
        raise ValueError(f"Month must look like YYYY-MM: {month}")
    events = timeline.move_event(_student_events(db, student_id, event_id), event_id, month)
    _write_event(db, events, event_id)
    _audit(db, "timeline_event_moved", student_id, event_id=event_id, month=month)


def toggle_timeline_event(db: Session, student_id: Any, event_id: str) -> str:
    events = timeline.toggle_event_status(_student_events(db, student_id, event_id), event_id)
    event = _write_event(db, events, event_id)
    _audit(db, "timeline_event_toggled", student_id, event_id=event_id, status=event["status"])
    return event["status"]


def delete_timeline_event(db: Session, student_id: Any, event_id: str) -> None:
    events = _student_events(db, student_id, event_id)
    remaining = {e["id"] for e in timeline.delete_event(events, event_id)}
    for event in events:
        if event["id"] not in remaining:
            db.delete(db.get(TimelineEvent, event["id"]))
    _audit(db, "timeline_event_deleted", student_id, event_id=event_id)


# --- Essays ---


def list_essays(db: Session, student_id: Any) -> list[EssayTask]:
    return db.scalars(select(EssayTask).where(EssayTask.student_id == _uuid(student_id)).order_by(EssayTask.deadline)).all()


def get_essay(db: Session, essay_id: str) -> EssayTask | None:
    return db.get(EssayTask, essay_id)


def list_versions(db: Session, essay_id: str) -> list[EssayVersion]:
    return db.scalars(
        select(EssayVersion).where(EssayVersion.essay_id == essay_id).order_by(EssayVersion.created_at.desc())
    ).all()


def save_essay_content(db: Session, essay_id: str, content: str) -> None:
    essay = db.get(EssayTask, essay_id)
    if essay is None:
        raise ValueError(f"Essay {essay_id} not found")
    essay.current_content = content
    _audit(db, "essay_content_saved", essay.student_id, essay_id=essay_id, words=essays.count_words(content))


def update_essay_status(db: Session, essay_id: str, status: str) -> None:
    if status not in essays.ESSAY_STATUSES:
        raise ValueError(f"Unknown essay status: {status}")
    essay = db.get(EssayTask, essay_id)
    if essay is None:
        raise ValueError(f"Essay {essay_id} not found")
    if essay.status != status:
        _audit(db, "essay_status_changed", essay.student_id, essay_id=essay_id, old=essay.status, new=status)
        essay.status = status


def save_essay_version(
    db: Session,
    essay_id: str,
    source: str,
    note: str | None = None,
    author: str = "Teacher",
    now: datetime | None = None,
) -> EssayVersion:
    essay = db.get(EssayTask, essay_id)
    if essay is None:
        raise ValueError(f"Essay {essay_id} not found")
    if source == "Teacher_Save" and not (note or "").strip():
        raise ValueError("A version note is required")
    snapshot = essays.create_snapshot(essay, list_versions(db, essay_id), source, note=note, author=author, now=now)
    version = EssayVersion(**snapshot)
    db.add(version)
    db.flush()
    _audit(db, "essay_version_saved", essay.student_id, essay_id=essay_id, version=version.version_number, source=source)
    return version


def restore_essay_version(db: Session, essay_id: str, version_id: str, now: datetime | None = None) -> EssayVersion:
    essay = db.get(EssayTask, essay_id)
    if essay is None:
        raise ValueError(f"Essay {essay_id} not found")
    backup, content = essays.restore_version(essay, list_versions(db, essay_id), version_id, now=now)
    backup_row = EssayVersion(**backup)
    db.add(backup_row)
    essay.current_content = content
    db.flush()
    _audit(db, "essay_version_restored", essay.student_id, essay_id=essay_id, version_id=version_id, backup=backup_row.version_number)
    return backup_row


def save_idea_cards(db: Session, essay_id: str, cards: list[dict[str, Any]], keywords: str | None = None) -> None:
    essay = db.get(EssayTask, essay_id)
    if essay is None:
        raise ValueError(f"Essay {essay_id} not found")
    essay.idea_cards_json = cards
    if keywords is not None:
        essay.context_keywords = keywords
    _audit(db, "idea_cards_saved", essay.student_id, essay_id=essay_id, cards=len(cards))


# --- Communication, materials, offers ---


def list_communication_logs(db: Session, student_id: Any) -> list[CommunicationLog]:
    return db.scalars(
        select(CommunicationLog).where(CommunicationLog.student_id == _uuid(student_id)).order_by(CommunicationLog.occurred_at.desc())
    ).all()


def add_communication_log(
    db: Session,
    student_id: Any,
    log_type: str,
    title: str,
    occurred_at: datetime,
    content: str = "",
    participants: list[str] | None = None,
    tags: list[str] | None = None,
) -> CommunicationLog:
    if not (title or "").strip():
        raise ValueError("Communication title is required")
    if log_type not in LOG_TYPES:
        raise ValueError(f"Unknown communication type: {log_type}")
    log = CommunicationLog(
        student_id=_uuid(student_id),
        log_type=log_type,
        title=title.strip(),
        occurred_at=occurred_at,
        content=content,
        participants=list(participants or ["Student", "Counselor"]),
        tags=list(tags or []),
    )
    db.add(log)
    student = get_student(db, student_id)
    if student is not None:
        student.last_contact_at = occurred_at
    _audit(db, "communication_logged", student_id, log_type=log_type, title=log.title)
    return log


def delete_communication_log(db: Session, student_id: Any, log_id: Any) -> None:
    log = db.get(CommunicationLog, _uuid(log_id))
    if log is None or log.student_id != _uuid(student_id):
        raise ValueError(f"Communication log {log_id} not found")
    db.delete(log)
    _audit(db, "communication_deleted", student_id, title=log.title)


def list_materials(db: Session, student_id: Any, category: str | None = None) -> list[MaterialFile]:
    stmt = select(MaterialFile).where(MaterialFile.student_id == _uuid(student_id))
    if category and category != "all":
        stmt = stmt.where(MaterialFile.category == category)
    return db.scalars(stmt.order_by(MaterialFile.uploaded_on.desc())).all()


def add_material_file(
    db: Session,
    student_id: Any,
    name: str,
    category: str,
    size_text: str = "-",
    uploader: str = "Teacher",
    uploaded_on: date | None = None,
) -> MaterialFile:
    if not (name or "").strip():
        raise ValueError("File name is required")
    if category not in MATERIAL_CATEGORIES:
        raise ValueError(f"Unknown material category: {category}")
    suffix = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if suffix == "pdf":
        file_type = "pdf"
    elif suffix in {"png", "jpg", "jpeg", "gif"}:
        file_type = "image"
    elif suffix in {"doc", "docx"}:
        file_type = "doc"
    else:
        file_type = "other"
    material = MaterialFile(
        student_id=_uuid(student_id),
        name=name.strip(),
        category=category,
        uploaded_on=uploaded_on or date.today(),
        size_text=size_text,
        file_type=file_type,
        uploader=uploader,
    )
    db.add(material)
    _audit(db, "material_added", student_id, name=material.name, category=category)
    return material


def list_offers(db: Session, student_id: Any) -> list[OfferRecord]:
    return db.scalars(select(OfferRecord).where(OfferRecord.student_id == _uuid(student_id)).order_by(OfferRecord.school)).all()


def record_offer(
    db: Session,
    student_id: Any,
    school: str,
    major: str = "",
    round: str = "RD",
    result: str = "Pending",
    decided_on: date | None = None,
) -> OfferRecord:
    if not (school or "").strip():
        raise ValueError("School is required")
    if result not in OFFER_RESULTS:
        raise ValueError(f"Unknown offer result: {result}")
    offer = db.scalar(
        select(OfferRecord).where(
            OfferRecord.student_id == _uuid(student_id),
            OfferRecord.school == school.strip(),
            OfferRecord.round == round,
        )
    )
    if offer is None:
        offer = OfferRecord(student_id=_uuid(student_id), school=school.strip(), round=round)
        db.add(offer)
    offer.major = major
    offer.result = result
    offer.decided_on = decided_on if result != "Pending" else None
    _audit(db, "offer_recorded", student_id, school=offer.school, round=round, result=result)
    return offer


# --- Recommendation letters ---


def list_recommendations(db: Session, student_id: Any) -> list[RecommendationRequest]:
    return db.scalars(
        select(RecommendationRequest)
        .where(RecommendationRequest.student_id == _uuid(student_id))
        .order_by(RecommendationRequest.deadline, RecommendationRequest.recommender_name)
    ).all()


def save_recommendation(
    db: Session,
    student_id: Any,
    form: dict[str, Any],
    editing_id: Any = None,
) -> RecommendationRequest:
    if editing_id:
        request = db.get(RecommendationRequest, _uuid(editing_id))
        if request is None or request.student_id != _uuid(student_id):
            raise ValueError(f"Recommendation request {editing_id} not found")
        current = {key: getattr(request, key) for key in REC_FIELDS}
    else:
        request = RecommendationRequest(student_id=_uuid(student_id))
        current = None
    fields = roster.recommendation_fields(form, current)
    for key, value in fields.items():
        setattr(request, key, value)
    if not editing_id:
        db.add(request)
        db.flush()
    _audit(
        db,
        "recommendation_saved",
        student_id,
        request_id=str(request.id),
        recommender=request.recommender_name,
        status=request.status,
        created=editing_id is None,
    )
    return request


def delete_recommendation(db: Session, student_id: Any, request_id: Any) -> None:
    request = db.get(RecommendationRequest, _uuid(request_id))
    if request is None or request.student_id != _uuid(student_id):
        raise ValueError(f"Recommendation request {request_id} not found")
    db.delete(request)
    _audit(db, "recommendation_deleted", student_id, recommender=request.recommender_name)


# --- Task center ---


def list_tasks(db: Session) -> list[dict[str, Any]]:
    rows = db.scalars(select(CounselorTask).order_by(CounselorTask.due_date)).all()
    return [
        {
            "id": row.id,
            "title": row.title,
            "student_id": row.student_id,
            "student_name": row.student.name if row.student else "",
            "category": row.category,
            "priority": row.priority,
            "due_date": row.due_date,
            "status": row.status,
            "assignee": row.assignee,
            "description": row.description,
        }
        for row in rows
    ]


def create_task(
    db: Session,
    title: str,
    student_id: Any = None,
    category: str = "planning",
    priority: str = "Medium",
    due_date: date | None = None,
    assignee: str = "Counselor",
    description: str | None = None,
) -> CounselorTask:
    if not (title or "").strip():
        raise ValueError("Task title is required")
    task = CounselorTask(
        title=title.strip(),
        student_id=_uuid(student_id) if student_id else None,
        category=category,
        priority=priority,
        due_date=due_date or date.today(),
        status="Pending",
        assignee=assignee,
        description=description,
    )
    db.add(task)
    _audit(db, "task_created", student_id, title=task.title, category=category)
    return task


def complete_tasks(db: Session, task_ids: list[Any]) -> int:
    ids = {_uuid(task_id) for task_id in task_ids}
    done = [t for t in roster.batch_complete(list_tasks(db), ids) if t["id"] in ids]
    for task in done:
        db.get(CounselorTask, task["id"]).status = task["status"]
    _audit(db, "tasks_completed", None, task_ids=[str(t["id"]) for t in done], completed_at=datetime.now(timezone.utc).isoformat())
    return len(done)


def list_audit_logs(db: Session, student_id: Any = None, limit: int = 50) -> list[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)
    if student_id:
        stmt = stmt.where(AuditLog.student_id == _uuid(student_id))
    return db.scalars(stmt).all()
