from __future__ import annotations

import csv
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

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

logger = logging.getLogger("counseldesk.seed")

REQUIRED_UNIVERSITY_COLUMNS = {
    "id",
    "name",
    "cn_name",
    "rank",
    "region",
    "tags",
    "avg_gpa",
    "min_toefl",
    "avg_sat",
}

DEFAULT_CATALOG_PATH = "data/universities.sample.csv"


def _parse_list(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split("|") if item.strip()]


def _parse_int(value: str, default: int = 0) -> int:
    value = (value or "").strip()
    return int(value) if value else default


def _parse_float(value: str) -> float:
    value = (value or "").strip()
    if not value:
        raise ValueError("avg_gpa is required")
    return float(value)


def _parse_region(value: str | None) -> str:
    value = (value or "").strip().upper()
    if not value:
        raise ValueError("region is required")
    return value


def _parse_bool(value: str | None) -> bool:
    if value is None or not str(value).strip():
        return True
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def validate_csv_columns(columns: list[str]) -> tuple[bool, list[str]]:
    missing = sorted(REQUIRED_UNIVERSITY_COLUMNS - set(columns))
    return len(missing) == 0, missing


def load_universities_from_csv(csv_text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(csv_text.splitlines())
    valid, missing = validate_csv_columns(reader.fieldnames or [])
    if not valid:
        raise ValueError(f"Missing required columns: {missing}")

    rows: list[dict[str, Any]] = []
    for line_no, row in enumerate(reader, start=2):
        if not (row["id"] or "").strip() or not (row["name"] or "").strip():
            raise ValueError(f"Row {line_no}: id and name are required")
        try:
            rows.append(
                {
                    "id": row["id"].strip(),
                    "name": row["name"].strip(),
                    "cn_name": (row["cn_name"] or "").strip(),
                    "logo": (row.get("logo") or "").strip() or None,
                    "rank": _parse_int(row["rank"]),
                    "region": _parse_region(row["region"]),
                    "tags": _parse_list(row["tags"]),
                    "avg_gpa": _parse_float(row["avg_gpa"]),
                    "min_toefl": _parse_int(row["min_toefl"]),
                    "avg_sat": _parse_int(row["avg_sat"]),
                    "active": _parse_bool(row.get("active")),
                }
            )
        except ValueError as exc:
            raise ValueError(f"Row {line_no}: {exc}") from exc
    return rows


def upsert_universities(db: Session, rows: list[dict[str, Any]], source: str = "csv") -> dict[str, int]:
    existing_map = {
        u.id: u for u in db.scalars(select(University).where(University.id.in_([row["id"] for row in rows]))).all()
    }

    inserted = 0
    updated = 0
    for row in rows:
        existing = existing_map.get(row["id"])
        if existing:
            for key, value in row.items():
                setattr(existing, key, value)
            updated += 1
        else:
            db.add(University(**row))
            inserted += 1

    db.add(
        AuditLog(
            action="universities_upsert",
            details_json={
                "source": source,
                "inserted": inserted,
                "updated": updated,
                "university_ids": [r["id"] for r in rows],
            },
        )
    )
    logger.info("University catalog %s: %s inserted, %s updated", source, inserted, updated)
    return {"inserted": inserted, "updated": updated}


def seed_universities_if_empty(db: Session, sample_csv_path: str = DEFAULT_CATALOG_PATH) -> dict[str, int]:
    total = db.scalar(select(func.count()).select_from(University))
    if total and total > 0:
        return {"inserted": 0, "updated": 0}

    path = Path(sample_csv_path)
    csv_text = path.read_text(encoding="utf-8") if path.exists() else _default_catalog_csv()
    return upsert_universities(db, load_universities_from_csv(csv_text), source="seed")


DEMO_STUDENTS = [
    {
        "name": "Alex Chen",
        "student_code": "2025001",
        "grade": "G11",
        "class_name": "11-A",
        "direction": "US",
        "phase": "Phase 2 Tutoring",
        "status": "planning",
        "target_summary": "US Top 30 CS",
        "risk_level": "high",
        "risk_categories": ["academic"],
        "risk_tags": ["GPA fluctuation", "TOEFL below target"],
        "next_task": "Confirm school list",
        "due_in": 0,
        "contact_days_ago": 3,
        "data_completeness": 85,
    },
    {
        "name": "Sarah Li",
        "student_code": "2025002",
        "grade": "G12",
        "class_name": "12-B",
        "direction": "UK",
        "phase": "Phase 4 Admission",
        "status": "applying",
        "target_summary": "G5 Bio",
        "risk_level": "none",
        "risk_categories": [],
        "risk_tags": [],
        "next_task": "Final essay review",
        "due_in": 1,
        "contact_days_ago": 1,
        "data_completeness": 98,
    },
    {
        "name": "James Wang",
        "student_code": "2025003",
        "grade": "G10",
        "class_name": "10-C",
        "direction": "US, UK",
        "phase": "Phase 1 Planning",
        "status": "not_started",
        "target_summary": "TBD",
        "risk_level": "medium",
        "risk_categories": ["task"],
        "risk_tags": ["No activity plan", "First interview overdue"],
        "next_task": "First interview",
        "due_in": 7,
        "contact_days_ago": 14,
        "data_completeness": 40,
    },
    {
        "name": "Emily Zhang",
        "student_code": "2025004",
        "grade": "G12",
        "class_name": "12-A",
        "direction": "US",
        "phase": "Phase 3 Application",
        "status": "applying",
        "target_summary": "US Top 20 Arts",
        "risk_level": "low",
        "risk_categories": ["material"],
        "risk_tags": ["Portfolio behind schedule"],
        "next_task": "Portfolio review",
        "due_in": 2,
        "contact_days_ago": 0,
        "data_completeness": 90,
    },
    {
        "name": "Michael Wu",
        "student_code": "2025005",
        "grade": "G11",
        "class_name": "11-A",
        "direction": "US",
        "phase": "Phase 2 Tutoring",
        "status": "planning",
        "target_summary": "Top 50 Undecided",
        "risk_level": "high",
        "risk_categories": ["comm", "target"],
        "risk_tags": ["Parents unreachable", "Target too high"],
        "next_task": "Schedule parent meeting",
        "due_in": -2,
        "contact_days_ago": 30,
        "data_completeness": 60,
    },
]


def seed_demo_students(db: Session, today: date | None = None) -> list[Student]:
    today = today or date.today()
    now = datetime.now(timezone.utc)
    students = []
    for row in DEMO_STUDENTS:
        existing = db.scalar(select(Student).where(Student.student_code == row["student_code"]))
        if existing:
            students.append(existing)
            continue
        fields = {k: v for k, v in row.items() if k not in {"due_in", "contact_days_ago"}}
        student = Student(
            **fields,
            next_task_due=today + timedelta(days=row["due_in"]),
            last_contact_at=now - timedelta(days=row["contact_days_ago"]),
            avatar_initials="".join(part[0] for part in row["name"].split()[:2]).upper(),
        )
        db.add(student)
        students.append(student)
    db.flush()
    return students


def seed_student_workspace(db: Session, student: Student) -> None:
    """Demo planning state, timeline, essays, logs, materials and offers for one student."""
    code = student.student_code
    if db.get(StudentPlan, student.id) is None:
        db.add(
            StudentPlan(
                student_id=student.id,
                planning_step=3,
                family_inputs_json={
                    "expectations": "Top 30 US university, stable career path",
                    "resources": "Budget around 500k RMB per year",
                },
                student_inputs_json={
                    "interests": "Robotics, science fiction, coding",
                    "abilities": "AMC 12 distinction, robotics club captain",
                    "intentions": "Study computer science in the US",
                },
                target_preferences_json=[
                    {"id": 1, "region": "US", "majors": ["Computer Science"]},
                    {"id": 2, "region": "HK", "majors": ["Computer Science"]},
                ],
                sim_gpa=3.85,
                sim_toefl=102,
                sim_sat=1450,
            )
        )

    if not db.scalar(select(func.count()).select_from(SelectedSchool).where(SelectedSchool.student_id == student.id)):
        for uni_id, tier in (("u1", "Reach"), ("u3", "Match"), ("u6", "Match"), ("u8", "Safety")):
            db.add(
                SelectedSchool(
                    id=f"{code}-{uni_id}-cs",
                    student_id=student.id,
                    university_id=uni_id,
                    tier=tier,
                    major="Computer Science",
                )
            )

    if not db.scalar(select(func.count()).select_from(TimelineEvent).where(TimelineEvent.student_id == student.id)):
        events = [
            {"id": f"{code}-t1", "title": "Finalize School List", "start_date": "2024-09", "type": "Point", "category": "Application", "status": "Done", "priority": "High", "assignee": "Counselor", "is_milestone": True, "tags": ["Strategy"]},
            {"id": f"{code}-t2", "title": "Early Decision (ED) Application", "start_date": "2024-10", "end_date": "2024-11", "type": "Range", "category": "Application", "status": "In Progress", "priority": "High", "assignee": "Student", "is_milestone": True, "tags": ["Deadline"]},
            {"id": f"{code}-t3", "title": "Physics Competition Preparation", "start_date": "", "type": "Range", "category": "Activity", "status": "Pending", "priority": "Medium", "assignee": "Student", "is_milestone": False, "tags": ["Extracurricular"]},
        ]
        for event in events:
            db.add(TimelineEvent(student_id=student.id, **event))

    if db.get(EssayTask, f"{code}-e1") is None:
        draft = (
            "I have always been fascinated by the way small pieces come together to create something larger "
            "than life. My journey began with Legos. These early builds were more than play; they were my first "
            "lessons in structural integrity."
        )
        db.add(
            EssayTask(
                id=f"{code}-e1",
                student_id=student.id,
                title="Common App Main Essay",
                school="Common App",
                essay_type="Personal Statement",
                word_limit=650,
                deadline=date(2024, 11, 1),
                status="Drafting",
                context_keywords="Lego competition failure, late-night coding, sci-fi novels",
                idea_cards_json=[
                    {
                        "id": f"{code}-c1",
                        "title": "The Lego Metaphor",
                        "hook": "It wasn't the tower that mattered, but the pieces I couldn't fit.",
                        "core_values": ["Resilience", "Innovation"],
                        "plot_summary": "A failed Lego build leads to a lesson about imperfect code and innovation.",
                        "is_favorite": False,
                    }
                ],
                current_content=draft,
            )
        )
        history = [
            ("v1", "V1.0", "I like Legos. They are fun. I build tall towers.", "Student", "Student_Submit", "First Draft Submission", ["Draft 1"], datetime(2024, 10, 20, 10, 0, tzinfo=timezone.utc)),
            ("v2", "V1.1", "I like Legos because they teach me structure. When I build, I feel happy.", "AI", "AI_Generate", "AI Polished: Clarity improvement", ["AI Assisted"], datetime(2024, 10, 22, 9, 15, tzinfo=timezone.utc)),
            ("v3", "V1.2", draft, "Teacher", "Teacher_Save", "Fixed intro structure, waiting for student expansion.", ["Teacher Snapshot"], datetime(2024, 10, 24, 14, 20, tzinfo=timezone.utc)),
        ]
        for suffix, number, content, author, source, note, tags, created_at in history:
            db.add(
                EssayVersion(
                    id=f"{code}-{suffix}",
                    essay_id=f"{code}-e1",
                    version_number=number,
                    content=content,
                    author=author,
                    source=source,
                    note=note,
                    tags=tags,
                    word_count=len(content.split()),
                    created_at=created_at,
                )
            )
        db.add(
            EssayTask(
                id=f"{code}-e2",
                student_id=student.id,
                title="Why Carnegie Mellon?",
                school="Carnegie Mellon University",
                essay_type="Why Major",
                word_limit=300,
                deadline=date(2025, 1, 1),
                status="Brainstorming",
            )
        )

    if not db.scalar(select(func.count()).select_from(CommunicationLog).where(CommunicationLog.student_id == student.id)):
        db.add(
            CommunicationLog(
                student_id=student.id,
                log_type="Meeting",
                title="G11 course selection and summer planning",
                occurred_at=datetime(2024, 10, 15, 14, 0, tzinfo=timezone.utc),
                content="1. Confirm G11 spring courses (add AP Psych).\n2. Summer school strategy (Cornell SC).",
                participants=["Student", "Mom", "Counselor"],
                tags=["Planning", "Important"],
            )
        )
        db.add(
            CommunicationLog(
                student_id=student.id,
                log_type="Call",
                title="Urgent: TOEFL score follow-up",
                occurred_at=datetime(2024, 10, 10, 19, 30, tzinfo=timezone.utc),
                content="Speaking score below target; agreed on a retake in December.",
                participants=["Student", "Counselor"],
                tags=["Test"],
            )
        )

    if not db.scalar(select(func.count()).select_from(MaterialFile).where(MaterialFile.student_id == student.id)):
        for name, category, uploaded_on, size_text, file_type, uploader in (
            ("AMC_12_Certificate.pdf", "certs", date(2024, 5, 12), "1.2MB", "pdf", "Student"),
            ("Robotics_Club_Award.jpg", "certs", date(2024, 6, 1), "2.4MB", "image", "Student"),
            ("Portfolio_V2.pdf", "portfolios", date(2024, 9, 10), "15.6MB", "pdf", "Teacher"),
            ("Transcript_G10.pdf", "transcripts", date(2024, 7, 2), "0.6MB", "pdf", "Teacher"),
        ):
            db.add(
                MaterialFile(
                    student_id=student.id,
                    name=name,
                    category=category,
                    uploaded_on=uploaded_on,
                    size_text=size_text,
                    file_type=file_type,
                    uploader=uploader,
                )
            )

    if not db.scalar(select(func.count()).select_from(OfferRecord).where(OfferRecord.student_id == student.id)):
        for school, major, round_, result, decided_on in (
            ("Carnegie Mellon University", "Computer Science", "ED1", "Pending", None),
            ("University of Illinois Urbana-Champaign", "Computer Science", "EA", "Admitted", date(2024, 12, 15)),
            ("Georgia Institute of Technology", "Computer Science", "EA", "Deferred", date(2024, 12, 10)),
        ):
            db.add(
                OfferRecord(
                    student_id=student.id,
                    school=school,
                    major=major,
                    round=round_,
                    result=result,
                    decided_on=decided_on,
                )
            )

    if not db.scalar(select(func.count()).select_from(RecommendationRequest).where(RecommendationRequest.student_id == student.id)):
        db.add(
            RecommendationRequest(
                student_id=student.id,
                recommender_name="Ms. Sarah",
                recommender_role="School Counselor",
                status="Completed",
                deadline=date(2024, 11, 1),
                highlights="Founded Robotics Club. Overcame team conflict during regional finals. Consistent GPA improver.",
                ai_polished=True,
                letter_content=(
                    "Dear Admissions Committee,\n\nIt is my pleasure to recommend Alex for your computer science program. "
                    "Alex founded the school's Robotics Club and led the team to a regional victory.\n\nSincerely,\nMs. Sarah"
                ),
            )
        )
        db.add(
            RecommendationRequest(
                student_id=student.id,
                recommender_name="Mr. Wang",
                recommender_role="AP Calculus Teacher",
                status="Invited",
                deadline=date(2024, 11, 15),
                highlights="Got A in all exams. Helped classmates with tutoring after school.",
            )
        )


def seed_tasks(db: Session, students: list[Student], today: date | None = None) -> None:
    if db.scalar(select(func.count()).select_from(CounselorTask)):
        return
    today = today or date.today()
    by_code = {s.student_code: s for s in students}
    rows = [
        ("2025001", "Review Alex's profile update requests", "onboarding", "High", 0, "Review"),
        ("2025001", "Review Alex's Common App essay draft", "materials", "High", 0, "Review"),
        ("2025002", "Collect Sarah's AP Physics transcript", "materials", "Medium", -1, "Pending"),
        ("2025003", "Book James's first parent meeting", "onboarding", "High", 2, "Pending"),
        ("2025004", "Confirm Emily's RISD portfolio submission", "application", "High", 0, "Pending"),
        ("2025005", "Review Michael's competition list", "activity", "Low", 5, "Pending"),
        (None, "Update G11 standardized test tracker", "testing", "Medium", -7, "Pending"),
    ]
    for code, title, category, priority, due_in, status in rows:
        student = by_code.get(code) if code else None
        db.add(
            CounselorTask(
                student_id=student.id if student else None,
                title=title,
                category=category,
                priority=priority,
                due_date=today + timedelta(days=due_in),
                status=status,
            )
        )


def seed_all(db: Session, today: date | None = None) -> None:
    seed_universities_if_empty(db)
    students = seed_demo_students(db, today=today)
    seed_student_workspace(db, students[0])
    seed_tasks(db, students, today=today)
    logger.info("Demo data seeded for %s students", len(students))


def reset_and_seed(db: Session, today: date | None = None) -> None:
    for model in (
        AuditLog,
        CounselorTask,
        RecommendationRequest,
        OfferRecord,
        MaterialFile,
        CommunicationLog,
        EssayVersion,
        EssayTask,
        TimelineEvent,
        ActionItem,
        SelectedSchool,
        StudentPlan,
        Student,
        University,
    ):
        db.execute(delete(model))
    upsert_universities(db, load_universities_from_csv(_default_catalog_csv()), source="reset")
    students = seed_demo_students(db, today=today)
    seed_student_workspace(db, students[0])
    seed_tasks(db, students, today=today)


def _default_catalog_csv() -> str:
    sample_path = Path(DEFAULT_CATALOG_PATH)
    if sample_path.exists():
        return sample_path.read_text(encoding="utf-8")

    return """id,name,cn_name,rank,region,tags,avg_gpa,min_toefl,avg_sat
u1,Carnegie Mellon University,卡内基梅隆,22,US,CS #1|STEM强,3.92,102,1560
u2,New York University,纽约大学,35,US,商科强|城市校园,3.8,100,1520
u3,Univ. of Illinois Urbana-Champaign,UIUC,35,US,公立常春藤|工程强,3.65,90,1440
u4,Boston University,波士顿大学,43,US,传媒强|实习多,3.7,95,1450
u5,Imperial College London,帝国理工,6,UK,G5|理工强,3.95,100,0
u6,University of Hong Kong,香港大学,26,HK,亚洲Top|金融强,3.85,95,1500
u7,Cornell University,康奈尔大学,12,US,藤校|学术压强,3.95,105,1540
u8,Penn State University,宾州州立,60,US,Big Ten|公立,3.5,80,1350
u9,University of Manchester,曼彻斯特大学,27,UK,红砖大学|商科,3.5,90,0
u10,National University of Singapore,新加坡国立,8,SG,亚洲第一|工科强,3.95,100,1550
"""
