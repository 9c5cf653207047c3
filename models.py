from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Student(Base):
    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    student_code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    grade: Mapped[str] = mapped_column(String(10), nullable=False)  # G9 | G10 | G11 | G12
    class_name: Mapped[str] = mapped_column(String(40), nullable=False, default="TBD")
    direction: Mapped[str] = mapped_column(String(120), nullable=False, default="US")  # "US, UK"
    phase: Mapped[str] = mapped_column(String(40), nullable=False, default="Phase 0")
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="not_started")
    target_summary: Mapped[str] = mapped_column(String(255), nullable=False, default="To be planned")
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False, default="none")
    risk_categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    risk_tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    next_task: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    next_task_due: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_contact_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    data_completeness: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    avatar_initials: Mapped[str] = mapped_column(String(4), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    plan = relationship("StudentPlan", back_populates="student", uselist=False)
    selected_schools = relationship("SelectedSchool", back_populates="student")
    timeline_events = relationship("TimelineEvent", back_populates="student")

    __table_args__ = (
        CheckConstraint("risk_level in ('high', 'medium', 'low', 'none')", name="ck_students_risk_level"),
        CheckConstraint(
            "status in ('not_started', 'planning', 'applying', 'offer', 'confirmed')",
            name="ck_students_status",
        ),
        Index("ix_students_grade", "grade"),
    )


class University(Base):
    __tablename__ = "universities"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)  # u1, u2, ...
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cn_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    logo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    region: Mapped[str] = mapped_column(String(10), nullable=False)  # US | UK | HK | SG
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    avg_gpa: Mapped[float] = mapped_column(Float, nullable=False)
    min_toefl: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_sat: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0 = not considered
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("ix_universities_region", "region"),)


class StudentPlan(Base):
    __tablename__ = "student_plans"

    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), primary_key=True)
    planning_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    family_inputs_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    student_inputs_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    career_result_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    target_preferences_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    sim_gpa: Mapped[float] = mapped_column(Float, nullable=False, default=3.85)
    sim_toefl: Mapped[int] = mapped_column(Integer, nullable=False, default=102)
    sim_sat: Mapped[int] = mapped_column(Integer, nullable=False, default=1450)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    student = relationship("Student", back_populates="plan")


class SelectedSchool(Base):
    __tablename__ = "selected_schools"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    university_id: Mapped[str] = mapped_column(String(40), ForeignKey("universities.id"), nullable=False)
    tier: Mapped[str] = mapped_column(String(10), nullable=False)  # Reach | Match | Safety
    major: Mapped[str] = mapped_column(String(255), nullable=False, default="Undecided")
    requirements: Mapped[str] = mapped_column(Text, nullable=False, default="")
    admission_advice: Mapped[str] = mapped_column(Text, nullable=False, default="")
    deadlines: Mapped[str] = mapped_column(Text, nullable=False, default="")
    process: Mapped[str] = mapped_column(Text, nullable=False, default="")
    portal_link: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    student = relationship("Student", back_populates="selected_schools")
    university = relationship("University")

    __table_args__ = (
        CheckConstraint("tier in ('Reach', 'Match', 'Safety')", name="ck_selected_schools_tier"),
        Index("ix_selected_schools_student_id", "student_id"),
    )


class ActionItem(Base):
    __tablename__ = "action_items"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)  # Application | Test | Academics | Extracurriculars
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # Student | Counselor
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="Medium")
    deadline: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # Milestone | Routine
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_action_items_student_id", "student_id"),)


class TimelineEvent(Base):
    __tablename__ = "timeline_events"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="Point")  # Point | Range
    start_date: Mapped[str] = mapped_column(String(10), nullable=False, default="")  # YYYY-MM, "" = unscheduled
    end_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="Other")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="Medium")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_action_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    assignee: Mapped[str] = mapped_column(String(20), nullable=False, default="Student")
    is_milestone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    student = relationship("Student", back_populates="timeline_events")

    __table_args__ = (
        CheckConstraint("type in ('Point', 'Range')", name="ck_timeline_events_type"),
        CheckConstraint("status in ('Pending', 'In Progress', 'Done')", name="ck_timeline_events_status"),
        Index("ix_timeline_events_student_id", "student_id"),
    )


class EssayTask(Base):
    __tablename__ = "essay_tasks"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    school: Mapped[str] = mapped_column(String(255), nullable=False, default="Common App")
    essay_type: Mapped[str] = mapped_column(String(40), nullable=False, default="Personal Statement")
    word_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=650)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Not Started")
    context_keywords: Mapped[str] = mapped_column(Text, nullable=False, default="")
    idea_cards_json: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    versions = relationship("EssayVersion", back_populates="essay", order_by="EssayVersion.created_at.desc()")


class EssayVersion(Base):
    __tablename__ = "essay_versions"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    essay_id: Mapped[str] = mapped_column(String(80), ForeignKey("essay_tasks.id"), nullable=False)
    version_number: Mapped[str] = mapped_column(String(10), nullable=False)  # V1.0, V1.1, ...
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(10), nullable=False)  # Student | Teacher | AI
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    essay = relationship("EssayTask", back_populates="versions")

    __table_args__ = (
        CheckConstraint(
            "source in ('Student_Submit', 'Teacher_Save', 'AI_Generate', 'System_Restore')",
            name="ck_essay_versions_source",
        ),
    )


class CommunicationLog(Base):
    __tablename__ = "communication_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    log_type: Mapped[str] = mapped_column(String(20), nullable=False)  # Meeting | Call | Email | WeChat
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    participants: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (Index("ix_communication_logs_student_id", "student_id"),)


class MaterialFile(Base):
    __tablename__ = "material_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    uploaded_on: Mapped[date] = mapped_column(Date, nullable=False)
    size_text: Mapped[str] = mapped_column(String(20), nullable=False, default="-")
    file_type: Mapped[str] = mapped_column(String(10), nullable=False, default="other")  # pdf | image | doc | other
    uploader: Mapped[str] = mapped_column(String(10), nullable=False, default="Teacher")

    __table_args__ = (Index("ix_material_files_student_id", "student_id"),)


class CounselorTask(Base):
    __tablename__ = "counselor_tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("students.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False, default="planning")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="Medium")
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    assignee: Mapped[str] = mapped_column(String(80), nullable=False, default="Counselor")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    student = relationship("Student")

    __table_args__ = (
        CheckConstraint("status in ('Pending', 'Completed', 'Review', 'Overdue')", name="ck_counselor_tasks_status"),
        Index("ix_counselor_tasks_due_date", "due_date"),
    )


class OfferRecord(Base):
    __tablename__ = "offer_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    school: Mapped[str] = mapped_column(String(255), nullable=False)
    major: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    round: Mapped[str] = mapped_column(String(20), nullable=False, default="RD")
    result: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    decided_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "result in ('Pending', 'Admitted', 'Rejected', 'Deferred', 'Waitlisted')",
            name="ck_offer_records_result",
        ),
    )


class RecommendationRequest(Base):
    __tablename__ = "recommendation_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    recommender_name: Mapped[str] = mapped_column(String(120), nullable=False)
    recommender_role: Mapped[str] = mapped_column(String(120), nullable=False)  # "AP Calculus Teacher"
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Drafting")
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    highlights: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ai_polished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    letter_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status in ('Drafting', 'Invited', 'In Progress', 'Completed')",
            name="ck_recommendation_requests_status",
        ),
        Index("ix_recommendation_requests_student_id", "student_id"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("students.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(120), nullable=False)
    details_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
