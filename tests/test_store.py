from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

import store
from logic import add_school, university_to_dict
from models import Base, CounselorTask, Student, University
from seed import seed_all

TODAY = date(2024, 10, 10)


@pytest.fixture
def db():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def alex(db):
    seed_all(db, today=TODAY)
    db.flush()
    return db.scalar(select(Student).where(Student.student_code == "2025001"))


def base_actions() -> list[dict]:
    return [
        {"id": "act-1", "category": "Test", "role": "Student", "title": "Take SAT", "description": "", "duration": "",
         "priority": "High", "deadline": "2025-03-08", "type": "Milestone", "is_selected": True},
        {"id": "act-2", "category": "Academics", "role": "Counselor", "title": "Grade review", "description": "",
         "duration": "", "priority": "Medium", "deadline": "", "type": "Routine", "is_selected": True},
    ]


def test_seed_all_is_idempotent(db) -> None:
    seed_all(db, today=TODAY)
    seed_all(db, today=TODAY)
    db.flush()

    assert db.scalar(select(func.count()).select_from(University)) == 10
    assert db.scalar(select(func.count()).select_from(Student)) == 5
    assert db.scalar(select(func.count()).select_from(CounselorTask)) == 7


def test_create_student_rejects_duplicate_codes_and_audits(db) -> None:
    student = store.create_student(db, "Zoe Sun", "2025010", grade="G11")
    assert student.status == "not_started"
    assert student.next_task == "Onboarding interview"

    with pytest.raises(ValueError):
        store.create_student(db, "Zoe Again", "2025010")

    actions = [log.action for log in store.list_audit_logs(db, student.id)]
    assert actions == ["student_created"]


def test_plan_state_validates_step_and_fields(db) -> None:
    student = store.create_student(db, "Zoe Sun", "2025010")
    plan = store.get_or_create_plan(db, student.id)
    assert plan.planning_step == 1
    assert plan.sim_gpa == 3.85

    store.save_plan_state(db, student.id, planning_step=3, target_preferences_json=[{"id": 1, "region": "UK", "majors": []}])
    assert store.get_or_create_plan(db, student.id).target_preferences_json[0]["region"] == "UK"

    with pytest.raises(ValueError):
        store.save_plan_state(db, student.id, planning_step=7)
    with pytest.raises(ValueError):
        store.save_plan_state(db, student.id, favourite_colour="blue")


def test_selected_school_lifecycle(db, alex) -> None:
    selected = store.list_selected_schools(db, alex.id)
    assert [s["tier"] for s in selected].count("Match") == 2
    assert selected[0]["university"]["name"]

    nyu = university_to_dict(db.get(University, "u2"))
    entries = add_school(selected, nyu, "Reach", [{"id": 1, "region": "US", "majors": ["CS", "Economics"]}])
    assert store.add_selected_schools(db, alex.id, entries) == 2
    assert len(store.list_selected_schools(db, alex.id)) == 6

    target = {**entries[0], "deadlines": "ED: Nov 1"}
    store.update_selected_school(db, alex.id, target)
    updated = next(s for s in store.list_selected_schools(db, alex.id) if s["id"] == target["id"])
    assert updated["deadlines"] == "ED: Nov 1"

    store.remove_selected_school(db, alex.id, target["id"])
    assert len(store.list_selected_schools(db, alex.id)) == 5

    other = store.create_student(db, "Zoe Sun", "2025010")
    with pytest.raises(ValueError):
        store.update_selected_school(db, other.id, entries[1])


def test_sync_actions_adds_each_action_once(db, alex) -> None:
    store.save_action_items(db, alex.id, base_actions())
    assert len(store.list_action_items(db, alex.id)) == 2

    assert store.sync_actions(db, alex.id, base_actions(), today=TODAY) == 2
    assert store.sync_actions(db, alex.id, base_actions(), today=TODAY) == 0

    events = {e["id"]: e for e in store.list_timeline_events(db, alex.id)}
    assert events["evt-act-1"]["start_date"] == "2025-03"
    assert events["evt-act-2"]["end_date"] == "2024-11"
    assert store.get_or_create_plan(db, alex.id).planning_step == 6


def test_sync_actions_skips_event_ids_owned_by_another_student(db, alex) -> None:
    store.sync_actions(db, alex.id, base_actions(), today=TODAY)
    other = store.create_student(db, "Zoe Sun", "2025010")
    assert store.sync_actions(db, other.id, base_actions(), today=TODAY) == 0
    assert store.list_timeline_events(db, other.id) == []


def test_timeline_event_edits(db, alex) -> None:
    event = store.save_timeline_event(db, alex.id, {"title": "Campus visit", "start_date": "2025-04"})
    db.flush()

    store.move_timeline_event(db, alex.id, event["id"], "2025-05")
    assert store.toggle_timeline_event(db, alex.id, event["id"]) == "Done"
    moved = next(e for e in store.list_timeline_events(db, alex.id) if e["id"] == event["id"])
    assert moved["start_date"] == "2025-05"

    with pytest.raises(ValueError):
        store.move_timeline_event(db, alex.id, event["id"], "May 2025")
    with pytest.raises(ValueError):
        store.save_timeline_event(db, alex.id, {"title": ""})

    other = store.create_student(db, "Zoe Sun", "2025010")
    with pytest.raises(ValueError):
        store.delete_timeline_event(db, other.id, event["id"])

    store.delete_timeline_event(db, alex.id, event["id"])
    assert event["id"] not in {e["id"] for e in store.list_timeline_events(db, alex.id)}


def test_essay_versions_and_restore(db, alex) -> None:
    essay_id = "2025001-e1"
    with pytest.raises(ValueError):
        store.save_essay_version(db, essay_id, "Teacher_Save", note="  ")

    store.save_essay_content(db, essay_id, "A brand new opening line.")
    saved = store.save_essay_version(db, essay_id, "Teacher_Save", note="New opening")
    assert saved.version_number == "V1.3"
    assert saved.word_count == 5

    backup = store.restore_essay_version(db, essay_id, "2025001-v1")
    assert backup.version_number == "V1.4"
    assert backup.source == "System_Restore"
    assert backup.content == "A brand new opening line."
    assert store.get_essay(db, essay_id).current_content == "I like Legos. They are fun. I build tall towers."
    assert len(store.list_versions(db, essay_id)) == 5


def test_update_essay_status_validates_and_audits(db, alex) -> None:
    essay_id = "2025001-e1"
    with pytest.raises(ValueError):
        store.update_essay_status(db, essay_id, "Submitted")

    store.update_essay_status(db, essay_id, "Drafting")
    store.update_essay_status(db, essay_id, "Reviewing")
    db.flush()

    assert store.get_essay(db, essay_id).status == "Reviewing"
    changes = [log for log in store.list_audit_logs(db, alex.id) if log.action == "essay_status_changed"]
    assert len(changes) == 1


def test_communication_log_updates_last_contact(db, alex) -> None:
    occurred_at = datetime(2024, 10, 20, 16, 0, tzinfo=timezone.utc)
    store.add_communication_log(db, alex.id, "Email", "Essay feedback sent", occurred_at, participants=["Counselor"])

    assert alex.last_contact_at == occurred_at
    assert store.list_communication_logs(db, alex.id)[0].title == "Essay feedback sent"

    with pytest.raises(ValueError):
        store.add_communication_log(db, alex.id, "Fax", "Old school", occurred_at)
    with pytest.raises(ValueError):
        store.add_communication_log(db, alex.id, "Call", " ", occurred_at)


def test_material_files_infer_type_and_filter_by_category(db, alex) -> None:
    material = store.add_material_file(db, alex.id, "SAT_Score_Report.PDF", "tests", size_text="0.3MB")
    assert material.file_type == "pdf"
    assert store.add_material_file(db, alex.id, "notes", "other").file_type == "other"

    assert [m.name for m in store.list_materials(db, alex.id, "tests")] == ["SAT_Score_Report.PDF"]
    assert len(store.list_materials(db, alex.id, "all")) == 6

    with pytest.raises(ValueError):
        store.add_material_file(db, alex.id, "x.pdf", "receipts")


def test_record_offer_upserts_by_school_and_round(db, alex) -> None:
    offer = store.record_offer(
        db, alex.id, "Carnegie Mellon University", "Computer Science", "ED1", "Admitted", date(2024, 12, 14)
    )
    db.flush()
    offers = store.list_offers(db, alex.id)

    assert len(offers) == 3
    assert offer.result == "Admitted"
    assert offer.decided_on == date(2024, 12, 14)

    with pytest.raises(ValueError):
        store.record_offer(db, alex.id, "MIT", result="Maybe")


def test_task_center_round_trip(db, alex) -> None:
    tasks = store.list_tasks(db)
    assert len(tasks) == 7
    assert {t["student_name"] for t in tasks} >= {"Alex Chen", ""}

    created = store.create_task(db, "Send recommendation reminder", alex.id, "application", "High", TODAY)
    db.flush()
    assert store.complete_tasks(db, [created.id, tasks[0]["id"]]) == 2

    statuses = {t["id"]: t["status"] for t in store.list_tasks(db)}
    assert statuses[created.id] == "Completed"

    with pytest.raises(ValueError):
        store.create_task(db, "  ")


def test_essay_content_and_idea_cards_are_audited(db, alex) -> None:
    essay_id = "2025001-e1"
    store.save_essay_content(db, essay_id, "Robots taught me patience.")
    store.save_idea_cards(db, essay_id, [{"id": "idea-1", "title": "Night Shift"}], keywords="volunteering")
    db.flush()

    logs = {log.action: log for log in store.list_audit_logs(db, alex.id)}
    assert logs["essay_content_saved"].details_json["words"] == 4
    assert logs["idea_cards_saved"].details_json["cards"] == 1
    assert store.get_essay(db, essay_id).context_keywords == "volunteering"

    with pytest.raises(ValueError):
        store.save_essay_content(db, "missing-essay", "text")


def test_delete_communication_log_checks_owner(db, alex) -> None:
    logs = store.list_communication_logs(db, alex.id)
    other = store.create_student(db, "Zoe Sun", "2025010")
    with pytest.raises(ValueError):
        store.delete_communication_log(db, other.id, logs[0].id)

    store.delete_communication_log(db, alex.id, logs[0].id)
    db.flush()
    assert len(store.list_communication_logs(db, alex.id)) == len(logs) - 1
    assert "communication_deleted" in [log.action for log in store.list_audit_logs(db, alex.id)]


def test_apply_risk_diagnosis_updates_student_risk_fields(db, alex) -> None:
    dimensions = [
        {"id": "academic", "level": "medium", "status_text": "GPA dipping"},
        {"id": "target", "level": "low", "status_text": "On track"},
        {"id": "task", "level": "none", "status_text": "Clear"},
        {"id": "material", "level": "unknown", "status_text": "Info Missing"},
        {"id": "comm", "level": "high", "status_text": "No contact"},
    ]
    student = store.apply_risk_diagnosis(db, alex.id, dimensions)

    assert student.risk_level == "high"
    assert student.risk_categories == ["academic", "comm"]
    assert student.risk_tags == ["GPA dipping", "No contact"]
    assert "risk_diagnosis_applied" in [log.action for log in store.list_audit_logs(db, alex.id)]


def test_recommendation_requests_round_trip(db, alex) -> None:
    requests = store.list_recommendations(db, alex.id)
    assert [r.recommender_name for r in requests] == ["Ms. Sarah", "Mr. Wang"]

    created = store.save_recommendation(
        db, alex.id, {"recommender_name": "Dr. Lee", "recommender_role": "Physics Teacher", "deadline": date(2024, 12, 1)}
    )
    assert created.status == "Drafting"
    assert len(store.list_recommendations(db, alex.id)) == 3

    store.save_recommendation(db, alex.id, {"highlights": "Led the robotics team", "ai_polished": True}, editing_id=created.id)
    edited = store.list_recommendations(db, alex.id)[-1]
    assert edited.recommender_name == "Dr. Lee"
    assert edited.highlights == "Led the robotics team"
    assert edited.ai_polished is True

    other = store.create_student(db, "Zoe Sun", "2025010")
    with pytest.raises(ValueError):
        store.save_recommendation(db, other.id, {"status": "Invited"}, editing_id=created.id)
    with pytest.raises(ValueError):
        store.delete_recommendation(db, other.id, created.id)
    with pytest.raises(ValueError):
        store.save_recommendation(db, alex.id, {"recommender_name": "No Role"})

    store.delete_recommendation(db, alex.id, created.id)
    db.flush()
    assert len(store.list_recommendations(db, alex.id)) == 2
    actions = [log.action for log in store.list_audit_logs(db, alex.id)]
    assert actions.count("recommendation_saved") == 2
    assert "recommendation_deleted" in actions


def test_move_timeline_event_rejects_trailing_newline(db, alex) -> None:
    event = store.save_timeline_event(db, alex.id, {"title": "Campus visit", "start_date": "2025-04"})
    db.flush()
    with pytest.raises(ValueError):
        store.move_timeline_event(db, alex.id, event["id"], "2025-03\n")
