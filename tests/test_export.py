import json

from export import _safe_text, build_json_summary, build_pdf_report, build_planning_payload
from logic import gap_report, list_health, tier_stats


def base_payload() -> dict:
    student = {
        "name": "Alex Chen",
        "student_code": "2025001",
        "grade": "G11",
        "direction": "US",
        "phase": "Phase 2 Tutoring",
        "target_summary": "Top 30 CS <STEM>",
    }
    sim = {"gpa": 3.85, "toefl": 102, "sat": 1450}
    selected = [
        {"tier": "Reach", "major": "CS", "deadlines": "ED: Nov 1",
         "university": {"id": "u1", "name": "Carnegie Mellon University", "region": "US", "avg_gpa": 3.92, "min_toefl": 102, "avg_sat": 1560}},
        {"tier": "Safety", "major": "CS", "deadlines": "",
         "university": {"id": "u8", "name": "Penn State University", "region": "US", "avg_gpa": 3.5, "min_toefl": 80, "avg_sat": 1350}},
    ]
    events = [
        {"title": "ED Application", "start_date": "2024-10", "end_date": "2024-11", "category": "Application", "status": "Pending", "assignee": "Student"},
        {"title": "Physics prep", "start_date": "", "end_date": None, "category": "Activity", "status": "Pending", "assignee": "Student"},
        {"title": "Finalize list", "start_date": "2024-09", "end_date": None, "category": "Application", "status": "Done", "assignee": "Counselor"},
    ]
    actions = [{"title": "Take SAT", "role": "Student", "deadline": "2025-03-08", "type": "Milestone"}]
    return build_planning_payload(
        student, sim, selected, list_health(selected), gap_report(sim, tier_stats(selected)), events, actions
    )


def test_payload_orders_timeline_and_flattens_schools() -> None:
    payload = base_payload()

    assert [e["title"] for e in payload["timeline"]] == ["Finalize list", "ED Application", "Physics prep"]
    assert payload["timeline"][2]["start_date"] is None
    assert payload["schools"][0]["university"] == "Carnegie Mellon University"
    assert payload["list_health"]["text"] == "No Match"
    assert payload["selected_actions"][0]["role"] == "Student"


def test_pdf_report_renders_in_both_languages() -> None:
    pdf = build_pdf_report(base_payload())
    assert pdf.startswith(b"%PDF")

    zh_payload = {**base_payload(), "student": {**base_payload()["student"], "name": "陈亚历"}}
    assert build_pdf_report(zh_payload, language="zh").startswith(b"%PDF")


def test_pdf_report_handles_empty_plan() -> None:
    payload = {"student": {"name": "New Student"}, "schools": [], "timeline": [], "gap_analysis": []}
    assert build_pdf_report(payload).startswith(b"%PDF")


def test_json_summary_is_valid_json() -> None:
    summary = json.loads(build_json_summary(base_payload()).decode("utf-8"))
    assert summary["student"]["student_code"] == "2025001"
    assert summary["simulator"]["sat"] == 1450
    assert len(summary["gap_analysis"]) == 3


def test_safe_text_escapes_markup_in_scalars_and_lists() -> None:
    assert _safe_text("AP <Physics> & Calc") == "AP &lt;Physics&gt; &amp; Calc"
    assert _safe_text(["R&D", "<STEM>"]) == "R&amp;D, &lt;STEM&gt;"
    assert _safe_text([]) == "-"
    assert _safe_text(None) == "-"

    payload = {**base_payload(), "student": {**base_payload()["student"], "direction": ["US & UK", "<HK>"]}}
    assert build_pdf_report(payload).startswith(b"%PDF")
