from types import SimpleNamespace

import pytest

import ai


class FakeModel:
    """Stands in for ``genai.GenerativeModel``; replies with a canned ``text``."""

    calls: list = []
    reply = "{}"
    error = None

    def __init__(self, name, generation_config=None):
        self.name = name
        self.generation_config = generation_config

    def generate_content(self, prompt):
        FakeModel.calls.append((self.name, prompt))
        if FakeModel.error:
            raise FakeModel.error
        return SimpleNamespace(text=FakeModel.reply)


@pytest.fixture
def service(monkeypatch):
    FakeModel.calls = []
    FakeModel.reply = "{}"
    FakeModel.error = None
    monkeypatch.setattr(ai.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(ai.genai, "GenerativeModel", FakeModel)
    svc = ai.AIService("test-key", "flash-model", "pro-model")
    monkeypatch.setattr(ai, "get_ai_service", lambda: svc)
    return svc


def test_strip_code_fences() -> None:
    assert ai.strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert ai.strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_generate_json_parses_fenced_reply(service) -> None:
    FakeModel.reply = '```json\n{"requirements": "GPA 3.8+"}\n```'
    assert service.generate_json("prompt") == {"requirements": "GPA 3.8+"}
    assert FakeModel.calls[0][0] == "flash-model"


def test_generate_json_returns_none_on_failure(service) -> None:
    FakeModel.reply = "not json"
    assert service.generate_json("prompt") is None

    FakeModel.error = RuntimeError("quota exceeded")
    assert service.generate_json("prompt") is None


def test_generate_content_routes_complex_prompts_to_pro_model(service) -> None:
    FakeModel.reply = "plain answer"
    assert service.generate_content("hi", is_complex=True) == "plain answer"
    assert FakeModel.calls[-1][0] == "pro-model"

    FakeModel.error = RuntimeError("boom")
    with pytest.raises(ai.AIServiceError):
        service.generate_content("hi")


def test_service_without_key_is_unavailable(monkeypatch) -> None:
    monkeypatch.setattr(ai.genai, "GenerativeModel", FakeModel)
    svc = ai.AIService(None, "flash-model", "pro-model")
    assert svc.available is False
    assert svc.generate_json("prompt") is None
    with pytest.raises(ai.AIServiceError):
        svc.generate_content("prompt")


def test_normalize_action_items_filters_and_defaults() -> None:
    items = ai.normalize_action_items(
        [
            {"category": "Test", "role": "Student", "title": "Take SAT", "deadline": "2025-03-08", "type": "Milestone",
             "priority": "High"},
            {"category": "Academics", "role": "Counselor", "title": "Review grades", "deadline": None, "type": "Routine",
             "priority": "Urgent"},
            {"category": "Test", "role": "Parent", "title": "Pay fees", "type": "Milestone"},
            {"category": "Travel", "role": "Student", "title": "Visit", "type": "Milestone"},
            "garbage",
        ]
    )

    assert [i["title"] for i in items] == ["Take SAT", "Review grades"]
    assert items[0]["id"].startswith("action-")
    assert items[0]["id"].endswith("-0")
    assert items[1]["deadline"] == ""
    assert items[1]["priority"] == "Medium"
    assert all(i["is_selected"] is False for i in items)
    assert ai.normalize_action_items({"not": "a list"}) == []


def test_analyze_career_requires_family_inputs(service) -> None:
    with pytest.raises(ValueError):
        ai.analyze_career({"expectations": "Top 30"}, {})

    FakeModel.reply = (
        '{"synthesis": "STEM fit", "majors": [{"name": "Computer Science", "match": 92, "reason": "Robotics"}, {"match": 5}],'
        ' "careers": [{"title": "ML Engineer", "desc": "Builds models"}]}'
    )
    result = ai.analyze_career({"expectations": "Top 30", "resources": "500k"}, {"interests": "Robots"})
    assert result["synthesis"] == "STEM fit"
    assert [m["name"] for m in result["majors"]] == ["Computer Science"]
    assert "Top 30" in FakeModel.calls[-1][1]


def test_generate_action_plan_normalizes_reply(service) -> None:
    FakeModel.reply = '[{"category": "Application", "role": "Counselor", "title": "Draft list", "type": "Milestone"}]'
    items = ai.generate_action_plan(
        {"name": "Alex"},
        {"gpa": 3.85, "toefl": 102},
        {"gpa": 3.92, "toefl": 102},
        None,
        "CMU [Reach]",
        language="en",
    )
    assert [i["title"] for i in items] == ["Draft list"]
    assert "CMU [Reach]" in FakeModel.calls[-1][1]


def test_scan_and_brainstorm_normalize_replies(service) -> None:
    assert ai.scan_essay("   ") == []
    assert FakeModel.calls == []

    FakeModel.reply = '[{"originalText": "very good", "suggestedText": "superb", "type": "Delivery"}]'
    assert ai.scan_essay("It was very good.")[0]["suggested_text"] == "superb"

    FakeModel.reply = '[{"title": "Night Shift", "hook": "3am", "coreValues": ["Care"], "plotSummary": "Hospital"}]'
    assert ai.brainstorm_ideas("Why us?", "volunteering")[0]["title"] == "Night Shift"


def test_fetch_school_details_rejects_non_object_replies(service) -> None:
    FakeModel.reply = '["not", "an", "object"]'
    assert ai.fetch_school_details("CMU", "CS") is None


def test_organize_meeting_notes_returns_trimmed_minutes(service) -> None:
    with pytest.raises(ValueError):
        ai.organize_meeting_notes("  ")
    assert FakeModel.calls == []

    FakeModel.reply = "\n### Summary\n- Mom worried about SAT\n\n"
    assert ai.organize_meeting_notes("mom worried sat, retake dec", language="zh") == "### Summary\n- Mom worried about SAT"
    name, prompt = FakeModel.calls[-1]
    assert name == "flash-model"
    assert "mom worried sat, retake dec" in prompt
    assert "Chinese" in prompt

    FakeModel.error = RuntimeError("quota exceeded")
    with pytest.raises(ai.AIServiceError):
        ai.organize_meeting_notes("call notes")


def test_polish_brag_sheet_keeps_recommender_context(service) -> None:
    with pytest.raises(ValueError):
        ai.polish_brag_sheet("", "Physics Teacher")

    FakeModel.reply = "  Led the robotics team to a regional title.  "
    polished = ai.polish_brag_sheet("robotics captain, won regionals", "Physics Teacher")
    assert polished == "Led the robotics team to a regional title."
    assert "Physics Teacher" in FakeModel.calls[-1][1]
    assert "robotics captain, won regionals" in FakeModel.calls[-1][1]


def test_diagnose_risks_uses_pro_model_and_fills_every_dimension(service) -> None:
    FakeModel.reply = (
        '[{"id": "academic", "label": "Academics", "level": "high", "statusText": "GPA dropping",'
        ' "evidence": "B in Calc", "action": "Tutor", "trend": "up"},'
        ' {"id": "comm", "level": "severe", "trend": "sideways"}, {"id": "budget", "level": "low"}]'
    )
    dimensions = ai.diagnose_risks({"name": "Alex Chen", "last_contact": "2024-10-01"})

    assert FakeModel.calls[-1][0] == "pro-model"
    assert "Alex Chen" in FakeModel.calls[-1][1]
    assert [d["id"] for d in dimensions] == ["academic", "target", "task", "material", "comm"]
    assert dimensions[0]["level"] == "high"
    assert dimensions[0]["status_text"] == "GPA dropping"
    assert dimensions[0]["trend"] == "up"
    assert dimensions[1]["level"] == "unknown"
    assert dimensions[1]["status_text"] == "Info Missing"
    assert dimensions[4]["level"] == "unknown"
    assert dimensions[4]["trend"] == "stable"


def test_normalize_risk_dimensions_rejects_unusable_replies() -> None:
    assert ai.normalize_risk_dimensions(None) == []
    assert ai.normalize_risk_dimensions({"academic": "high"}) == []
    assert ai.normalize_risk_dimensions([{"id": "budget", "level": "high"}]) == []

    zh = ai.normalize_risk_dimensions([{"id": "task", "level": "medium"}], language="zh")
    assert zh[2]["level"] == "medium"
    assert zh[0]["status_text"] == "信息不足"
    assert zh[0]["label"] == ai.RISK_LABELS["academic"]["zh"]


def test_generate_json_routes_complex_prompts_to_pro_model(service) -> None:
    FakeModel.reply = "[]"
    assert service.generate_json("prompt", is_complex=True) == []
    assert FakeModel.calls[-1][0] == "pro-model"
