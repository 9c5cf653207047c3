from datetime import datetime, timezone

import pytest

from essays import (
    add_context_keyword,
    apply_suggestion,
    count_words,
    create_snapshot,
    delete_idea,
    group_versions_by_day,
    next_version_number,
    normalize_idea_cards,
    normalize_suggestions,
    restore_version,
    toggle_idea_favorite,
)

NOW = datetime(2024, 10, 12, 9, 30, tzinfo=timezone.utc)


def base_essay() -> dict:
    return {"id": "2025001-e1", "current_content": "Robots taught me patience and teamwork."}


def base_versions() -> list[dict]:
    return [
        {"id": "v1", "version_number": "V1.0", "content": "First draft.", "created_at": datetime(2024, 10, 1, 8, 0)},
        {"id": "v2", "version_number": "V1.2", "content": "Third draft.", "created_at": datetime(2024, 10, 3, 8, 0)},
        {"id": "v3", "version_number": "V1.1", "content": "Second draft.", "created_at": datetime(2024, 10, 1, 18, 0)},
    ]


def test_next_version_number_increments_the_highest_version() -> None:
    assert next_version_number([]) == "V1.0"
    assert next_version_number(base_versions()) == "V1.3"
    assert next_version_number([{"version_number": "V1.9"}]) == "V2.0"


def test_create_snapshot_copies_current_draft() -> None:
    snapshot = create_snapshot(base_essay(), base_versions(), "Teacher_Save", note="Tightened intro", now=NOW)

    assert snapshot["essay_id"] == "2025001-e1"
    assert snapshot["version_number"] == "V1.3"
    assert snapshot["content"] == base_essay()["current_content"]
    assert snapshot["word_count"] == 6
    assert snapshot["tags"] == ["Teacher Snapshot"]
    assert snapshot["created_at"] == NOW
    assert snapshot["id"].startswith("ver-")

    with pytest.raises(ValueError):
        create_snapshot(base_essay(), [], "Copy_Paste")


def test_restore_backs_up_current_content_first() -> None:
    backup, content = restore_version(base_essay(), base_versions(), "v1", now=NOW)

    assert content == "First draft."
    assert backup["source"] == "System_Restore"
    assert backup["content"] == base_essay()["current_content"]
    assert backup["note"] == "Auto-backup before restoring V1.0"
    assert backup["version_number"] == "V1.3"

    with pytest.raises(ValueError):
        restore_version(base_essay(), base_versions(), "missing")


def test_apply_suggestion_replaces_first_occurrence_only() -> None:
    content = "I like robots. I like code."
    updated, applied = apply_suggestion(content, {"original_text": "I like", "suggested_text": "I love"})
    assert applied is True
    assert updated == "I love robots. I like code."

    unchanged, applied = apply_suggestion(content, {"original_text": "not here", "suggested_text": "x"})
    assert applied is False
    assert unchanged == content


def test_idea_card_helpers() -> None:
    cards = normalize_idea_cards(
        [
            {"title": "The Broken Servo", "hook": "It failed at 2am.", "coreValues": ["Grit"], "plotSummary": "Rebuild."},
            {"hook": "No title"},
            "garbage",
        ]
    )
    assert len(cards) == 1
    assert cards[0]["core_values"] == ["Grit"]
    assert cards[0]["plot_summary"] == "Rebuild."
    assert cards[0]["is_favorite"] is False

    card_id = cards[0]["id"]
    assert toggle_idea_favorite(cards, card_id)[0]["is_favorite"] is True
    assert delete_idea(cards, card_id) == []


def test_add_context_keyword_appends_on_new_line() -> None:
    assert add_context_keyword("", "Robotics") == "Robotics"
    assert add_context_keyword("Robotics", "Teamwork") == "Robotics\nTeamwork"


def test_normalize_suggestions_accepts_camel_case() -> None:
    suggestions = normalize_suggestions(
        [
            {"originalText": "very good", "suggestedText": "excellent", "type": "Clarity", "shortReason": "Concise"},
            {"originalText": "alot", "suggestedText": "a lot", "type": "Spelling"},
            {"suggestedText": "orphan"},
        ]
    )
    assert [s["original_text"] for s in suggestions] == ["very good", "alot"]
    assert suggestions[0]["short_reason"] == "Concise"
    assert suggestions[1]["type"] == "Clarity"


def test_group_versions_by_day_newest_first() -> None:
    grouped = group_versions_by_day(base_versions())
    assert list(grouped) == ["2024-10-03", "2024-10-01"]
    assert [v["id"] for v in grouped["2024-10-01"]] == ["v3", "v1"]
    assert count_words("  one two   three ") == 3
