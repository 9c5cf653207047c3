import pytest

from logic import (
    add_major_to_target,
    add_school,
    add_target,
    compute_win_rate,
    format_major,
    gap_report,
    list_health,
    merge_enrichment,
    recommend_universities,
    regenerate_candidate_pool,
    remove_major_from_target,
    remove_school,
    round_half_up,
    schools_needing_enrichment,
    tier_counts,
    tier_stats,
    toggle_action_item,
    selected_actions,
    update_final_school,
)


def base_sim() -> dict:
    return {"gpa": 3.85, "toefl": 102, "sat": 1450}


def catalog() -> list[dict]:
    return [
        {"id": "u1", "name": "Carnegie Mellon University", "cn_name": "卡内基梅隆", "rank": 22, "region": "US",
         "tags": ["CS #1"], "avg_gpa": 3.92, "min_toefl": 102, "avg_sat": 1560},
        {"id": "u3", "name": "Univ. of Illinois Urbana-Champaign", "cn_name": "UIUC", "rank": 35, "region": "US",
         "tags": [], "avg_gpa": 3.65, "min_toefl": 90, "avg_sat": 1440},
        {"id": "u5", "name": "Imperial College London", "cn_name": "帝国理工", "rank": 6, "region": "UK",
         "tags": ["G5"], "avg_gpa": 3.95, "min_toefl": 100, "avg_sat": 0},
        {"id": "u6", "name": "University of Hong Kong", "cn_name": "香港大学", "rank": 26, "region": "HK",
         "tags": [], "avg_gpa": 3.85, "min_toefl": 95, "avg_sat": 1500},
        {"id": "u7", "name": "Cornell University", "cn_name": "康奈尔大学", "rank": 12, "region": "US",
         "tags": [], "avg_gpa": 3.95, "min_toefl": 105, "avg_sat": 1540},
        {"id": "u8", "name": "Penn State University", "cn_name": "宾州州立", "rank": 60, "region": "US",
         "tags": [], "avg_gpa": 3.5, "min_toefl": 80, "avg_sat": 1350},
    ]


def by_id(uni_id: str) -> dict:
    return next(u for u in catalog() if u["id"] == uni_id)


def balanced_list() -> list[dict]:
    picks = [("u1", "Reach"), ("u3", "Match"), ("u6", "Match"), ("u8", "Safety")]
    return [
        {"id": f"{uni_id}-cs", "university_id": uni_id, "university": by_id(uni_id), "tier": tier, "major": "CS",
         "requirements": "", "deadlines": "", "process": "", "portal_link": ""}
        for uni_id, tier in picks
    ]


def test_round_half_up_rounds_point_five_away_from_zero() -> None:
    assert round_half_up(92.5) == 93
    assert round_half_up(57.6) == 58
    assert round_half_up(0.25, 1) == 0.3


def test_win_rate_combines_gpa_toefl_and_sat() -> None:
    cmu = compute_win_rate(by_id("u1"), base_sim())
    assert cmu.score == pytest.approx(57.6)
    assert cmu.rate == "Low"
    assert cmu.reason == "Gaps in metrics, need soft background"

    penn = compute_win_rate(by_id("u8"), base_sim())
    assert penn.score == pytest.approx(92.0)
    assert penn.rate == "High"


def test_win_rate_ignores_sat_outside_sat_regions() -> None:
    imperial = compute_win_rate(by_id("u5"), base_sim())
    assert imperial.score == pytest.approx(68.0)
    assert imperial.rate == "Low"


def test_win_rate_flags_language_risk_below_toefl_floor() -> None:
    result = compute_win_rate(by_id("u1"), {"gpa": 4.2, "toefl": 95, "sat": 1600})
    assert result.rate == "Very Low"
    assert result.reason == "Language Risk: TOEFL below threshold (102)"

    zh = compute_win_rate(by_id("u1"), {"gpa": 4.2, "toefl": 95, "sat": 1600}, language="zh")
    assert zh.reason == "语言风险：TOEFL 低于门槛 (102)"


def test_win_rate_score_is_clamped() -> None:
    assert compute_win_rate(by_id("u7"), {"gpa": 2.0, "toefl": 80, "sat": 0}).score == 10
    assert compute_win_rate(by_id("u8"), {"gpa": 4.3, "toefl": 120, "sat": 1600}).score == 98


def test_candidate_pool_follows_target_regions() -> None:
    pool = regenerate_candidate_pool(catalog(), [{"id": 1, "region": "HK", "majors": []}])
    assert [u["id"] for u in pool] == ["u6"]
    assert len(regenerate_candidate_pool(catalog(), [])) == len(catalog())


def test_recommend_sorts_by_match_score_and_drops_weak_matches() -> None:
    pool = regenerate_candidate_pool(catalog(), [{"id": 1, "region": "US", "majors": []}])
    results = recommend_universities(catalog(), pool, {"gpa": 3.3, "toefl": 85, "sat": 1300})

    scores = [u["match_score"] for u in results]
    assert scores == sorted(scores, reverse=True)
    assert all(score > 30 for score in scores)
    assert results[0]["id"] == "u8"
    assert "u7" not in [u["id"] for u in results]


def test_search_tab_scans_whole_catalog_by_name() -> None:
    results = recommend_universities(catalog(), [], base_sim(), query="univ", tab="Search")
    assert {u["id"] for u in results} == {"u1", "u3", "u6", "u7", "u8"}

    chinese = recommend_universities(catalog(), [], base_sim(), query="香港", tab="Search")
    assert [u["id"] for u in chinese] == ["u6"]


def test_add_school_creates_one_entry_per_preferred_major() -> None:
    prefs = [{"id": 1, "region": "US", "majors": ["CS", "Math"]}]
    entries = add_school([], by_id("u1"), "Reach", prefs)

    assert [e["major"] for e in entries] == ["CS", "Math"]
    assert all(e["tier"] == "Reach" and e["university_id"] == "u1" for e in entries)
    assert entries[0]["id"] != entries[1]["id"]


def test_add_school_skips_existing_pairs_and_defaults_major() -> None:
    prefs = [{"id": 1, "region": "US", "majors": ["CS", "Math"]}]
    existing = add_school([], by_id("u1"), "Reach", [{"id": 1, "region": "US", "majors": ["CS"]}])

    again = add_school(existing, by_id("u1"), "Match", prefs)
    assert [e["major"] for e in again] == ["Math"]

    undecided = add_school([], by_id("u5"), "Safety", prefs)
    assert [e["major"] for e in undecided] == ["Undecided"]

    with pytest.raises(ValueError):
        add_school([], by_id("u1"), "Dream", prefs)


def test_list_health_statuses() -> None:
    selected = balanced_list()
    assert list_health(selected) == {"status": "Healthy", "text": "Balanced"}

    no_safety = [s for s in selected if s["tier"] != "Safety"]
    assert list_health(no_safety)["text"] == "No Safety"
    assert list_health(no_safety, language="zh")["text"] == "缺少保底"

    no_match = [s for s in selected if s["tier"] != "Match"]
    assert list_health(no_match) == {"status": "Unbalanced", "text": "No Match"}

    no_reach = [s for s in selected if s["tier"] != "Reach"]
    assert list_health(no_reach)["status"] == "Building"
    assert tier_counts(selected) == {"Reach": 1, "Match": 2, "Safety": 1}


def test_update_final_school_validates_field_and_tier() -> None:
    selected = balanced_list()
    updated = update_final_school(selected, "u1-cs", "deadlines", "ED: Nov 1")
    assert updated[0]["deadlines"] == "ED: Nov 1"
    assert selected[0]["deadlines"] == ""

    with pytest.raises(ValueError):
        update_final_school(selected, "u1-cs", "university_id", "u2")
    with pytest.raises(ValueError):
        update_final_school(selected, "u1-cs", "tier", "Dream")


def test_merge_enrichment_respects_overwrite_flag() -> None:
    school = {**balanced_list()[0], "requirements": "Kept"}
    data = {"requirements": "New", "deadlines": "Jan 1", "process": "Common App", "portalLink": "https://apply"}

    filled = merge_enrichment(school, data, overwrite=False)
    assert filled["requirements"] == "Kept"
    assert filled["deadlines"] == "Jan 1"
    assert filled["portal_link"] == "https://apply"

    replaced = merge_enrichment(school, data, overwrite=True)
    assert replaced["requirements"] == "New"
    assert merge_enrichment(school, None) is school


def test_remove_school_drops_only_that_entry() -> None:
    selected = balanced_list()
    remaining = remove_school(selected, "u1-cs")

    assert [s["id"] for s in remaining] == ["u3-cs", "u6-cs", "u8-cs"]
    assert len(selected) == 4
    assert remove_school(remaining, "missing") == remaining


def test_schools_needing_enrichment() -> None:
    selected = balanced_list()
    selected[0] = {**selected[0], "requirements": "x", "deadlines": "y"}
    assert [s["id"] for s in schools_needing_enrichment(selected)] == ["u3-cs", "u6-cs", "u8-cs"]


def test_tier_stats_averages_each_tier() -> None:
    stats = tier_stats(balanced_list())

    assert stats["Reach"] == {"gpa": 3.92, "toefl": 102, "sat": 1560, "count": 1}
    assert stats["Match"]["gpa"] == pytest.approx(3.75)
    assert stats["Match"]["toefl"] == 93
    assert stats["Match"]["sat"] == 1470
    assert stats["Safety"]["count"] == 1

    empty = tier_stats([])
    assert empty["Reach"] == {"gpa": 0, "toefl": 0, "sat": 0, "count": 0}


def test_gap_report_compares_against_reach_average() -> None:
    gpa, toefl, sat = gap_report(base_sim(), tier_stats(balanced_list()))

    assert gpa["status"] == "Gap"
    assert gpa["gap"] == pytest.approx(-0.1)
    assert gpa["current_pct"] == pytest.approx(70.83, abs=0.01)
    assert toefl["status"] == "Met"
    assert toefl["gap"] is None
    assert sat["gap"] == pytest.approx(-110.0)


def test_gap_report_without_reach_schools_has_no_status() -> None:
    report = gap_report({"gpa": 3.5, "toefl": 100, "sat": 0}, tier_stats([]))
    assert all(metric["status"] is None for metric in report)
    assert report[2]["current"] == 1200


def test_target_preferences_are_capped_and_deduplicated() -> None:
    prefs = []
    for _ in range(4):
        prefs = add_target(prefs)
    assert [p["id"] for p in prefs] == [1, 2, 3]
    assert prefs[0]["region"] == "US"

    prefs = add_major_to_target(prefs, 1, "  Economics ")
    prefs = add_major_to_target(prefs, 1, "Economics")
    prefs = add_major_to_target(prefs, 1, "   ")
    assert prefs[0]["majors"] == ["Economics"]

    prefs = remove_major_from_target(prefs, 1, "Economics")
    assert prefs[0]["majors"] == []


def test_format_major_picks_language_half() -> None:
    assert format_major("Computer Science (计算机科学)", "en") == "Computer Science"
    assert format_major("Computer Science (计算机科学)", "zh") == "计算机科学"
    assert format_major("Robotics", "zh") == "Robotics"


def test_action_item_selection_toggles() -> None:
    items = [{"id": "a1", "is_selected": False}, {"id": "a2", "is_selected": False}]
    items = toggle_action_item(items, "a2")
    assert [i["id"] for i in selected_actions(items)] == ["a2"]
    assert selected_actions(toggle_action_item(items, "a2")) == []
