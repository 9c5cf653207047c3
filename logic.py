from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any


MAX_TARGETS = 3
DEFAULT_REGION = "US"
SAT_REGIONS = {"US", "HK", "SG"}
TIERS = ("Reach", "Match", "Safety")
ENRICHMENT_FIELDS = ("requirements", "deadlines", "process", "portal_link")
EDITABLE_SCHOOL_FIELDS = {"tier", "major", "requirements", "admission_advice", "deadlines", "process", "portal_link"}

DEFAULT_SIM = {"gpa": 3.85, "toefl": 102, "sat": 1450}

COMMON_MAJORS = [
    "Computer Science (计算机科学)",
    "Mathematics (数学)",
    "Economics (经济学)",
    "Psychology (心理学)",
    "Business Administration (工商管理)",
    "Electrical Engineering (电子工程)",
    "Biology (生物学)",
    "Communication (传媒)",
]

WIN_RATE_REASONS = {
    "High": {"en": "Strong advantage in all metrics", "zh": "各项指标均具备明显优势"},
    "Medium": {"en": "GPA matched, test scores in range", "zh": "GPA 匹配，标化在区间内"},
    "Low": {"en": "Gaps in metrics, need soft background", "zh": "部分指标有差距，需软背景弥补"},
    "Very Low": {"en": "Significant gap in hardware", "zh": "硬件差距较大"},
}

LIST_HEALTH_TEXT = {
    "Balanced": {"en": "Balanced", "zh": "结构合理"},
    "No Safety": {"en": "No Safety", "zh": "缺少保底"},
    "No Match": {"en": "No Match", "zh": "缺少匹配"},
    "Building": {"en": "Building...", "zh": "构建中..."},
}

# (label, lower bound, upper bound) for the gap rulers
GAP_RULERS = {
    "gpa": ("GPA (Weighted)", 3.0, 4.2),
    "toefl": ("TOEFL / Language", 80, 120),
    "sat": ("SAT / Standardized", 1200, 1600),
}


@dataclass
class WinRate:
    score: float
    rate: str
    reason: str


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _lang(language: str | None) -> str:
    return "zh" if (language or "en").lower().startswith("zh") else "en"


def university_to_dict(uni: Any) -> dict[str, Any]:
    return {
        "id": _field(uni, "id"),
        "name": _field(uni, "name", ""),
        "cn_name": _field(uni, "cn_name", ""),
        "logo": _field(uni, "logo"),
        "rank": int(_field(uni, "rank", 0) or 0),
        "region": _field(uni, "region", ""),
        "tags": list(_field(uni, "tags", []) or []),
        "avg_gpa": _to_float(_field(uni, "avg_gpa")),
        "min_toefl": int(_field(uni, "min_toefl", 0) or 0),
        "avg_sat": int(_field(uni, "avg_sat", 0) or 0),
    }


# --- Step 2: target preferences ---


def add_target(prefs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if len(prefs) >= MAX_TARGETS:
        return list(prefs)
    next_id = max((int(p["id"]) for p in prefs), default=0) + 1
    return list(prefs) + [{"id": next_id, "region": DEFAULT_REGION, "majors": []}]


def remove_target(prefs: list[dict[str, Any]], target_id: int) -> list[dict[str, Any]]:
    return [p for p in prefs if p["id"] != target_id]


def update_target_region(prefs: list[dict[str, Any]], target_id: int, region: str) -> list[dict[str, Any]]:
    return [{**p, "region": region} if p["id"] == target_id else p for p in prefs]


def add_major_to_target(prefs: list[dict[str, Any]], target_id: int, major: str) -> list[dict[str, Any]]:
    value = (major or "").strip()
    if not value:
        return list(prefs)
    updated = []
    for pref in prefs:
        if pref["id"] == target_id and value not in pref["majors"]:
            pref = {**pref, "majors": pref["majors"] + [value]}
        updated.append(pref)
    return updated


def remove_major_from_target(prefs: list[dict[str, Any]], target_id: int, major: str) -> list[dict[str, Any]]:
    return [
        {**p, "majors": [m for m in p["majors"] if m != major]} if p["id"] == target_id else p
        for p in prefs
    ]


def format_major(label: str, language: str = "en") -> str:
    parts = label.split(" (")
    if _lang(language) == "en":
        return parts[0]
    if len(parts) > 1:
        return parts[1].replace(")", "")
    return label


# --- Step 3: school matching ---


def compute_win_rate(uni: Any, sim: dict[str, Any], language: str = "en") -> WinRate:
    lang = _lang(language)
    avg_gpa = _to_float(_field(uni, "avg_gpa"))
    min_toefl = int(_field(uni, "min_toefl", 0) or 0)
    avg_sat = int(_field(uni, "avg_sat", 0) or 0)
    gpa = _to_float(sim.get("gpa"))
    toefl = _to_float(sim.get("toefl"))
    sat = _to_float(sim.get("sat"))

    score = 70.0 + (gpa - avg_gpa) * 20

    if toefl < min_toefl:
        score -= 30
    elif toefl >= min_toefl + 5:
        score += 5

    if _field(uni, "region") in SAT_REGIONS and sat > 0:
        score += (sat - avg_sat) / 10

    score = min(max(score, 10.0), 98.0)

    if score >= 90:
        rate = "High"
    elif score >= 75:
        rate = "Medium"
    elif score >= 50:
        rate = "Low"
    else:
        rate = "Very Low"
    reason = WIN_RATE_REASONS[rate][lang]

    if toefl < min_toefl:
        rate = "Very Low"
        if lang == "en":
            reason = f"Language Risk: TOEFL below threshold ({min_toefl})"
        else:
            reason = f"语言风险：TOEFL 低于门槛 ({min_toefl})"

    return WinRate(score=score, rate=rate, reason=reason)


def score_university(uni: Any, sim: dict[str, Any], language: str = "en") -> dict[str, Any]:
    detail = compute_win_rate(uni, sim, language)
    result = university_to_dict(uni)
    result["match_score"] = int(round_half_up(detail.score))
    result["win_rate"] = detail.rate
    result["reason"] = detail.reason
    return result


def regenerate_candidate_pool(catalog: list[Any], prefs: list[dict[str, Any]]) -> list[Any]:
    regions = [p.get("region") for p in prefs]
    return [uni for uni in catalog if not regions or _field(uni, "region") in regions]


def recommend_universities(
    catalog: list[Any],
    pool: list[Any],
    sim: dict[str, Any],
    query: str = "",
    tab: str = "Recommend",
    language: str = "en",
) -> list[dict[str, Any]]:
    source = catalog if tab == "Search" else pool
    scored = [score_university(uni, sim, language) for uni in source]

    query = query or ""
    if query:
        needle = query.lower()
        scored = [u for u in scored if needle in u["name"].lower() or query in (u["cn_name"] or "")]
    elif tab == "Recommend":
        scored = [u for u in scored if u["match_score"] > 30]

    scored.sort(key=lambda item: item["match_score"], reverse=True)
    return scored


def add_school(
    selected: list[dict[str, Any]],
    uni: Any,
    tier: str,
    prefs: list[dict[str, Any]],
    specific_major: str | None = None,
) -> list[dict[str, Any]]:
    if tier not in TIERS:
        raise ValueError(f"Unknown tier: {tier}")

    if specific_major:
        majors = [specific_major]
    else:
        region = _field(uni, "region")
        preference = next((p for p in prefs if p.get("region") == region), None)
        majors = list(preference["majors"]) if preference and preference.get("majors") else ["Undecided"]

    uni_id = _field(uni, "id")
    taken = {(_school_uni_id(s), _field(s, "major")) for s in selected}
    entries: list[dict[str, Any]] = []
    for major in majors:
        if (uni_id, major) in taken:
            continue
        taken.add((uni_id, major))
        entries.append(
            {
                "id": f"{uni_id}-{major or 'gen'}-{uuid.uuid4().hex[:8]}",
                "university_id": uni_id,
                "university": university_to_dict(uni),
                "tier": tier,
                "major": major,
                "requirements": "",
                "admission_advice": "",
                "deadlines": "",
                "process": "",
                "portal_link": "",
            }
        )
    return entries


def _school_uni_id(school: Any) -> Any:
    uni_id = _field(school, "university_id")
    if uni_id is None:
        uni_id = _field(_field(school, "university", {}), "id")
    return uni_id


def remove_school(selected: list[dict[str, Any]], school_id: str) -> list[dict[str, Any]]:
    return [s for s in selected if s["id"] != school_id]


def update_final_school(selected: list[dict[str, Any]], school_id: str, field: str, value: str) -> list[dict[str, Any]]:
    if field not in EDITABLE_SCHOOL_FIELDS:
        raise ValueError(f"Field {field} cannot be edited")
    if field == "tier" and value not in TIERS:
        raise ValueError(f"Unknown tier: {value}")
    return [{**s, field: value} if s["id"] == school_id else s for s in selected]


def tier_counts(selected: list[Any]) -> dict[str, int]:
    counts = {tier: 0 for tier in TIERS}
    for school in selected:
        tier = _field(school, "tier")
        if tier in counts:
            counts[tier] += 1
    return counts


def list_health(selected: list[Any], language: str = "en") -> dict[str, str]:
    counts = tier_counts(selected)
    reach, match, safety = counts["Reach"], counts["Match"], counts["Safety"]

    if reach > 0 and match >= 2 and safety >= 1:
        status, key = "Healthy", "Balanced"
    elif safety == 0:
        status, key = "Unbalanced", "No Safety"
    elif match == 0:
        status, key = "Unbalanced", "No Match"
    else:
        status, key = "Building", "Building"
    return {"status": status, "text": LIST_HEALTH_TEXT[key][_lang(language)]}


def group_by_tier(selected: list[Any]) -> dict[str, list[Any]]:
    grouped: dict[str, list[Any]] = {tier: [] for tier in TIERS}
    for school in selected:
        tier = _field(school, "tier")
        if tier in grouped:
            grouped[tier].append(school)
    return grouped


# --- Step 4: final list enrichment ---


def schools_needing_enrichment(selected: list[Any]) -> list[Any]:
    return [s for s in selected if not _field(s, "requirements") or not _field(s, "deadlines")]


def merge_enrichment(school: dict[str, Any], data: dict[str, Any] | None, overwrite: bool = True) -> dict[str, Any]:
    """Merge AI-fetched admission details into a selected school.

    Single-school enrichment overwrites every field; batch enrichment passes
    ``overwrite=False`` and only fills fields that are still empty.
    """
    if not data:
        return school
    merged = dict(school)
    for name in ENRICHMENT_FIELDS:
        incoming = data.get(name)
        if incoming is None and name == "portal_link":
            incoming = data.get("portalLink")
        if overwrite:
            merged[name] = incoming or ""
        elif not merged.get(name):
            merged[name] = incoming or ""
    return merged


# --- Step 5: gap analysis ---


def tier_stats(selected: list[Any]) -> dict[str, dict[str, Any]]:
    grouped = group_by_tier(selected)
    stats: dict[str, dict[str, Any]] = {}
    for tier, schools in grouped.items():
        if not schools:
            stats[tier] = {"gpa": 0, "toefl": 0, "sat": 0, "count": 0}
            continue
        unis = [_field(s, "university", {}) for s in schools]
        count = len(unis)
        stats[tier] = {
            "gpa": round_half_up(sum(_to_float(_field(u, "avg_gpa")) for u in unis) / count, 2),
            "toefl": int(round_half_up(sum(int(_field(u, "min_toefl", 0) or 0) for u in unis) / count)),
            "sat": int(round_half_up(sum(int(_field(u, "avg_sat", 0) or 0) for u in unis) / count)),
            "count": count,
        }
    return stats


def metric_gap(
    label: str,
    lo: float,
    hi: float,
    current: float,
    reach: float,
    match: float,
    safety: float,
) -> dict[str, Any]:
    span = hi - lo

    def position(value: float) -> float:
        return min(max((value - lo) / span * 100, 0.0), 100.0)

    status = None
    gap = None
    if reach > 0:
        if current >= reach:
            status = "Met"
        else:
            status = "Gap"
            gap = -round_half_up(reach - current, 1)

    return {
        "label": label,
        "min": lo,
        "max": hi,
        "current": current,
        "current_pct": position(current),
        "reach_pct": position(reach),
        "match_pct": position(match),
        "safety_pct": position(safety),
        "status": status,
        "gap": gap,
    }


def gap_report(sim: dict[str, Any], stats: dict[str, dict[str, Any]]) -> list[dict[str, Any]]:
    report = []
    for key, (label, lo, hi) in GAP_RULERS.items():
        current = _to_float(sim.get(key))
        if key == "sat" and not current:
            current = 1200.0
        report.append(
            metric_gap(
                label,
                lo,
                hi,
                current,
                stats["Reach"][key],
                stats["Match"][key],
                stats["Safety"][key],
            )
        )
    return report


def toggle_action_item(items: list[dict[str, Any]], item_id: str) -> list[dict[str, Any]]:
    return [{**i, "is_selected": not i.get("is_selected", False)} if i["id"] == item_id else i for i in items]


def selected_actions(items: list[Any]) -> list[Any]:
    return [i for i in items if _field(i, "is_selected", False)]
