from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import date
from functools import lru_cache
from typing import Any

import google.generativeai as genai

from config import get_settings
from essays import normalize_idea_cards, normalize_suggestions
from roster import RISK_CATEGORIES, RISK_LABELS

logger = logging.getLogger("counseldesk.ai")

UNAVAILABLE_MESSAGE = "AI service is temporarily unavailable, please try again later."
FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")

ACTION_CATEGORIES = {"Application", "Test", "Academics", "Extracurriculars"}
ACTION_ROLES = {"Student", "Counselor"}
ACTION_TYPES = {"Milestone", "Routine"}
ACTION_PRIORITIES = {"High", "Medium", "Low"}


class AIServiceError(RuntimeError):
    pass


def strip_code_fences(text: str) -> str:
    return FENCE_RE.sub("", text.strip())


def _output_language(language: str) -> str:
    return "Simplified Chinese" if (language or "").startswith("zh") else "English"


class AIService:
    """Thin wrapper over the Gemini SDK.

    ``flash`` serves routine prompts; ``pro`` is used when ``is_complex`` is set.
    """

    def __init__(self, api_key: str | None, flash_model: str, pro_model: str) -> None:
        self.api_key = api_key
        self.flash_model = flash_model
        self.pro_model = pro_model
        if api_key:
            genai.configure(api_key=api_key)

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _model(self, name: str, json_mode: bool = False, schema: dict[str, Any] | None = None):
        config = None
        if json_mode:
            config = genai.types.GenerationConfig(
                response_mime_type="application/json",
                response_schema=schema,
            )
        return genai.GenerativeModel(name, generation_config=config)

    def generate_content(self, prompt: str, is_complex: bool = False) -> str:
        name = self.pro_model if is_complex else self.flash_model
        try:
            if not self.available:
                raise AIServiceError("GEMINI_API_KEY is not configured")
            response = self._model(name).generate_content(prompt)
            return response.text
        except Exception as exc:
            logger.exception("Text generation failed (model=%s)", name)
            raise AIServiceError(UNAVAILABLE_MESSAGE) from exc

    def generate_json(self, prompt: str, schema: dict[str, Any] | None = None, is_complex: bool = False) -> Any | None:
        name = self.pro_model if is_complex else self.flash_model
        try:
            if not self.available:
                raise AIServiceError("GEMINI_API_KEY is not configured")
            response = self._model(name, json_mode=True, schema=schema).generate_content(prompt)
            return json.loads(strip_code_fences(response.text or "{}"))
        except Exception:
            logger.exception("JSON generation failed (model=%s)", name)
            return None


@lru_cache(maxsize=1)
def get_ai_service() -> AIService:
    settings = get_settings()
    return AIService(settings.gemini_api_key, settings.gemini_model, settings.gemini_pro_model)


# --- Prompt templates ---


def career_analysis_prompt(family: dict[str, Any], student: dict[str, Any], language: str = "en") -> str:
    name_format = "English Name" if _output_language(language) == "English" else "English Name (Chinese Name)"
    return f"""
You are an expert educational consultant.
Analyze:
- Family: {family.get('expectations', '')}, {family.get('resources', '')}
- Student: {student.get('interests', '')}, {student.get('abilities', '')}, {student.get('intentions', '')}

Recommend 3 majors and 2 careers.
Output {_output_language(language)}.
Format Majors/Careers as "{name_format}".
Return JSON: {{"synthesis": "...", "majors": [{{"name": "...", "match": 0-100, "reason": "..."}}], "careers": [{{"title": "...", "desc": "..."}}]}}
"""


def school_details_prompt(school_name: str, major: str | None, language: str = "en", entry: str = "Fall 2025") -> str:
    return f"""
Search and summarize the undergraduate admission requirements for:
School: {school_name}
Major: {major or 'General'}
Entry: {entry}

Output pure valid JSON:
{{
  "requirements": "GPA, standardized test policy, language tests, subject requirements.",
  "deadlines": "Application deadlines for ED, EA, RD (include dates).",
  "process": "Brief application process steps.",
  "portalLink": "URL to the application portal or admission page."
}}
Keep text concise and formatted for a table cell.
Write requirements, deadlines and process in {_output_language(language)}.
"""


def qualitative_gap_prompt(student: dict[str, Any], language: str = "en") -> str:
    return f"""
Role: Senior College Counselor.
Task: Analyze the gap between a student's profile and their "Reach" school targets.

Student Profile:
- Interests: {student.get('interests', '')}
- Abilities/Achievements: {student.get('abilities', '')}
- Intentions: {student.get('intentions', '')}

Analyze 3 dimensions: Leadership, Activity (Depth/Breadth), Competition (Awards).
For each, assign a level (Weak, Medium, Strong) and a 1-sentence {_output_language(language)} analysis.
Output JSON:
{{"leadership": {{"level": "...", "text": "..."}}, "activity": {{"level": "...", "text": "..."}}, "competition": {{"level": "...", "text": "..."}}}}
"""


def action_plan_prompt(
    profile: dict[str, Any],
    sim: dict[str, Any],
    reach_stats: dict[str, Any],
    qualitative: dict[str, Any] | None,
    school_summary: str,
    material_status: str = "",
    language: str = "en",
    today: date | None = None,
) -> str:
    today = today or date.today()
    return f"""
Role: Senior College Counselor Strategy Director.
Task: Create an actionable To-Do matrix for college application preparation for this student.

Student Context:
- Name: {profile.get('name') or 'Student'}
- Grade: {profile.get('grade') or 'Unknown'}
- Target Direction: {profile.get('direction') or 'Unknown'}
- Application Phase: {profile.get('phase') or 'Unknown'}

Status & Gaps:
- Gap to Target: GPA {sim.get('gpa')} vs {reach_stats.get('gpa')}, TOEFL {sim.get('toefl')} vs {reach_stats.get('toefl')}.
- Qualitative Analysis: {json.dumps(qualitative or {}, ensure_ascii=False)}
- Application Materials Status: {material_status or 'Unknown'}
- School List: {school_summary}

Rules:
1. category is one of Application, Test, Academics, Extracurriculars.
2. role is Student or Counselor. No Parent role.
3. type is Milestone (one-off, hard deadline) or Routine (ongoing habit).
4. title has at most 5 words. For Milestones give deadline as YYYY-MM-DD relative to {today.isoformat()}; for Routines use null.

Output a JSON array in {_output_language(language)} of
{{"category", "role", "title", "description", "duration", "priority", "deadline", "type"}}.
"""


def course_diagnosis_prompt(courses: list[str], target_summary: str, language: str = "en") -> str:
    return f"""
Role: Senior Academic Advisor.
Task: Evaluate if the student's current courses meet the prerequisites for their target schools and majors.

Current Courses (Grade 11/12): {', '.join(courses)}
Target Schools & Majors: {target_summary}

Check missing prerequisites, rigor against Reach standards, and "soft" subjects.
Output JSON:
{{"status": "Safe" | "Warning" | "Critical", "analysis": "Diagnosis in {_output_language(language)}", "suggestions": [{{"type": "Change Course" | "Change Major", "content": "..."}}]}}
"""


def essay_brainstorm_prompt(prompt_title: str, keywords: str, language: str = "en") -> str:
    return f"""
Role: Creative essay coach.
Essay: {prompt_title}
Student context: {keywords}
Generate 3 distinct essay concepts in {_output_language(language)}.
Output a JSON array of {{"title", "hook", "coreValues": [..], "plotSummary"}}.
"""


def essay_scan_prompt(content: str) -> str:
    return f"""
Role: Ivy League Essay Editor.
Task: Review the draft. Identify improvements (Correctness, Clarity, Engagement, Delivery).
Content: "{content}"
Constraint: Find 3-6 specific actionable issues.
Output JSON Array of {{originalText, suggestedText, type, shortReason, explanation}}.
"""


def meeting_notes_prompt(notes: str, language: str = "en") -> str:
    return f"""
Role: Professional Secretary.
Task: Organize the following raw meeting notes into a structured summary.
Raw Notes: "{notes}"

Requirements:
1. Summarize "Core Topics".
2. Extract "Action Items".
3. Keep it concise and professional.
4. Use Markdown formatting (bold, bullet points).
5. Language: {_output_language(language)}.
"""


def brag_sheet_prompt(highlights: str, recommender_role: str) -> str:
    # Letters are written in English whatever the UI language.
    return f"""
Role: College Application Consultant.
Task: Polish a student's raw inputs for a "Brag Sheet" (materials for a recommender to write a letter).

Student's Raw Input: "{highlights}"
Target Recommender Role: "{recommender_role}"

Requirements:
1. Transform the raw input into 3-4 professional bullet points.
2. Highlight specific qualities (e.g., Intellectual Curiosity, Leadership, Resilience).
3. Make it easy for the teacher to reference in a formal letter.
4. Output Language: English, succinct phrasing.
"""


def risk_diagnosis_prompt(profile: dict[str, Any], language: str = "en") -> str:
    output = _output_language(language)
    missing = "Info Missing" if output == "English" else "信息不足"
    return f"""
Role: International School College Counselor Supervisor.
Task: Diagnose the student's application status across 5 dimensions based on the provided profile.

Student Profile:
{json.dumps(profile, ensure_ascii=False, default=str)}

Dimensions: academic, target, task, material, comm.

Return a JSON array of 5 objects with keys "id", "label", "level", "statusText", "evidence", "action", "trend".
- "level": "high", "medium", "low", "none" (normal) or "unknown" (insufficient info).
- If a dimension cannot be inferred from the profile, set "level" to "unknown" and "statusText" to "{missing}".
- "statusText": at most 15 characters. "evidence": 1-2 sentences. "action": one specific recommendation.
- "trend": "up", "down" or "stable".
Language: {output}.
"""


# --- Response normalisation ---


def normalize_action_items(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    batch = uuid.uuid4().hex[:6]
    items = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        if item.get("category") not in ACTION_CATEGORIES or item.get("role") not in ACTION_ROLES:
            logger.debug("Dropping action item with unknown category/role: %s", item)
            continue
        if item.get("type") not in ACTION_TYPES:
            logger.debug("Dropping action item with unknown type: %s", item)
            continue
        deadline = item.get("deadline")
        if deadline is None or deadline == "null":
            deadline = ""
        priority = item.get("priority")
        items.append(
            {
                "id": f"action-{batch}-{idx}",
                "category": item["category"],
                "role": item["role"],
                "title": str(item.get("title") or "").strip(),
                "description": str(item.get("description") or ""),
                "duration": str(item.get("duration") or ""),
                "priority": priority if priority in ACTION_PRIORITIES else "Medium",
                "deadline": str(deadline),
                "type": item["type"],
                "is_selected": False,
            }
        )
    return items


def normalize_career_result(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    return {
        "synthesis": str(raw.get("synthesis") or ""),
        "majors": [m for m in raw.get("majors") or [] if isinstance(m, dict) and m.get("name")],
        "careers": [c for c in raw.get("careers") or [] if isinstance(c, dict) and c.get("title")],
    }


RISK_LEVELS = ("high", "medium", "low", "none", "unknown")
RISK_TRENDS = ("up", "down", "stable")


def normalize_risk_dimensions(raw: Any, language: str = "en") -> list[dict[str, Any]]:
    """One entry per risk category in radar order; missing dimensions come back ``unknown``."""
    if not isinstance(raw, list):
        return []
    lang = "zh" if (language or "").startswith("zh") else "en"
    by_id = {item.get("id"): item for item in raw if isinstance(item, dict) and item.get("id") in RISK_CATEGORIES}
    if not by_id:
        return []
    dimensions = []
    for key in RISK_CATEGORIES:
        item = by_id.get(key, {})
        level = item.get("level")
        trend = item.get("trend")
        dimensions.append(
            {
                "id": key,
                "label": str(item.get("label") or RISK_LABELS[key][lang]),
                "level": level if level in RISK_LEVELS else "unknown",
                "status_text": str(item.get("statusText") or ("Info Missing" if lang == "en" else "信息不足")),
                "evidence": str(item.get("evidence") or ""),
                "action": str(item.get("action") or ""),
                "trend": trend if trend in RISK_TRENDS else "stable",
            }
        )
    return dimensions


# --- Feature calls ---


def analyze_career(family: dict[str, Any], student: dict[str, Any], language: str = "en") -> dict[str, Any] | None:
    if not family.get("expectations") or not family.get("resources"):
        raise ValueError("Family expectations and resources are required")
    return normalize_career_result(get_ai_service().generate_json(career_analysis_prompt(family, student, language)))


def fetch_school_details(school_name: str, major: str | None, language: str = "en") -> dict[str, Any] | None:
    data = get_ai_service().generate_json(school_details_prompt(school_name, major, language))
    return data if isinstance(data, dict) else None


def analyze_qualitative_gap(student: dict[str, Any], language: str = "en") -> dict[str, Any] | None:
    data = get_ai_service().generate_json(qualitative_gap_prompt(student, language))
    return data if isinstance(data, dict) else None


def generate_action_plan(*args: Any, **kwargs: Any) -> list[dict[str, Any]]:
    return normalize_action_items(get_ai_service().generate_json(action_plan_prompt(*args, **kwargs)))


def diagnose_courses(courses: list[str], target_summary: str, language: str = "en") -> dict[str, Any] | None:
    data = get_ai_service().generate_json(course_diagnosis_prompt(courses, target_summary, language))
    return data if isinstance(data, dict) else None


def brainstorm_ideas(prompt_title: str, keywords: str, language: str = "en") -> list[dict[str, Any]]:
    return normalize_idea_cards(get_ai_service().generate_json(essay_brainstorm_prompt(prompt_title, keywords, language)))


def scan_essay(content: str) -> list[dict[str, Any]]:
    if not content.strip():
        return []
    return normalize_suggestions(get_ai_service().generate_json(essay_scan_prompt(content)))


def organize_meeting_notes(notes: str, language: str = "en") -> str:
    if not (notes or "").strip():
        raise ValueError("Meeting notes are empty")
    return get_ai_service().generate_content(meeting_notes_prompt(notes, language)).strip()


def polish_brag_sheet(highlights: str, recommender_role: str) -> str:
    if not (highlights or "").strip():
        raise ValueError("Highlights are empty")
    return get_ai_service().generate_content(brag_sheet_prompt(highlights, recommender_role)).strip()


def diagnose_risks(profile: dict[str, Any], language: str = "en") -> list[dict[str, Any]]:
    raw = get_ai_service().generate_json(risk_diagnosis_prompt(profile, language), is_complex=True)
    return normalize_risk_dimensions(raw, language)
