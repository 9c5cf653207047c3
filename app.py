from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

import streamlit as st

import ai
import essays
import logic
import roster
import store
import timeline
from config import get_settings
from db import db_session, init_schema
from export import build_json_summary, build_pdf_report, build_planning_payload
from logging_config import setup_logging
from seed import reset_and_seed, seed_all
from ui import render_metric_gap, render_progress, render_university_row, t

st.set_page_config(page_title="CounselDesk", layout="wide")

settings = get_settings()
setup_logging(settings.log_level, settings.log_file)
logger = logging.getLogger("counseldesk.app")

COUNSELOR_PAGES = [
    "page_dashboard",
    "page_students",
    "page_overview",
    "page_planning",
    "page_essays",
    "page_recommendations",
    "page_communication",
    "page_materials",
    "page_offers",
    "page_tasks",
]
STUDENT_PAGES = ["page_planning", "page_essays", "page_recommendations", "page_materials", "page_offers"]
REGIONS = ["US", "UK", "HK", "SG", "CA", "AU"]
STEP_KEYS = ["step_1", "step_2", "step_3", "step_4", "step_5", "step_6"]


@st.cache_resource
def bootstrap() -> None:
    init_schema()
    with db_session() as db:
        seed_all(db)
    logger.info("Schema ready, demo data seeded (env=%s)", settings.app_env)


def _state(key: str, default: Any) -> Any:
    if key not in st.session_state:
        st.session_state[key] = default
    return st.session_state[key]


def _flash(kind: str, message: str) -> None:
    # Shown on the next run; st.rerun() discards anything rendered before it.
    st.session_state["flash"] = (kind, message)


def _show_flash() -> None:
    if "flash" in st.session_state:
        kind, message = st.session_state.pop("flash")
        getattr(st, kind)(message)


def _student_options() -> dict[str, str]:
    with db_session() as db:
        return {str(s.id): f"{s.name} ({s.student_code})" for s in store.list_students(db)}


def _pick_student(language: str) -> str | None:
    options = _student_options()
    if not options:
        st.info(t(language, "no_students"))
        return None
    ids = list(options)
    current = st.session_state.get("student_id")
    index = ids.index(current) if current in ids else 0
    student_id = st.sidebar.selectbox(t(language, "student"), ids, index=index, format_func=options.get)
    st.session_state["student_id"] = student_id
    return student_id


# --- Dashboard & students ---


def render_dashboard(language: str) -> None:
    with db_session() as db:
        students = store.list_students(db)
        tasks = store.list_tasks(db)

    radar = roster.risk_radar(students, language)
    st.subheader(t(language, "risk_radar"))
    cols = st.columns(len(radar["items"]) + 1)
    for col, item in zip(cols, radar["items"]):
        col.metric(f"{item['label']} ({item['severity']})", item["count"], help=item["details"])
        if col.button(t(language, "page_students"), key=f"risk_jump_{item['key']}"):
            st.session_state["risk_filter"] = item["key"]
            st.session_state["next_page"] = "page_students"
            st.rerun()
    cols[-1].metric(t(language, "total_risks"), radar["total"])

    left, right = st.columns(2)
    with left:
        st.caption(t(language, "phase_distribution"))
        st.bar_chart(roster.phase_distribution(students))
    with right:
        st.caption(t(language, "status_distribution"))
        st.bar_chart(roster.status_distribution(students))

    counts = roster.tab_counts(tasks)
    st.write(
        f"{t(language, 'tab_today')}: {counts['Today']} · {t(language, 'tab_overdue')}: {counts['Overdue']} · "
        f"{t(language, 'tab_review')}: {counts['Review']}"
    )


def render_students(language: str) -> None:
    all_label = t(language, "all")
    risk_options = [all_label] + [roster.RISK_LABELS[k]["zh" if language == "zh" else "en"] for k in roster.RISK_CATEGORIES]
    preset = st.session_state.pop("risk_filter", None)
    if preset:
        st.session_state["students_risk"] = roster.RISK_LABELS[preset]["zh" if language == "zh" else "en"]

    c1, c2, c3, c4, c5 = st.columns(5)
    risk = c1.selectbox(t(language, "risk"), risk_options, key="students_risk")
    query = c2.text_input(t(language, "search"), placeholder=t(language, "search_students"))
    grade = c3.selectbox(t(language, "grade"), [all_label, *roster.GRADES])
    direction = c4.selectbox(t(language, "direction"), [all_label, *REGIONS])
    phase = c5.selectbox(t(language, "phase"), [all_label, *roster.PHASES])

    with db_session() as db:
        students = store.list_students(db)
    filtered = roster.filter_students(
        students,
        risk=risk,
        query=query,
        grade=grade,
        direction=direction,
        phase=phase,
    )
    st.dataframe(roster.students_frame(filtered), use_container_width=True, hide_index=True)
    st.caption(f"{len(filtered)} / {len(students)}")

    with st.expander(t(language, "add_student")):
        with st.form("add_student"):
            name = st.text_input(t(language, "name"))
            code = st.text_input(t(language, "student_id"))
            new_grade = st.selectbox(t(language, "grade"), roster.GRADES, index=1)
            new_direction = st.selectbox(t(language, "direction"), REGIONS)
            new_phase = st.selectbox(t(language, "phase"), roster.PHASES)
            if st.form_submit_button(t(language, "save")):
                try:
                    with db_session() as db:
                        store.create_student(db, name, code, new_grade, new_direction, new_phase)
                    _flash("success", t(language, "saved"))
                    st.rerun()
                except ValueError as exc:
                    st.error(str(exc))


def render_overview(student_id: str, language: str) -> None:
    with db_session() as db:
        student = store.get_student(db, student_id)
        open_tasks = [
            task for task in store.list_tasks(db)
            if task["student_id"] == student.id and task["status"] != "Completed"
        ]
        materials = store.list_materials(db, student_id)
    profile = roster.student_snapshot(student, open_tasks=len(open_tasks), materials=len(materials))
    st.dataframe(roster.students_frame([student]), use_container_width=True, hide_index=True)
    if student.risk_tags:
        st.caption(" · ".join(student.risk_tags))

    st.subheader(t(language, "risk_diagnosis"))
    diag_key = f"diagnosis_{student_id}"
    if st.button(t(language, "run_diagnosis"), type="primary"):
        with st.spinner("..."):
            st.session_state[diag_key] = ai.diagnose_risks(profile, language)
        if not st.session_state[diag_key]:
            st.error(t(language, "ai_unavailable"))

    dimensions = st.session_state.get(diag_key) or []
    if not dimensions:
        return
    for col, dimension in zip(st.columns(len(dimensions)), dimensions):
        col.metric(dimension["label"], dimension["status_text"], help=dimension["evidence"])
        col.caption(f"{dimension['level']} · {dimension['trend']}")
        col.write(dimension["action"])
    if st.button(t(language, "apply_diagnosis")):
        with db_session() as db:
            store.apply_risk_diagnosis(db, student_id, dimensions)
        _flash("success", t(language, "saved"))
        st.rerun()


# --- Planning wizard ---


def _plan_state(student_id: str) -> dict[str, Any]:
    with db_session() as db:
        plan = store.get_or_create_plan(db, student_id)
        return {
            "step": plan.planning_step,
            "family": dict(plan.family_inputs_json or {}),
            "student": dict(plan.student_inputs_json or {}),
            "career": plan.career_result_json,
            "targets": list(plan.target_preferences_json or []),
            "sim": {"gpa": plan.sim_gpa, "toefl": plan.sim_toefl, "sat": plan.sim_sat},
        }


def _save_plan(student_id: str, **fields: Any) -> None:
    with db_session() as db:
        store.save_plan_state(db, student_id, **fields)


def _step_nav(student_id: str, step: int, language: str) -> None:
    back, _, forward = st.columns([1, 4, 1])
    if step > 1 and back.button(t(language, "back"), key=f"back_{step}"):
        _save_plan(student_id, planning_step=step - 1)
        st.rerun()
    if step < 6 and forward.button(t(language, "next"), key=f"next_{step}", type="primary"):
        _save_plan(student_id, planning_step=step + 1)
        st.rerun()


def render_step_career(student_id: str, plan: dict[str, Any], language: str) -> None:
    family, student = plan["family"], plan["student"]
    with st.form("career_inputs"):
        family["expectations"] = st.text_area(t(language, "family_expectations"), value=family.get("expectations", ""))
        family["resources"] = st.text_area(t(language, "family_resources"), value=family.get("resources", ""))
        student["interests"] = st.text_area(t(language, "interests"), value=student.get("interests", ""))
        student["abilities"] = st.text_area(t(language, "abilities"), value=student.get("abilities", ""))
        student["intentions"] = st.text_area(t(language, "intentions"), value=student.get("intentions", ""))
        analyze = st.form_submit_button(t(language, "analyze_career"))
    if analyze:
        _save_plan(student_id, family_inputs_json=family, student_inputs_json=student)
        try:
            with st.spinner("..."):
                result = ai.analyze_career(family, student, language)
        except ValueError:
            st.warning(t(language, "career_needs_family"))
            result = None
        else:
            if result is None:
                st.error(t(language, "ai_unavailable"))
        if result:
            _save_plan(student_id, career_result_json=result)
            plan["career"] = result

    career = plan.get("career")
    if career:
        st.write(career.get("synthesis", ""))
        for major in career.get("majors", []):
            st.markdown(f"- **{major['name']}** ({major.get('match', '-')}) {major.get('reason', '')}")
        for career_item in career.get("careers", []):
            st.markdown(f"- _{career_item['title']}_: {career_item.get('desc', '')}")


def render_step_targets(student_id: str, plan: dict[str, Any], language: str) -> None:
    targets = plan["targets"]
    suggested = [m["name"] for m in (plan.get("career") or {}).get("majors", [])]
    for target in targets:
        with st.container(border=True):
            c1, c2 = st.columns([3, 1])
            region = c1.selectbox(
                t(language, "region"),
                REGIONS,
                index=REGIONS.index(target["region"]) if target["region"] in REGIONS else 0,
                key=f"region_{target['id']}",
            )
            if region != target["region"]:
                _save_plan(student_id, target_preferences_json=logic.update_target_region(targets, target["id"], region))
                st.rerun()
            if c2.button(t(language, "remove"), key=f"remove_target_{target['id']}"):
                _save_plan(student_id, target_preferences_json=logic.remove_target(targets, target["id"]))
                st.rerun()
            for major in target["majors"]:
                if st.button(f"✕ {major}", key=f"rm_major_{target['id']}_{major}"):
                    _save_plan(student_id, target_preferences_json=logic.remove_major_from_target(targets, target["id"], major))
                    st.rerun()
            choices = [""] + suggested + [logic.format_major(m, language) for m in logic.COMMON_MAJORS]
            picked = st.selectbox(t(language, "majors"), choices, key=f"pick_major_{target['id']}")
            typed = st.text_input(t(language, "add_major"), key=f"type_major_{target['id']}")
            if st.button(t(language, "add_major"), key=f"add_major_{target['id']}"):
                updated = logic.add_major_to_target(targets, target["id"], typed or picked)
                _save_plan(student_id, target_preferences_json=updated)
                st.rerun()

    if len(targets) >= logic.MAX_TARGETS:
        st.caption(t(language, "max_targets"))
    elif st.button(t(language, "add_target")):
        _save_plan(student_id, target_preferences_json=logic.add_target(targets))
        st.rerun()


def render_step_matching(student_id: str, plan: dict[str, Any], language: str) -> None:
    with db_session() as db:
        catalog = [logic.university_to_dict(u) for u in store.list_universities(db)]
        selected = store.list_selected_schools(db, student_id)

    pool_key = f"pool_{student_id}"
    if pool_key not in st.session_state or st.button(t(language, "regenerate")):
        st.session_state[pool_key] = logic.regenerate_candidate_pool(catalog, plan["targets"])

    sim = plan["sim"]
    c1, c2, c3 = st.columns(3)
    gpa = c1.slider(t(language, "gpa"), 2.5, 4.3, float(sim["gpa"]), 0.01)
    toefl = c2.slider(t(language, "toefl"), 60, 120, int(sim["toefl"]))
    sat = c3.slider(t(language, "sat"), 0, 1600, int(sim["sat"]), 10)
    sim = {"gpa": gpa, "toefl": toefl, "sat": sat}
    if sim != plan["sim"]:
        _save_plan(student_id, sim_gpa=gpa, sim_toefl=toefl, sim_sat=sat)

    health = logic.list_health(selected, language)
    counts = logic.tier_counts(selected)
    st.info(
        f"{t(language, 'list_health')}: {health['text']} · {t(language, 'reach')} {counts['Reach']} · "
        f"{t(language, 'match')} {counts['Match']} · {t(language, 'safety')} {counts['Safety']}"
    )

    tab = st.radio(
        " ",
        ["Recommend", "Search"],
        format_func=lambda v: t(language, f"tab_{v.lower()}"),
        horizontal=True,
        label_visibility="collapsed",
    )
    query = st.text_input(t(language, "search_schools")) if tab == "Search" else ""
    results = logic.recommend_universities(catalog, st.session_state[pool_key], sim, query, tab, language)

    prefs = plan["targets"]
    for uni in results:
        with st.container(border=True):
            render_university_row(uni, language)
            preference = next((p for p in prefs if p["region"] == uni["region"]), None)
            majors = preference["majors"] if preference and len(preference["majors"]) > 1 else [None]
            for major in majors:
                cols = st.columns(3)
                for col, tier in zip(cols, logic.TIERS):
                    label = f"+ {t(language, tier.lower())}" + (f" · {major}" if major else "")
                    if col.button(label, key=f"add_{uni['id']}_{tier}_{major}"):
                        entries = logic.add_school(selected, uni, tier, prefs, specific_major=major)
                        with db_session() as db:
                            store.add_selected_schools(db, student_id, entries)
                        st.rerun()


def render_step_final_list(student_id: str, plan: dict[str, Any], language: str) -> None:
    with db_session() as db:
        selected = store.list_selected_schools(db, student_id)

    if st.button(t(language, "enrich_all")):
        pending = logic.schools_needing_enrichment(selected)
        failures = 0
        for school in pending:
            data = ai.fetch_school_details(school["university"]["name"], school["major"], language)
            if data is None:
                failures += 1
                continue
            with db_session() as db:
                store.update_selected_school(db, student_id, logic.merge_enrichment(school, data, overwrite=False))
        if not pending:
            _flash("info", t(language, "all_enriched"))
        elif failures:
            _flash("warning", f"{t(language, 'enrich_failed')} ({failures}/{len(pending)})")
        else:
            _flash("success", f"{t(language, 'enrich_done')}: {len(pending)}")
        st.rerun()

    for tier, schools in logic.group_by_tier(selected).items():
        if not schools:
            continue
        st.markdown(f"#### {t(language, tier.lower())}")
        for school in schools:
            with st.expander(f"{school['university']['name']} · {school['major']}"):
                with st.form(f"final_{school['id']}"):
                    values = {
                        field: st.text_area(t(language, field), value=school[field] or "", key=f"{field}_{school['id']}")
                        for field in ("requirements", "deadlines", "process", "admission_advice")
                    }
                    values["portal_link"] = st.text_input(t(language, "portal_link"), value=school["portal_link"] or "")
                    values["tier"] = st.selectbox(t(language, "category"), logic.TIERS, index=logic.TIERS.index(school["tier"]))
                    if st.form_submit_button(t(language, "save")):
                        updated = school
                        for field, value in values.items():
                            updated = logic.update_final_school([updated], school["id"], field, value)[0]
                        with db_session() as db:
                            store.update_selected_school(db, student_id, updated)
                        st.rerun()
                c1, c2 = st.columns(2)
                if c1.button(t(language, "enrich"), key=f"enrich_{school['id']}"):
                    data = ai.fetch_school_details(school["university"]["name"], school["major"], language)
                    if data is None:
                        st.error(t(language, "enrich_failed"))
                    else:
                        with db_session() as db:
                            store.update_selected_school(db, student_id, logic.merge_enrichment(school, data, overwrite=True))
                        st.rerun()
                if c2.button(t(language, "remove"), key=f"remove_{school['id']}"):
                    with db_session() as db:
                        store.remove_selected_school(db, student_id, school["id"])
                    st.rerun()


def render_step_gap(student_id: str, plan: dict[str, Any], language: str) -> None:
    with db_session() as db:
        selected = store.list_selected_schools(db, student_id)
        actions = store.list_action_items(db, student_id)
        student = store.get_student(db, student_id)
        profile = {"name": student.name, "grade": student.grade, "direction": student.direction, "phase": student.phase}

    if not selected:
        st.warning(t(language, "gap_needs_schools"))
        return

    stats = logic.tier_stats(selected)
    for metric in logic.gap_report(plan["sim"], stats):
        render_metric_gap(metric, language)

    qual_key = f"qualitative_{student_id}"
    if st.button(t(language, "qualitative")):
        st.session_state[qual_key] = ai.analyze_qualitative_gap(plan["student"], language)
        if st.session_state[qual_key] is None:
            st.error(t(language, "ai_unavailable"))
    for dimension, detail in (st.session_state.get(qual_key) or {}).items():
        if isinstance(detail, dict):
            st.markdown(f"- **{dimension.title()}** [{detail.get('level', '-')}]: {detail.get('text', '')}")

    with st.expander(t(language, "course_diagnosis")):
        courses = st.text_input(t(language, "courses"), value="AP Calculus BC, AP Physics C, AP Computer Science A")
        if st.button(t(language, "course_diagnosis"), key="run_course_diag"):
            summary = "; ".join(f"{s['university']['name']} ({s['major']})" for s in selected)
            diagnosis = ai.diagnose_courses([c.strip() for c in courses.split(",") if c.strip()], summary, language)
            if diagnosis is None:
                st.error(t(language, "ai_unavailable"))
            else:
                st.write(f"**{diagnosis.get('status', '-')}**: {diagnosis.get('analysis', '')}")
                for suggestion in diagnosis.get("suggestions", []):
                    st.markdown(f"- {suggestion.get('type', '')}: {suggestion.get('content', '')}")

    if st.button(t(language, "generate_actions"), type="primary"):
        summary = ", ".join(f"{s['university']['name']} [{s['tier']}]" for s in selected)
        items = ai.generate_action_plan(
            profile,
            plan["sim"],
            stats["Reach"],
            st.session_state.get(qual_key),
            summary,
            language=language,
        )
        if not items:
            st.error(t(language, "ai_unavailable"))
        else:
            with db_session() as db:
                store.save_action_items(db, student_id, items)
            st.rerun()

    if actions:
        for item in actions:
            checked = st.checkbox(
                f"[{item['category']} · {item['role']} · {item['type']}] {item['title']} ({item['deadline'] or '-'})",
                value=item["is_selected"],
                key=f"action_{item['id']}",
                help=item["description"],
            )
            if checked != item["is_selected"]:
                actions = logic.toggle_action_item(actions, item["id"])
                with db_session() as db:
                    store.save_action_items(db, student_id, actions)
        chosen = logic.selected_actions(actions)
        if chosen and st.button(f"{t(language, 'sync_timeline')} ({len(chosen)})"):
            with db_session() as db:
                added = store.sync_actions(db, student_id, chosen, base_year=settings.planning_base_year)
            _flash("success", f"{t(language, 'synced')}: {added}")
            st.rerun()


def render_step_timeline(student_id: str, plan: dict[str, Any], language: str) -> None:
    with db_session() as db:
        events = store.list_timeline_events(db, student_id)

    role = st.radio(t(language, "role_filter"), timeline.ROLE_FILTERS, horizontal=True)
    scheduled, unscheduled = timeline.split_scheduled(events, role)
    months = timeline.month_keys(events)

    with st.expander(f"{t(language, 'unscheduled')} ({len(unscheduled)})", expanded=True):
        for event in unscheduled:
            _render_event(student_id, event, months, language)

    for month in months:
        in_month = timeline.events_in_month(scheduled, month)
        st.markdown(f"#### {month}")
        if not in_month:
            st.caption(t(language, "no_events"))
        for event in in_month:
            _render_event(student_id, event, months, language)

    with st.expander(t(language, "add_event")):
        with st.form("add_event"):
            form = {
                "title": st.text_input(t(language, "title")),
                "start_date": st.text_input(t(language, "start_month"), value=timeline.month_key(date.today())),
                "end_date": st.text_input(t(language, "end_month")),
                "type": st.selectbox("Type", ["Point", "Range"]),
                "category": st.selectbox(t(language, "category"), timeline.EVENT_CATEGORIES, index=4),
                "status": st.selectbox(t(language, "status"), timeline.EVENT_STATUSES),
                "priority": st.selectbox(t(language, "priority"), ["High", "Medium", "Low"], index=1),
                "assignee": st.selectbox(t(language, "assignee"), timeline.ASSIGNEES),
                "description": st.text_area(t(language, "content")),
            }
            if st.form_submit_button(t(language, "save")):
                try:
                    with db_session() as db:
                        store.save_timeline_event(db, student_id, form)
                    st.rerun()
                except ValueError as exc:
                    st.error(str(exc))

    _render_downloads(student_id, plan, events, language)


def _render_event(student_id: str, event: dict[str, Any], months: list[str], language: str) -> None:
    span = event["start_date"] or "-"
    if event.get("end_date"):
        span = f"{span} → {event['end_date']}"
    done = "✅ " if event["status"] == "Done" else ""
    c1, c2, c3, c4 = st.columns([5, 2, 1, 1])
    c1.markdown(f"{done}**{event['title']}** · {event['category']} · {event['assignee']} · {span}")
    target = c2.selectbox(
        t(language, "move_to"),
        [""] + months,
        key=f"move_{event['id']}",
        label_visibility="collapsed",
    )
    if target and target != event["start_date"]:
        with db_session() as db:
            store.move_timeline_event(db, student_id, event["id"], target)
        st.rerun()
    if c3.button("✓", key=f"toggle_{event['id']}", help=t(language, "toggle_done")):
        with db_session() as db:
            store.toggle_timeline_event(db, student_id, event["id"])
        st.rerun()
    if c4.button("🗑", key=f"delete_{event['id']}", help=t(language, "delete")):
        with db_session() as db:
            store.delete_timeline_event(db, student_id, event["id"])
        st.rerun()


def _render_downloads(student_id: str, plan: dict[str, Any], events: list[dict[str, Any]], language: str) -> None:
    with db_session() as db:
        student = store.get_student(db, student_id)
        selected = store.list_selected_schools(db, student_id)
        actions = logic.selected_actions(store.list_action_items(db, student_id))
        payload = build_planning_payload(
            student,
            plan["sim"],
            selected,
            logic.list_health(selected, language),
            logic.gap_report(plan["sim"], logic.tier_stats(selected)) if selected else [],
            events,
            actions,
        )
    c1, c2 = st.columns(2)
    c1.download_button(
        t(language, "download_pdf"),
        data=build_pdf_report(payload, language),
        file_name=f"planning_{payload['student']['student_code']}.pdf",
        mime="application/pdf",
    )
    c2.download_button(
        t(language, "download_json"),
        data=build_json_summary(payload),
        file_name=f"planning_{payload['student']['student_code']}.json",
        mime="application/json",
    )


def render_planning(student_id: str, language: str) -> None:
    plan = _plan_state(student_id)
    labels = [t(language, key) for key in STEP_KEYS]
    step = st.radio(" ", range(1, 7), index=plan["step"] - 1, format_func=lambda s: labels[s - 1], horizontal=True, label_visibility="collapsed")
    if step != plan["step"]:
        _save_plan(student_id, planning_step=step)
        plan["step"] = step
    render_progress(step, 6, labels)

    renderers = {
        1: render_step_career,
        2: render_step_targets,
        3: render_step_matching,
        4: render_step_final_list,
        5: render_step_gap,
        6: render_step_timeline,
    }
    renderers[step](student_id, plan, language)
    _step_nav(student_id, step, language)


# --- Essays ---


def render_essays(student_id: str, language: str, role: str) -> None:
    with db_session() as db:
        labels = {e.id: f"{e.title} · {e.school} ({e.status})" for e in store.list_essays(db, student_id)}
    if not labels:
        st.info("-")
        return
    essay_id = st.selectbox(t(language, "essay"), list(labels), format_func=labels.get)
    with db_session() as db:
        versions = store.list_versions(db, essay_id)
        essay = store.get_essay(db, essay_id)

    write_tab, ideas_tab, history_tab = st.tabs([t(language, "essay"), t(language, "brainstorm"), t(language, "versions")])

    with write_tab:
        status = st.selectbox(
            t(language, "status"),
            essays.ESSAY_STATUSES,
            index=essays.ESSAY_STATUSES.index(essay.status) if essay.status in essays.ESSAY_STATUSES else 0,
            key=f"status_{essay.id}",
        )
        if status != essay.status:
            with db_session() as db:
                store.update_essay_status(db, essay.id, status)
        content = st.text_area(" ", value=essay.current_content, height=320, key=f"content_{essay.id}")
        st.caption(f"{essays.count_words(content)} / {essay.word_limit} {t(language, 'word_count')}")
        if content != essay.current_content:
            with db_session() as db:
                store.save_essay_content(db, essay.id, content)
        note = st.text_input(t(language, "version_note"), key=f"note_{essay.id}")
        c1, c2 = st.columns(2)
        if c1.button(t(language, "save_version")):
            source = "Teacher_Save" if role == "Counselor" else "Student_Submit"
            author = "Teacher" if role == "Counselor" else "Student"
            try:
                with db_session() as db:
                    store.save_essay_version(db, essay.id, source, note=note, author=author)
                _flash("success", t(language, "saved"))
                st.rerun()
            except ValueError:
                st.warning(t(language, "note_required"))
        sug_key = f"suggestions_{essay.id}"
        if c2.button(t(language, "scan")):
            st.session_state[sug_key] = ai.scan_essay(content)
            if not st.session_state[sug_key]:
                st.error(t(language, "ai_unavailable"))
        for suggestion in st.session_state.get(sug_key, []):
            st.markdown(f"**{suggestion['type']}**: ~~{suggestion['original_text']}~~ → {suggestion['suggested_text']}")
            st.caption(suggestion["explanation"] or suggestion["short_reason"])
            if st.button(t(language, "apply"), key=f"apply_{suggestion['id']}"):
                new_content, applied = essays.apply_suggestion(content, suggestion)
                if applied:
                    with db_session() as db:
                        store.save_essay_content(db, essay.id, new_content)
                        store.save_essay_version(db, essay.id, "AI_Generate", note=suggestion["short_reason"], author="AI")
                st.session_state[sug_key] = [s for s in st.session_state[sug_key] if s["id"] != suggestion["id"]]
                st.session_state.pop(f"content_{essay.id}", None)
                st.rerun()

    with ideas_tab:
        keywords = st.text_area(t(language, "context_keywords"), value=essay.context_keywords)
        if st.button(t(language, "brainstorm"), key="run_brainstorm"):
            ideas = ai.brainstorm_ideas(essay.title, keywords, language)
            if not ideas:
                st.error(t(language, "ai_unavailable"))
            with db_session() as db:
                store.save_idea_cards(db, essay.id, list(essay.idea_cards_json or []) + ideas, keywords=keywords)
            st.rerun()
        cards = list(essay.idea_cards_json or [])
        for card in cards:
            with st.container(border=True):
                star = "★" if card.get("is_favorite") else "☆"
                st.markdown(f"{star} **{card['title']}**: _{card.get('hook', '')}_")
                st.caption(card.get("plot_summary", ""))
                c1, c2, c3 = st.columns(3)
                if c1.button(star, key=f"fav_{card['id']}"):
                    with db_session() as db:
                        store.save_idea_cards(db, essay.id, essays.toggle_idea_favorite(cards, card["id"]))
                    st.rerun()
                if c2.button("+", key=f"ctx_{card['id']}"):
                    with db_session() as db:
                        store.save_idea_cards(db, essay.id, cards, keywords=essays.add_context_keyword(keywords, card["title"]))
                    st.rerun()
                if c3.button(t(language, "delete"), key=f"del_{card['id']}"):
                    with db_session() as db:
                        store.save_idea_cards(db, essay.id, essays.delete_idea(cards, card["id"]))
                    st.rerun()

    with history_tab:
        for day, items in essays.group_versions_by_day(versions).items():
            st.markdown(f"**{day}**")
            for version in items:
                with st.expander(f"{version.version_number} · {version.author} · {version.source} · {version.word_count}"):
                    st.caption(f"{version.note or ''} {' '.join(version.tags or [])}")
                    st.write(version.content)
                    if st.button(t(language, "restore"), key=f"restore_{version.id}"):
                        with db_session() as db:
                            store.restore_essay_version(db, essay.id, version.id)
                        st.session_state.pop(f"content_{essay.id}", None)
                        _flash("success", t(language, "restored"))
                        st.rerun()


# --- Recommendation letters ---


def _recommendation_form(language: str, role: str, request: Any = None) -> dict[str, Any]:
    statuses = roster.RECOMMENDATION_STATUSES
    form = {
        "recommender_name": st.text_input(t(language, "recommender_name"), value=request.recommender_name if request else ""),
        "recommender_role": st.text_input(t(language, "recommender_role"), value=request.recommender_role if request else ""),
        "deadline": st.date_input(t(language, "deadline"), value=request.deadline if request else None),
        "highlights": st.text_area(t(language, "highlights"), value=request.highlights if request else ""),
        "status": st.selectbox(
            t(language, "status"),
            statuses,
            index=statuses.index(request.status) if request and request.status in statuses else 0,
        ),
    }
    if role == "Counselor":
        form["letter_content"] = st.text_area(
            t(language, "letter_content"),
            value=(request.letter_content or "") if request else "",
            height=240,
        )
    return form


def render_recommendations(student_id: str, language: str, role: str) -> None:
    with db_session() as db:
        requests = store.list_recommendations(db, student_id)

    for request in requests:
        polished = f" · {t(language, 'ai_polished')}" if request.ai_polished else ""
        with st.expander(f"{request.recommender_name} · {request.recommender_role} · {request.status} · {request.deadline or '-'}{polished}"):
            with st.form(f"rec_{request.id}"):
                form = _recommendation_form(language, role, request)
                if st.form_submit_button(t(language, "save")):
                    try:
                        with db_session() as db:
                            store.save_recommendation(db, student_id, form, editing_id=request.id)
                        st.rerun()
                    except ValueError as exc:
                        st.error(str(exc))
            c1, c2 = st.columns(2)
            if c1.button(t(language, "polish"), key=f"polish_{request.id}", disabled=not request.highlights.strip()):
                try:
                    with st.spinner("..."):
                        highlights = ai.polish_brag_sheet(request.highlights, request.recommender_role)
                except ai.AIServiceError:
                    st.error(t(language, "ai_unavailable"))
                else:
                    with db_session() as db:
                        store.save_recommendation(db, student_id, {"highlights": highlights, "ai_polished": True}, editing_id=request.id)
                    st.rerun()
            if c2.button(t(language, "delete"), key=f"del_rec_{request.id}"):
                with db_session() as db:
                    store.delete_recommendation(db, student_id, request.id)
                st.rerun()

    with st.expander(t(language, "new_request")):
        with st.form("new_request"):
            form = _recommendation_form(language, role)
            if st.form_submit_button(t(language, "save")):
                try:
                    with db_session() as db:
                        store.save_recommendation(db, student_id, form)
                    _flash("success", t(language, "saved"))
                    st.rerun()
                except ValueError as exc:
                    st.error(str(exc))


# --- Communication, materials, offers ---


def render_communication(student_id: str, language: str) -> None:
    # The notes box is a widget; AI output is staged under a separate key and applied before it renders.
    if "log_content_next" in st.session_state:
        st.session_state["log_content"] = st.session_state.pop("log_content_next")

    with st.expander(t(language, "add_log"), expanded=bool(st.session_state.get("log_content"))):
        content = st.text_area(t(language, "content"), key="log_content", height=200)
        if st.button(t(language, "ai_organize"), disabled=not content.strip()):
            try:
                with st.spinner("..."):
                    organized = ai.organize_meeting_notes(content, language)
            except ai.AIServiceError:
                st.error(t(language, "ai_unavailable"))
            else:
                st.session_state["log_content_next"] = organized
                st.rerun()
        with st.form("add_log"):
            log_type = st.selectbox(t(language, "log_type"), store.LOG_TYPES)
            title = st.text_input(t(language, "title"))
            day = st.date_input(t(language, "occurred_at"), value=date.today())
            participants = st.multiselect(
                t(language, "participants"),
                ["Student", "Counselor", "Mom", "Dad"],
                default=["Student", "Counselor"],
            )
            if st.form_submit_button(t(language, "save")):
                occurred_at = datetime.combine(day, datetime.now().time(), tzinfo=timezone.utc)
                try:
                    with db_session() as db:
                        store.add_communication_log(db, student_id, log_type, title, occurred_at, content, participants)
                    st.session_state["log_content_next"] = ""
                    st.rerun()
                except ValueError as exc:
                    st.error(str(exc))

    c1, c2 = st.columns([3, 2])
    type_filter = c1.radio(
        t(language, "log_type"),
        ["All", *store.LOG_TYPES],
        format_func=lambda v: t(language, "all") if v == "All" else v,
        horizontal=True,
    )
    query = c2.text_input(t(language, "search"), placeholder=t(language, "search_logs"))
    with db_session() as db:
        logs = roster.filter_logs(store.list_communication_logs(db, student_id), type_filter, query)
    for log in logs:
        with st.container(border=True):
            st.markdown(f"**[{log.log_type}] {log.title}** · {log.occurred_at:%Y-%m-%d %H:%M}")
            st.caption(", ".join(log.participants) + (f" · {' '.join(log.tags)}" if log.tags else ""))
            st.markdown(log.content)
            if st.button(t(language, "delete"), key=f"del_log_{log.id}"):
                with db_session() as db:
                    store.delete_communication_log(db, student_id, log.id)
                st.rerun()


def render_materials(student_id: str, language: str, role: str) -> None:
    category = st.radio(t(language, "category"), ["all", *store.MATERIAL_CATEGORIES], horizontal=True)
    with db_session() as db:
        files = store.list_materials(db, student_id, category)
    st.dataframe(
        [
            {
                t(language, "file_name"): f.name,
                t(language, "category"): f.category,
                t(language, "occurred_at"): f.uploaded_on,
                t(language, "size"): f.size_text,
                "uploader": f.uploader,
            }
            for f in files
        ],
        use_container_width=True,
        hide_index=True,
    )
    with st.form("add_file"):
        name = st.text_input(t(language, "file_name"))
        new_category = st.selectbox(t(language, "category"), store.MATERIAL_CATEGORIES)
        size_text = st.text_input(t(language, "size"), value="-")
        if st.form_submit_button(t(language, "add_file")):
            try:
                with db_session() as db:
                    store.add_material_file(db, student_id, name, new_category, size_text, uploader="Teacher" if role == "Counselor" else "Student")
                st.rerun()
            except ValueError as exc:
                st.error(str(exc))


def render_offers(student_id: str, language: str) -> None:
    with db_session() as db:
        offers = store.list_offers(db, student_id)
    st.dataframe(
        [
            {
                t(language, "school"): o.school,
                t(language, "majors"): o.major,
                t(language, "round"): o.round,
                t(language, "result"): o.result,
                t(language, "occurred_at"): o.decided_on,
            }
            for o in offers
        ],
        use_container_width=True,
        hide_index=True,
    )
    with st.form("record_offer"):
        school = st.text_input(t(language, "school"))
        major = st.text_input(t(language, "majors"))
        round_ = st.selectbox(t(language, "round"), ["ED1", "ED2", "EA", "REA", "RD"])
        result = st.selectbox(t(language, "result"), store.OFFER_RESULTS)
        decided_on = st.date_input(t(language, "occurred_at"), value=date.today())
        if st.form_submit_button(t(language, "record_offer")):
            try:
                with db_session() as db:
                    store.record_offer(db, student_id, school, major, round_, result, decided_on)
                st.rerun()
            except ValueError as exc:
                st.error(str(exc))


# --- Task center ---


def render_tasks(language: str) -> None:
    with db_session() as db:
        tasks = store.list_tasks(db)
    counts = roster.tab_counts(tasks)
    tab = st.radio(
        " ",
        roster.TASK_TABS,
        format_func=lambda v: f"{t(language, f'tab_{v.lower()}')} ({counts[v]})",
        horizontal=True,
        label_visibility="collapsed",
    )
    c1, c2 = st.columns(2)
    category = c1.selectbox(t(language, "category"), ["All", *roster.TASK_CATEGORIES])
    query = c2.text_input(t(language, "search"))
    visible = roster.filter_tasks(tasks, tab, category, query)

    chosen = []
    today = date.today()
    for task in visible:
        status = roster.effective_task_status(task, today)
        label = f"[{status}] {task['title']} · {task['student_name'] or '-'} · {task['due_date']} · {task['priority']}"
        if st.checkbox(label, key=f"task_{task['id']}", disabled=status == "Completed"):
            chosen.append(task["id"])
    if chosen and st.button(f"{t(language, 'complete_selected')} ({len(chosen)})", type="primary"):
        with db_session() as db:
            done = store.complete_tasks(db, chosen)
        _flash("success", f"{t(language, 'completed_n')}: {done}")
        st.rerun()

    with st.expander(t(language, "new_task")):
        options = _student_options()
        with st.form("new_task"):
            title = st.text_input(t(language, "title"))
            student_id = st.selectbox(t(language, "student"), [""] + list(options), format_func=lambda k: options.get(k, "-"))
            new_category = st.selectbox(t(language, "category"), roster.TASK_CATEGORIES)
            priority = st.selectbox(t(language, "priority"), ["High", "Medium", "Low"], index=1)
            due = st.date_input(t(language, "due_date"), value=today)
            if st.form_submit_button(t(language, "save")):
                try:
                    with db_session() as db:
                        store.create_task(db, title, student_id or None, new_category, priority, due)
                    st.rerun()
                except ValueError as exc:
                    st.error(str(exc))


def main() -> None:
    bootstrap()
    _state("language", settings.default_language if settings.default_language in {"en", "zh"} else "en")
    _state("role", "Counselor")

    st.sidebar.title("CounselDesk")
    language = st.sidebar.radio("Language / 语言", ["en", "zh"], key="language", horizontal=True)
    role = st.sidebar.radio(
        t(language, "role"),
        ["Counselor", "Student"],
        key="role",
        format_func=lambda r: t(language, f"role_{r.lower()}"),
    )
    pages = COUNSELOR_PAGES if role == "Counselor" else STUDENT_PAGES
    if "next_page" in st.session_state:
        st.session_state["page"] = st.session_state.pop("next_page")
    if st.session_state.get("page") not in pages:
        st.session_state["page"] = pages[0]
    page = st.sidebar.radio(t(language, "nav"), pages, key="page", format_func=lambda p: t(language, p))
    if role == "Counselor" and st.sidebar.button(t(language, "seed_demo")):
        with db_session() as db:
            reset_and_seed(db)
        st.session_state.pop("student_id", None)
        st.sidebar.success(t(language, "saved"))

    st.title(t(language, "app_title"))
    st.caption(t(language, "subtitle"))
    _show_flash()

    if page == "page_dashboard":
        render_dashboard(language)
    elif page == "page_students":
        render_students(language)
    elif page == "page_tasks":
        render_tasks(language)
    else:
        student_id = _pick_student(language)
        if not student_id:
            return
        if page == "page_overview":
            render_overview(student_id, language)
        elif page == "page_planning":
            render_planning(student_id, language)
        elif page == "page_essays":
            render_essays(student_id, language, role)
        elif page == "page_recommendations":
            render_recommendations(student_id, language, role)
        elif page == "page_communication":
            render_communication(student_id, language)
        elif page == "page_materials":
            render_materials(student_id, language, role)
        elif page == "page_offers":
            render_offers(student_id, language)


if __name__ == "__main__":
    main()
