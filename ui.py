from __future__ import annotations

from typing import Any

import streamlit as st


I18N = {
    "en": {
        "app_title": "CounselDesk - Study Abroad Counseling",
        "subtitle": "Student records, planning and applications in one place.",
        "language": "Language",
        "role": "Signed in as",
        "role_counselor": "Counselor",
        "role_student": "Student",
        "nav": "Navigate",
        "page_dashboard": "Dashboard",
        "page_students": "Students",
        "page_planning": "Planning Wizard",
        "page_essays": "Essays",
        "page_communication": "Communication",
        "page_materials": "Materials",
        "page_offers": "Offers",
        "page_tasks": "Task Center",
        "student": "Student",
        "no_students": "No students yet.",
        "risk_radar": "Risk Radar",
        "total_risks": "Total risk flags",
        "phase_distribution": "Students by phase",
        "status_distribution": "Students by status",
        "search": "Search",
        "search_students": "Search name or student ID",
        "risk": "Risk",
        "grade": "Grade",
        "direction": "Direction",
        "phase": "Phase",
        "all": "All",
        "add_student": "Add student",
        "name": "Name",
        "student_id": "Student ID",
        "save": "Save",
        "saved": "Saved.",
        "step_1": "1. Career & Major",
        "step_2": "2. Targets",
        "step_3": "3. School Matching",
        "step_4": "4. Final List",
        "step_5": "5. Gap Analysis",
        "step_6": "6. Timeline",
        "next": "Next",
        "back": "Back",
        "family_expectations": "Family expectations",
        "family_resources": "Family resources",
        "interests": "Interests",
        "abilities": "Abilities / achievements",
        "intentions": "Intentions",
        "analyze_career": "Analyze with AI",
        "career_needs_family": "Fill in family expectations and resources first.",
        "ai_unavailable": "AI analysis unavailable, please try again later.",
        "add_target": "Add target",
        "region": "Region",
        "majors": "Majors",
        "add_major": "Add major",
        "remove": "Remove",
        "max_targets": "At most 3 targets.",
        "gpa": "GPA",
        "toefl": "TOEFL",
        "sat": "SAT",
        "tab_recommend": "Recommend",
        "tab_search": "Search",
        "regenerate": "Refresh candidate pool",
        "search_schools": "Search school name",
        "match_score": "Match",
        "win_rate": "Win",
        "list_health": "List health",
        "reach": "Reach",
        "match": "Match",
        "safety": "Safety",
        "enrich": "AI fill details",
        "enrich_all": "AI fill all missing",
        "all_enriched": "All schools have info populated.",
        "enrich_failed": "AI enrichment failed, please try again.",
        "requirements": "Requirements",
        "deadlines": "Deadlines",
        "process": "Process",
        "portal_link": "Portal link",
        "admission_advice": "Admission advice",
        "gap_needs_schools": "Gap analysis requires confirmed target schools. Go back to Step 4.",
        "qualitative": "Qualitative analysis",
        "generate_actions": "Generate action plan",
        "sync_timeline": "Sync selected to timeline",
        "synced": "Events added to the timeline",
        "course_diagnosis": "Course diagnosis",
        "courses": "Current courses (comma separated)",
        "unscheduled": "Unscheduled tasks",
        "no_events": "No tasks scheduled",
        "role_filter": "Show",
        "add_event": "Add task",
        "title": "Title",
        "start_month": "Start month (YYYY-MM)",
        "end_month": "End month (YYYY-MM)",
        "category": "Category",
        "status": "Status",
        "priority": "Priority",
        "assignee": "Assignee",
        "move_to": "Move to",
        "toggle_done": "Toggle done",
        "delete": "Delete",
        "download_pdf": "Download PDF Report",
        "download_json": "Download JSON Summary",
        "essay": "Essay",
        "word_count": "words",
        "save_version": "Save version",
        "version_note": "Version note",
        "note_required": "Please enter a version note.",
        "restore": "Restore this version",
        "restored": "Version restored; previous content backed up.",
        "brainstorm": "Brainstorm ideas",
        "scan": "Scan draft",
        "apply": "Apply",
        "context_keywords": "Context keywords",
        "versions": "Version timeline",
        "log_type": "Type",
        "occurred_at": "Date",
        "content": "Content",
        "participants": "Participants",
        "add_log": "Add record",
        "file_name": "File name",
        "size": "Size",
        "add_file": "Add file",
        "school": "School",
        "round": "Round",
        "result": "Result",
        "record_offer": "Record result",
        "tab_today": "Today",
        "tab_week": "This Week",
        "tab_overdue": "Overdue",
        "tab_review": "To Review",
        "tab_all": "All Tasks",
        "complete_selected": "Complete selected",
        "completed_n": "Completed tasks",
        "new_task": "New task",
        "due_date": "Due date",
        "seed_demo": "Reset demo data",
        "page_overview": "Student Overview",
        "page_recommendations": "Recommendations",
        "enrich_done": "Schools enriched",
        "ai_organize": "AI organize notes",
        "search_logs": "Search logs...",
        "risk_diagnosis": "Risk diagnosis",
        "run_diagnosis": "Run AI diagnosis",
        "apply_diagnosis": "Save to student profile",
        "recommender_name": "Recommender",
        "recommender_role": "Role / subject",
        "deadline": "Deadline",
        "highlights": "Brag sheet highlights",
        "polish": "AI polish brag sheet",
        "ai_polished": "AI polished",
        "letter_content": "Letter content",
        "new_request": "New request",
    },
    "zh": {
        "app_title": "CounselDesk - 留学规划顾问工作台",
        "subtitle": "学生档案、规划与申请一站式管理。",
        "language": "语言",
        "role": "当前身份",
        "role_counselor": "顾问",
        "role_student": "学生",
        "nav": "导航",
        "page_dashboard": "工作台",
        "page_students": "学生列表",
        "page_planning": "规划向导",
        "page_essays": "文书",
        "page_communication": "沟通记录",
        "page_materials": "材料",
        "page_offers": "录取追踪",
        "page_tasks": "任务中心",
        "student": "学生",
        "no_students": "暂无学生。",
        "risk_radar": "风险雷达",
        "total_risks": "风险总数",
        "phase_distribution": "阶段分布",
        "status_distribution": "状态分布",
        "search": "搜索",
        "search_students": "搜索姓名或学号",
        "risk": "风险",
        "grade": "年级",
        "direction": "方向",
        "phase": "阶段",
        "all": "全部",
        "add_student": "添加学生",
        "name": "姓名",
        "student_id": "学号",
        "save": "保存",
        "saved": "已保存。",
        "step_1": "1. 职业与专业规划",
        "step_2": "2. 目标设定",
        "step_3": "3. 选校匹配",
        "step_4": "4. 最终名单",
        "step_5": "5. 差距分析",
        "step_6": "6. 时间轴",
        "next": "下一步",
        "back": "上一步",
        "family_expectations": "家庭期望",
        "family_resources": "家庭资源",
        "interests": "兴趣",
        "abilities": "能力/成就",
        "intentions": "意向",
        "analyze_career": "AI 分析",
        "career_needs_family": "请先填写家庭期望与资源。",
        "ai_unavailable": "AI 分析暂时不可用，请稍后重试。",
        "add_target": "添加目标",
        "region": "地区",
        "majors": "专业",
        "add_major": "添加专业",
        "remove": "移除",
        "max_targets": "最多 3 个目标。",
        "gpa": "GPA",
        "toefl": "托福",
        "sat": "SAT",
        "tab_recommend": "推荐",
        "tab_search": "搜索",
        "regenerate": "刷新候选池",
        "search_schools": "搜索院校名称",
        "match_score": "匹配度",
        "win_rate": "录取率",
        "list_health": "名单结构",
        "reach": "冲刺",
        "match": "匹配",
        "safety": "保底",
        "enrich": "AI 补全信息",
        "enrich_all": "AI 批量补全",
        "all_enriched": "所有学校信息已完善，无需补全。",
        "enrich_failed": "AI 获取信息失败，请重试",
        "requirements": "申请要求",
        "deadlines": "截止日期",
        "process": "申请流程",
        "portal_link": "申请入口",
        "admission_advice": "录取建议",
        "gap_needs_schools": "差距分析需要基于已确认的目标院校。请先返回 Step 4。",
        "qualitative": "软背景分析",
        "generate_actions": "生成行动计划",
        "sync_timeline": "同步到时间轴",
        "synced": "已添加到时间轴",
        "course_diagnosis": "选课诊断",
        "courses": "当前课程（逗号分隔）",
        "unscheduled": "待排期任务池",
        "no_events": "本月无任务",
        "role_filter": "显示",
        "add_event": "添加任务",
        "title": "标题",
        "start_month": "开始月份 (YYYY-MM)",
        "end_month": "结束月份 (YYYY-MM)",
        "category": "类别",
        "status": "状态",
        "priority": "优先级",
        "assignee": "负责人",
        "move_to": "移动到",
        "toggle_done": "切换完成",
        "delete": "删除",
        "download_pdf": "下载 PDF 报告",
        "download_json": "下载 JSON 摘要",
        "essay": "文书",
        "word_count": "词",
        "save_version": "保存版本",
        "version_note": "版本备注",
        "note_required": "请输入版本备注",
        "restore": "回滚到此版本",
        "restored": "已回滚，当前内容已自动备份。",
        "brainstorm": "AI 构思",
        "scan": "AI 诊断",
        "apply": "应用",
        "context_keywords": "构思关键词",
        "versions": "版本演进",
        "log_type": "类型",
        "occurred_at": "日期",
        "content": "内容",
        "participants": "参与人",
        "add_log": "添加记录",
        "file_name": "文件名",
        "size": "大小",
        "add_file": "添加文件",
        "school": "学校",
        "round": "轮次",
        "result": "结果",
        "record_offer": "记录结果",
        "tab_today": "今日待办",
        "tab_week": "本周任务",
        "tab_overdue": "已逾期",
        "tab_review": "待审批",
        "tab_all": "全部任务",
        "complete_selected": "批量完成",
        "completed_n": "已完成任务数",
        "new_task": "新建任务",
        "due_date": "截止日期",
        "seed_demo": "重置演示数据",
        "page_overview": "学生概览",
        "page_recommendations": "推荐信",
        "enrich_done": "已补全学校数",
        "ai_organize": "AI 整理纪要",
        "search_logs": "搜索记录...",
        "risk_diagnosis": "风险诊断",
        "run_diagnosis": "AI 深度诊断",
        "apply_diagnosis": "同步到学生档案",
        "recommender_name": "推荐人",
        "recommender_role": "角色/学科",
        "deadline": "截止日期",
        "highlights": "Brag Sheet 素材",
        "polish": "AI 润色素材",
        "ai_polished": "已 AI 润色",
        "letter_content": "推荐信内容",
        "new_request": "新建推荐信申请",
    },
}


@st.cache_data
def get_i18n(language: str) -> dict[str, str]:
    return I18N.get(language, I18N["en"])


def t(language: str, key: str) -> str:
    return get_i18n(language).get(key, key)


def render_progress(step: int, total: int, labels: list[str] | None = None) -> None:
    pct = max(0.0, min(1.0, step / max(1, total)))
    caption = labels[step - 1] if labels and 0 < step <= len(labels) else f"Step {step}"
    st.progress(pct, text=f"{caption} ({step}/{total})")


def render_meter(label: str, pct: float, value_text: str | None = None) -> None:
    pct = max(0.0, min(1.0, pct))
    st.progress(pct, text=f"{label}: {value_text or f'{int(round(pct * 100))}%'}")


def render_university_row(uni: dict[str, Any], language: str) -> None:
    name = uni["name"] if language == "en" or not uni.get("cn_name") else f"{uni['name']} ({uni['cn_name']})"
    st.markdown(f"**#{uni['rank']} {name}** · {uni['region']}")
    st.caption(
        f"{t(language, 'match_score')} {uni['match_score']} · {t(language, 'win_rate')}: {uni['win_rate']} · {uni['reason']}"
    )


def render_metric_gap(metric: dict[str, Any], language: str) -> None:
    badge = ""
    if metric["status"] == "Met":
        badge = " ✅ Met" if language == "en" else " ✅ 达标"
    elif metric["status"] == "Gap":
        badge = f" ⚠️ Gap {metric['gap']}" if language == "en" else f" ⚠️ 差距 {metric['gap']}"
    st.markdown(f"**{metric['label']}**: {metric['current']}{badge}")
    render_meter(t(language, "reach"), metric["reach_pct"] / 100)
    render_meter(t(language, "student"), metric["current_pct"] / 100)
