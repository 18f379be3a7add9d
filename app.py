"""PrepMaster CBT: candidate exam simulator."""
import sys
from datetime import datetime
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_results_for_candidate, get_supabase, list_exams
from cbt.database import DatabaseClient
from cbt.engine import start_session
from cbt.errors import EmptyExam, ExamNotFound, ResultPersistenceExhausted
from cbt.registry import SessionRegistry

OPTION_LABELS = "ABCDEFGHIJ"


@st.cache_resource
def get_exam_source() -> DatabaseClient:
    return DatabaseClient(get_supabase())


@st.cache_resource
def get_session_registry() -> SessionRegistry:
    """Shared by all browser sessions; keeps attempts alive across refreshes and polls them to expiry."""
    registry = SessionRegistry()
    registry.start_polling()
    return registry


def current_candidate_identity() -> str:
    """Identity comes from the sign-in field; authentication itself lives outside this app."""
    return st.session_state.get("candidate_identity", "").strip()


def format_time(seconds: int) -> str:
    hours, rest = divmod(max(0, seconds), 3600)
    m, s = divmod(rest, 60)
    if hours:
        return f"{hours}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def poll_session(controller):
    try:
        if controller.expiry_due:
            with st.spinner("Time is up. Submitting your exam..."):
                controller.poll()
        else:
            controller.poll()
    except ResultPersistenceExhausted:
        pass  # recorded on the controller, shown after rerun


@st.fragment(run_every=1)
def exam_timer(controller):
    """Polls the session clock once a second; expiry submits the exam."""
    poll_session(controller)
    if not controller.is_active:
        st.rerun()
    remaining = controller.remaining_seconds()
    st.metric("Time left", format_time(remaining))


st.set_page_config(page_title="PrepMaster CBT", layout="wide")
st.sidebar.title("PrepMaster CBT")
page = st.sidebar.radio("Navigate", ["Exam", "My Results"], label_visibility="collapsed")

st.sidebar.text_input("Candidate ID", key="candidate_identity")
registry = get_session_registry()

# ----- Exam -----
if page == "Exam":
    st.header("Exam")
    controller = st.session_state.get("exam_session")

    # A refresh drops session_state; pick the attempt up from the registry
    if controller is None and current_candidate_identity():
        controller = registry.active_for(current_candidate_identity())
        if controller is not None:
            st.session_state["exam_session"] = controller
            st.info("Resumed your exam in progress.")

    if controller is None:
        if not current_candidate_identity():
            st.info("Enter your candidate ID in the sidebar to begin.")
            st.stop()
        try:
            exams = list_exams().data or []
        except Exception as e:
            st.error(f"Could not load exams. Check DB and .env (SUPABASE_URL, SUPABASE_KEY). {e}")
            st.stop()
        if not exams:
            st.warning("No exams available yet.")
            st.stop()
        exam_id = st.selectbox(
            "Select exam",
            options=[e["id"] for e in exams],
            format_func=lambda x: next(f"{e['title']} ({format_time(e['duration_seconds'])})" for e in exams if e["id"] == x),
        )
        if st.button("Start exam", type="primary"):
            try:
                st.session_state["exam_session"] = registry.get_or_start(
                    current_candidate_identity(),
                    exam_id,
                    lambda: start_session(exam_id, get_exam_source(), current_candidate_identity, get_exam_source()),
                )
                st.rerun()
            except ExamNotFound:
                st.error(f"Exam {exam_id} no longer exists.")
            except EmptyExam:
                st.error("This exam has no questions yet.")
            except Exception as e:
                st.error(f"Failed to start exam: {e}")
        st.stop()

    # The exam may have run out while the page was away
    if controller.is_active:
        poll_session(controller)

    if controller.is_terminated:
        result = controller.result
        if controller.persistence_error is not None:
            st.error(
                "Your result could not be saved. Please contact an administrator "
                f"and quote session {controller.session_id}."
            )
        else:
            if result.terminated_by == "expired":
                st.warning("Time is up. Your exam was submitted automatically.")
            else:
                st.success("Exam submitted.")
            col1, col2, col3 = st.columns(3)
            with col1:
                st.metric("Score", f"{result.correct_count} / {result.total_questions}")
            with col2:
                st.metric("Percent", f"{result.percent_score}%")
            with col3:
                st.metric("Time taken", format_time(result.time_taken_seconds))
        if st.button("Start a new exam"):
            del st.session_state["exam_session"]
            st.rerun()
        st.stop()

    for w in controller.warnings:
        st.caption(f"Note: {w}")

    st.subheader(controller.exam.title)
    exam_timer(controller)

    n = len(controller.presentation)
    answered = controller.answered_count()
    st.sidebar.progress(answered / n if n else 0)
    st.sidebar.caption(f"{answered}/{n} answered")
    if controller.tracker.is_complete():
        st.sidebar.caption("All questions answered.")
    else:
        unanswered = controller.tracker.unanswered_positions()
        st.sidebar.caption("Unanswered: " + ", ".join(str(p + 1) for p in unanswered))

    q = controller.current_presented_question()
    idx = q.position
    st.subheader(f"Question {idx + 1} of {q.total}")
    st.write(q.text)

    # 0 = Skip, 1..N = A, B, C, ...
    opt_labels = ["— Skip —"] + [f"{OPTION_LABELS[i]}. {opt}" for i, opt in enumerate(q.options[:len(OPTION_LABELS)])]
    current_choice = 0 if q.selected_option is None else q.selected_option + 1
    choice_in_ui = st.radio(
        "Choose one:",
        range(len(opt_labels)),
        format_func=lambda i: opt_labels[i],
        key=f"q_{controller.session_id}_{idx}",
        index=current_choice,
    )
    if choice_in_ui != current_choice:
        if choice_in_ui == 0:
            controller.clear(idx)
        else:
            controller.select(idx, choice_in_ui - 1)

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("Previous", disabled=idx == 0):
            controller.previous()
            st.rerun()
    with col2:
        if st.button("Next", disabled=idx >= n - 1):
            controller.next()
            st.rerun()
    with col3:
        if st.button("Submit exam", type="primary"):
            with st.spinner("Submitting..."):
                try:
                    controller.request_manual_submit()
                except ResultPersistenceExhausted:
                    pass
            st.rerun()

# ----- My Results -----
elif page == "My Results":
    st.header("My Results")
    candidate = current_candidate_identity()
    if not candidate:
        st.info("Enter your candidate ID in the sidebar.")
        st.stop()
    try:
        rows = get_results_for_candidate(candidate).data or []
    except Exception as e:
        st.error(f"Could not load results: {e}")
        st.stop()
    if not rows:
        st.info("No recorded results yet.")
    for r in rows:
        submitted = datetime.fromtimestamp(r["submitted_at_epoch_seconds"]).strftime("%Y-%m-%d %H:%M")
        st.write(
            f"**{r['exam_id']}** · {r['correct_count']}/{r['total_questions']} "
            f"({r['percent_score']}%) · {format_time(r['time_taken_seconds'])} · {submitted}"
        )
