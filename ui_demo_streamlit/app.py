"""Streamlit demo UI for cognitive-engine."""

from __future__ import annotations

import asyncio
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from cognitive_engine.adapters import csv_adapter, json_adapter
from cognitive_engine.adaptation import adapt
from cognitive_engine.breakdown import BreakdownOrchestrator
from cognitive_engine.collaborators import InMemoryPersistence, ScriptedGenerator
from cognitive_engine.errors import ValidationError
from cognitive_engine.messages import user_message
from cognitive_engine.quota import QuotaManager
from cognitive_engine.schema import CognitiveState
from cognitive_engine.task_filter import filter_tasks

DEMO_USER = "streamlit-demo"


def _parse_tasks_from_path(file_path: str) -> list:
    suffix = Path(file_path).suffix.lower()
    if suffix == ".csv":
        return csv_adapter.parse(file_path)
    if suffix == ".json":
        return json_adapter.parse_tasks(file_path)
    raise ValueError("Unsupported file type. Please use .csv or .json")


def _parse_uploaded(uploaded_file) -> list:
    suffix = Path(uploaded_file.name).suffix.lower()
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as handle:
        handle.write(uploaded_file.getbuffer())
        temp_path = handle.name
    return _parse_tasks_from_path(temp_path)


async def _breakdown(task, state):
    persistence = InMemoryPersistence()
    persistence.create_user(DEMO_USER, reset_at=datetime.now(timezone.utc) + timedelta(days=30))
    # No live model in the demo: the call fails and the local plan is shown.
    orchestrator = BreakdownOrchestrator(QuotaManager(persistence, DEMO_USER), ScriptedGenerator([]))
    return await orchestrator.request_breakdown(task, state)


def run_engine(state: CognitiveState, tasks: list, include_completed: bool) -> dict[str, Any]:
    """Run adaptation and filtering and return a UI-friendly payload."""

    adaptation = adapt(state)
    visible = filter_tasks(tasks, adaptation.complexity_ceiling, include_completed)
    return {
        "adaptation": adaptation,
        "visible": visible,
        "hidden_count": len(tasks) - len(visible),
    }


def main() -> None:
    import streamlit as st

    st.set_page_config(page_title="Cognitive Engine Demo", layout="wide")
    st.title("Cognitive Engine — Streamlit Demo")

    with st.sidebar:
        st.header("Check-in")
        energy = st.slider("Energy", min_value=1, max_value=10, value=5)
        focus = st.slider("Focus", min_value=1, max_value=10, value=5)
        mood = st.slider("Mood", min_value=1, max_value=10, value=5)
        note = st.text_area("Note", value="", max_chars=500)
        uploaded = st.file_uploader("Upload task list", type=["csv", "json"])
        use_demo = st.checkbox("Load demo tasks", value=True)
        include_completed = st.checkbox("Show completed tasks", value=False)
        run = st.button("Check in", type="primary")

    if not run:
        st.info("Set how you feel in the sidebar and click **Check in**.")
        return

    try:
        state = CognitiveState(
            energy=energy, focus=focus, mood=mood, note=note, captured_at=datetime.now(timezone.utc)
        )
        if use_demo:
            tasks = csv_adapter.parse("examples/sample_tasks.csv")
        elif uploaded is not None:
            tasks = _parse_uploaded(uploaded)
        else:
            st.error("Please upload a CSV/JSON task list or enable 'Load demo tasks'.")
            return

        result = run_engine(state, tasks, include_completed)
        adaptation = result["adaptation"]

        st.subheader("A) Adaptation")
        c1, c2, c3, c4, c5 = st.columns(5)
        c1.metric("Tier", adaptation.tier.value)
        c2.metric("Complexity ceiling", adaptation.complexity_ceiling)
        c3.metric("Spacing", adaptation.spacing.value)
        c4.metric("Tone", adaptation.tone.value)
        c5.metric("Touch targets", adaptation.touch_target.value)

        st.subheader("B) Visible Tasks")
        st.table([json_adapter.task_to_dict(task) for task in result["visible"]] or [{"title": "Nothing right now"}])
        st.caption(f"{result['hidden_count']} task(s) saved for a better moment.")

        if result["visible"]:
            st.subheader("C) Breakdown")
            outcome = asyncio.run(_breakdown(result["visible"][0], state))
            if outcome.message:
                st.write(outcome.message)
            if outcome.breakdown is not None:
                st.table([{"step": s.title, "minutes": s.minutes} for s in outcome.breakdown.steps])
                if outcome.breakdown.encouragement:
                    st.write(outcome.breakdown.encouragement)

    except ValidationError as exc:
        st.error(user_message(exc, adapt(None).tone))
        st.caption(f"Field: {exc.field}")
    except Exception:
        st.error("Something went wrong while running the demo. Please verify the input format.")


if __name__ == "__main__":
    main()
