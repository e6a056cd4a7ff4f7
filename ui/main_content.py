# Main page for Drum Remover: search a song, pick a result, poll the job, play/download the drumless mix.
import html
import os
import sys
import time
from pathlib import Path

import streamlit as st

# Ensure repo root is on sys.path so `import drumless...` works under `streamlit run ui/main_content.py`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from drumless.client.backend import BackendClient  # noqa: E402
from drumless.client.poller import poll_until_terminal, status_message  # noqa: E402

API_BASE = os.getenv("API_BASE", "http://localhost:8000")
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "2"))

SESSION_KEYS = ("results", "step", "error", "download_url", "current", "history", "query")


def _client() -> BackendClient:
    return BackendClient(API_BASE)


def _status_badge(label: str, color: str) -> None:
    """Render a colored status badge."""
    st.markdown(
        f'<div style="background:{color};color:white;padding:6px 14px;border-radius:6px;'
        'display:inline-block;font-weight:500;">{}</div>'.format(html.escape(label)),
        unsafe_allow_html=True,
    )


def _reset() -> None:
    """Clear all client-side state (failed jobs are not revivable, so there is no retry-in-place)."""
    for key in SESSION_KEYS:
        if key == "history":
            continue
        st.session_state.pop(key, None)
    st.session_state.step = "idle"


def _run_job(track: dict) -> None:
    """Submit the track and poll until the job is terminal, drawing progress as it goes."""
    client = _client()
    status_box = st.empty()
    bar = st.progress(0)

    def on_update(view: dict) -> None:
        progress = view.get("progress")
        if isinstance(progress, int):
            bar.progress(min(max(progress, 0), 100))
        status_box.markdown(f"**{status_message(view)}**")

    try:
        status_box.markdown("**INITIATING DOWNLOAD...**")
        job_id = client.submit(track["id"], track["title"])
        final = poll_until_terminal(client.status, job_id, interval=POLL_INTERVAL_SECONDS, on_update=on_update)
    except Exception as err:
        st.session_state.step = "error"
        st.session_state.error = str(err) or "SYSTEM ERROR"
        return

    if final.get("status") == "completed":
        url = client.audio_url(final["downloadUrl"])
        st.session_state.step = "done"
        st.session_state.download_url = url
        history = st.session_state.setdefault("history", [])
        if not any(h["id"] == track["id"] for h in history):
            history.insert(0, {**track, "download_url": url, "timestamp": time.time()})
    else:
        st.session_state.step = "error"
        st.session_state.error = final.get("error") or "PROCESSING FAILED"


def _render_results() -> None:
    for track in st.session_state.get("results") or []:
        cols = st.columns([1, 3, 1])
        with cols[0]:
            if track.get("thumbnailUrl"):
                st.image(track["thumbnailUrl"], width="stretch")
        with cols[1]:
            st.markdown(f"**{track['title']}**  \n{track.get('channel', '')} · {track.get('duration', '')}")
        with cols[2]:
            if st.button("Remove drums", key=f"process_{track['id']}"):
                st.session_state.current = track
                st.session_state.step = "processing"
                st.rerun()


def _render_history() -> None:
    history = st.session_state.get("history") or []
    if not history:
        return
    st.markdown("---")
    st.markdown("**Session log**")
    for i, item in enumerate(history):
        if st.button(f"↺ {item['title']}", key=f"history_{i}"):
            st.session_state.step = "done"
            st.session_state.download_url = item["download_url"]
            st.session_state.current = item
            st.session_state.results = []
            st.rerun()


def run_main() -> None:
    st.set_page_config(page_title="Drum Remover", page_icon="🥁")
    st.title("DRUM REMOVER")
    st.session_state.setdefault("step", "idle")

    step = st.session_state.step
    busy = step == "processing"

    query = st.text_input("Song title", key="query", placeholder="ENTER SONG TITLE...", disabled=busy)
    if st.button("SEARCH", disabled=busy or not (query or "").strip()):
        try:
            st.session_state.results = _client().search(query.strip())
            st.session_state.step = "idle"
            st.session_state.error = None
        except Exception as err:
            st.session_state.step = "error"
            st.session_state.error = str(err) or "SEARCH FAILED"
        st.rerun()

    if step == "processing" and st.session_state.get("current"):
        _status_badge(f"Processing: {st.session_state.current['title']}", "#dc3545")
        _run_job(st.session_state.current)
        st.rerun()
    elif step == "done":
        _status_badge("✓ PROCESS COMPLETE", "#28a745")
        url = st.session_state.get("download_url")
        if url:
            st.audio(url)
            st.markdown(f"[Download]({url})")
        if st.button("Reset"):
            _reset()
            st.rerun()
    elif step == "error":
        st.error(st.session_state.get("error") or "SYSTEM ERROR")
        if st.button("Reset"):
            _reset()
            st.rerun()
    else:
        _render_results()

    _render_history()


if __name__ == "__main__":
    run_main()
