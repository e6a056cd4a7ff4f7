import sys
from pathlib import Path
import json
import pytest

# Ensure repo root is on sys.path so `import drumless...` works in tests
ROOT = Path(__file__).resolve().parents[1]
for _p in (ROOT, Path(__file__).resolve().parent):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from drumless.core.config import Settings  # noqa: E402
from pipeline_fakes import python_command  # noqa: E402


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


@pytest.fixture
def cfg(tmp_path) -> Settings:
    """Settings isolated from the environment: temp audio dir, no download strategy configured, fake separation tool."""
    return Settings(
        audio_dir=str(tmp_path / "audio"),
        serverless=False,
        backend_url="",
        download_api_key="",
        enable_ytdlp=False,
        download_proxy_url="",
        normalize_audio=False,
        separation_mode="two_stems",
        separation_timeout_seconds=30,
        job_timeout_seconds=120,
        demucs_command=python_command("fake_demucs.py"),
        demucs_model="htdemucs",
    )


@pytest.fixture(autouse=True)
def _clean_fake_tool_env(monkeypatch):
    for name in ("FAKE_DEMUCS_EXIT", "FAKE_DEMUCS_LAYOUT", "FAKE_DEMUCS_SLEEP", "FAKE_YTDLP_EXIT", "FAKE_YTDLP_BODY"):
        monkeypatch.delenv(name, raising=False)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      request_log = {"method": "...", "url": "...", "json": {...}}
      response_log = {"status_code": 200, "json": {...}}
      item._api_logs = [{"title": "...", "request": ..., "response": ...}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    # Only attach if pytest-html is installed/enabled
    extras = getattr(rep, "extras", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        req = entry.get("request", {})
        res = entry.get("response", {})

        html = f"""
        <div style="font-family: ui-monospace, SFMono-Regular, Menlo, Monaco, Consolas, monospace;">
          <h4 style="margin:8px 0;">{title}</h4>
          <details style="margin:6px 0;">
            <summary><b>Request</b></summary>
            <pre>{pretty_json(req)}</pre>
          </details>
          <details style="margin:6px 0;">
            <summary><b>Response</b></summary>
            <pre>{pretty_json(res)}</pre>
          </details>
        </div>
        """
        extras.append(html_extras.html(html))

    rep.extras = extras
