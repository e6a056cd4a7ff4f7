"""Unit tests for the external tool adapters: hosted API, yt-dlp CLI, proxy, subprocess helpers and the demucs runner."""
import shlex
import sys
import time

import pytest
import requests

from pipeline_fakes import FAKE_TOOLS, python_command
from drumless.adapters.demucs import DemucsSeparator
from drumless.adapters.download_api import HostedApiStrategy
from drumless.adapters.proxy import ProxyStrategy
from drumless.adapters.subprocess_utils import diagnostic_tail, parse_percent, run_tool
from drumless.adapters.ytdlp_cli import YtDlpStrategy
from drumless.core.errors import ErrorCode, PipelineError

MP3 = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\x00" * 64


class FakeResponse:
    def __init__(self, status_code=200, json_body=None, body=b"", content_type="application/json"):
        self.status_code = status_code
        self._json = json_body
        self._body = body
        self.headers = {"content-type": content_type}

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), 16):
            yield self._body[i:i + 16]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Answers GET/POST from a queue of FakeResponse objects and records the calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


# -------------------------
# Hosted API
# -------------------------

def test_hosted_api_requires_credential():
    ok, why = HostedApiStrategy("", "host.example").configured()
    assert not ok
    assert ErrorCode.MISSING_CREDENTIAL in why


def test_hosted_api_success(tmp_path):
    session = FakeSession(
        FakeResponse(json_body={"status": "ok", "link": "https://cdn.example/a.mp3"}),
        FakeResponse(body=MP3, content_type="audio/mpeg"),
    )
    strategy = HostedApiStrategy("key", "host.example", session=session)
    out = strategy.fetch("abc123", tmp_path / "input.mp3")
    assert out.read_bytes() == MP3
    method, url, kwargs = session.calls[0]
    assert url == "https://host.example/dl"
    assert kwargs["params"] == {"id": "abc123"}
    assert kwargs["headers"]["X-RapidAPI-Key"] == "key"
    assert session.calls[1][1] == "https://cdn.example/a.mp3"


@pytest.mark.parametrize(
    "first, code",
    [
        (FakeResponse(status_code=403, json_body={"message": "forbidden"}), ErrorCode.HTTP_STATUS),
        (FakeResponse(json_body={"status": "fail", "msg": "Invalid video id"}), ErrorCode.BAD_RESPONSE),
        (FakeResponse(json_body={"status": "processing"}), ErrorCode.BAD_RESPONSE),
        (FakeResponse(json_body={"status": "ok"}), ErrorCode.BAD_RESPONSE),
        (FakeResponse(json_body=None, body=b"oops", content_type="text/plain"), ErrorCode.BAD_RESPONSE),
        (requests.ConnectionError("refused"), ErrorCode.HTTP_STATUS),
    ],
)
def test_hosted_api_link_failures(tmp_path, first, code):
    strategy = HostedApiStrategy("key", "host.example", session=FakeSession(first))
    with pytest.raises(PipelineError) as exc:
        strategy.fetch("abc123", tmp_path / "input.mp3")
    assert exc.value.code == code


def test_hosted_api_link_serving_html_is_rejected(tmp_path):
    session = FakeSession(
        FakeResponse(json_body={"status": "ok", "link": "https://cdn.example/a.mp3"}),
        FakeResponse(body=b"<html>captcha</html>", content_type="text/html; charset=utf-8"),
    )
    with pytest.raises(PipelineError) as exc:
        HostedApiStrategy("key", "host.example", session=session).fetch("abc123", tmp_path / "input.mp3")
    assert exc.value.code == ErrorCode.NOT_MEDIA
    assert "text/html" in str(exc.value)


def test_hosted_api_link_serving_json_body_with_audio_type_is_rejected(tmp_path):
    session = FakeSession(
        FakeResponse(json_body={"status": "ok", "link": "https://cdn.example/a.mp3"}),
        FakeResponse(body=b'{"error": "Too many requests"}', content_type="audio/mpeg"),
    )
    with pytest.raises(PipelineError) as exc:
        HostedApiStrategy("key", "host.example", session=session).fetch("abc123", tmp_path / "input.mp3")
    assert exc.value.code == ErrorCode.NOT_MEDIA


# -------------------------
# Proxy
# -------------------------

def test_proxy_not_configured():
    ok, why = ProxyStrategy("").configured()
    assert not ok and "DOWNLOAD_PROXY_URL" in why


def test_proxy_posts_watch_url(tmp_path):
    session = FakeSession(FakeResponse(body=MP3, content_type="audio/mpeg"))
    out = ProxyStrategy("http://home:3001/", session=session).fetch("abc123", tmp_path / "input.mp3")
    assert out.exists()
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://home:3001/download")
    assert kwargs["json"] == {"url": "https://www.youtube.com/watch?v=abc123"}


def test_proxy_error_status(tmp_path):
    session = FakeSession(FakeResponse(status_code=500, body=b"Download failed", content_type="text/html"))
    with pytest.raises(PipelineError) as exc:
        ProxyStrategy("http://home:3001", session=session).fetch("abc123", tmp_path / "input.mp3")
    assert exc.value.code == ErrorCode.HTTP_STATUS


def test_proxy_empty_body(tmp_path):
    session = FakeSession(FakeResponse(body=b"", content_type="audio/mpeg"))
    with pytest.raises(PipelineError) as exc:
        ProxyStrategy("http://home:3001", session=session).fetch("abc123", tmp_path / "input.mp3")
    assert exc.value.code == ErrorCode.EMPTY_FILE


# -------------------------
# yt-dlp CLI
# -------------------------

def test_ytdlp_requires_opt_in():
    ok, why = YtDlpStrategy(False).configured()
    assert not ok and "ENABLE_YTDLP" in why
    assert YtDlpStrategy(True).configured() == (True, "")


def test_ytdlp_args(tmp_path):
    strategy = YtDlpStrategy(True, executable="/opt/yt-dlp", extra_args="--remote-components ejs:npm")
    args = strategy.build_args("abc123", tmp_path / "input.mp3")
    assert args[0] == "/opt/yt-dlp"
    assert args[1:3] == ["--remote-components", "ejs:npm"]
    assert "-x" in args and args[args.index("--audio-format") + 1] == "mp3"
    assert args[-1] == "https://www.youtube.com/watch?v=abc123"


def test_ytdlp_fetch_runs_tool(tmp_path):
    strategy = YtDlpStrategy(True, executable=sys.executable, extra_args=shlex.quote(str(FAKE_TOOLS / "fake_ytdlp.py")))
    out = strategy.fetch("abc123", tmp_path / "input.mp3")
    assert out.read_bytes().startswith(b"ID3")


def test_ytdlp_nonzero_exit(tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_YTDLP_EXIT", "1")
    strategy = YtDlpStrategy(True, executable=sys.executable, extra_args=shlex.quote(str(FAKE_TOOLS / "fake_ytdlp.py")))
    with pytest.raises(PipelineError) as exc:
        strategy.fetch("abc123", tmp_path / "input.mp3")
    assert exc.value.code == ErrorCode.TOOL_EXIT
    assert "exited with code 1" in str(exc.value)
    assert "not a bot" in str(exc.value)


# -------------------------
# Subprocess helpers
# -------------------------

def test_run_tool_missing_binary():
    with pytest.raises(PipelineError) as exc:
        run_tool(["definitely-not-a-real-binary-xyz"], timeout=5, label="thing")
    assert exc.value.code == ErrorCode.TOOL_MISSING


def test_run_tool_rejects_string_command():
    with pytest.raises(TypeError):
        run_tool("ls -la", timeout=5, label="ls")


def test_parse_percent():
    assert parse_percent(" 42%|####      | 42.0/100.0 [00:01<00:01, 4.33seconds/s]") == 42
    assert parse_percent("10%| 20%| 35%|") == 35
    assert parse_percent("no markers here") is None
    assert parse_percent("500% nonsense") is None


def test_diagnostic_tail_drops_progress_and_bounds_output():
    lines = [" 10%|#  | 1/10 [00:01<00:09, 1.00seconds/s]"] + [f"line {i}" for i in range(50)]
    tail = diagnostic_tail(lines, max_lines=5)
    assert "seconds/s" not in tail
    assert tail.splitlines() == [f"line {i}" for i in range(45, 50)]
    assert len(diagnostic_tail(["x" * 5000], max_chars=100)) == 103


# -------------------------
# Demucs runner
# -------------------------

def test_demucs_args_two_stems(tmp_path):
    sep = DemucsSeparator("python3 -m demucs", model="htdemucs_ft", segment=7, jobs=2, mp3_bitrate="192k")
    args = sep.build_args(tmp_path / "input.mp3", tmp_path / "sep")
    assert args[:3] == ["python3", "-m", "demucs"]
    assert args[args.index("--two-stems") + 1] == "drums"
    assert args[args.index("-n") + 1] == "htdemucs_ft"
    assert args[args.index("--segment") + 1] == "7"
    assert args[args.index("-j") + 1] == "2"
    assert args[args.index("--mp3-bitrate") + 1] == "192"
    assert args[-1] == str(tmp_path / "input.mp3")


def test_demucs_args_full_mode_has_no_two_stems(tmp_path):
    args = DemucsSeparator(mode="full").build_args(tmp_path / "in.wav", tmp_path / "sep")
    assert "--two-stems" not in args
    assert "--mp3" not in args and "--segment" not in args and "-j" not in args


def test_demucs_candidate_paths_order(tmp_path):
    sep = DemucsSeparator(model="mdx_extra")
    paths = sep.candidate_paths(tmp_path, "input", "no_drums")
    assert [str(p.relative_to(tmp_path)) for p in paths] == [
        "mdx_extra/input/no_drums.mp3",
        "mdx_extra/input/no_drums.wav",
        "htdemucs/input/no_drums.mp3",
        "htdemucs/input/no_drums.wav",
        "htdemucs_6s/input/no_drums.mp3",
        "htdemucs_6s/input/no_drums.wav",
    ]


def test_demucs_locates_stem_in_fallback_layout(tmp_path):
    stem_dir = tmp_path / "htdemucs_6s" / "input"
    stem_dir.mkdir(parents=True)
    (stem_dir / "no_drums.wav").write_bytes(b"RIFF")
    stems = DemucsSeparator(model="htdemucs").locate_stems(tmp_path, "input")
    assert stems["no_drums"] == stem_dir / "no_drums.wav"


def test_demucs_missing_stem_lists_directory(tmp_path):
    stem_dir = tmp_path / "htdemucs" / "input"
    stem_dir.mkdir(parents=True)
    (stem_dir / "drums.wav").write_bytes(b"RIFF")
    with pytest.raises(PipelineError) as exc:
        DemucsSeparator().locate_stems(tmp_path, "input")
    assert exc.value.code == ErrorCode.OUTPUT_NOT_FOUND
    assert "drums.wav" in str(exc.value)


def test_demucs_separate_reports_progress(tmp_path):
    source = tmp_path / "input.mp3"
    source.write_bytes(MP3)
    seen = []
    sep = DemucsSeparator(python_command("fake_demucs.py"))
    stems = sep.separate(source, tmp_path / "sep", timeout_seconds=30, on_progress=seen.append)
    assert stems["no_drums"].exists()
    assert seen == sorted(seen) and seen[-1] == 100
    assert 50 in seen


def test_demucs_separate_timeout(tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_DEMUCS_SLEEP", "10")
    source = tmp_path / "input.mp3"
    source.write_bytes(MP3)
    sep = DemucsSeparator(python_command("fake_demucs.py"))
    with pytest.raises(PipelineError) as exc:
        sep.separate(source, tmp_path / "sep", timeout_seconds=1)
    assert exc.value.code == ErrorCode.TOOL_TIMEOUT
    assert "timed out after 1s" in str(exc.value)


@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
def test_demucs_timeout_kills_wrapped_tool(tmp_path, monkeypatch):
    # the shell stays alive as the parent (no exec), like a "source venv && python -m demucs" wrapper
    monkeypatch.setenv("FAKE_DEMUCS_SLEEP", "3")
    source = tmp_path / "input.mp3"
    source.write_bytes(MP3)
    inner = python_command("fake_demucs.py") + ' "$@"; true'
    sep = DemucsSeparator(f"sh -c {shlex.quote(inner)} sh")

    started = time.monotonic()
    with pytest.raises(PipelineError) as exc:
        sep.separate(source, tmp_path / "sep", timeout_seconds=1)
    assert exc.value.code == ErrorCode.TOOL_TIMEOUT
    assert time.monotonic() - started < 3

    time.sleep(4)
    leftovers = [p for p in (tmp_path / "sep").rglob("*") if p.is_file()]
    assert leftovers == []
