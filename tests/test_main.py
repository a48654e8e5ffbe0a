import io

import pytest
from aioresponses import aioresponses

from scriptforge.client import FunctionsConfig
from scriptforge.main import ConsoleCallback, build_parser, load_script, main, run
from scriptforge.tracker import ProgressTracker
from scriptforge.workflow import WorkflowConfig

BASE_URL = "https://project.supabase.co"
TRANSCRIPT = "A scraped transcript that is comfortably longer than fifty characters in total."

# ===== Test Fixtures =====


@pytest.fixture
def mocked():
    with aioresponses() as m:
        yield m


@pytest.fixture
def config():
    return FunctionsConfig(BASE_URL, api_key="anon-key")


# ===== Tests =====


def test_load_script_reads_files(tmp_path):
    path = tmp_path / "reference.txt"
    path.write_text("Script from disk", encoding="utf-8")
    assert load_script(f"@{path}") == "Script from disk"
    assert load_script("Inline script") == "Inline script"


def test_console_callback_prints_transitions():
    stream = io.StringIO()
    tracker = ProgressTracker([("a", "Analyzing"), ("b", "")], callbacks=[ConsoleCallback(stream)])
    tracker.start_step("a")
    tracker.complete_step("a")
    tracker.start_step("b")
    tracker.error_step("b", "boom")
    lines = stream.getvalue().splitlines()
    assert lines == [
        "[  0.0%] Analyzing...",
        "[ 50.0%] done: a",
        "[ 50.0%] b...",
        "[ 50.0%] failed: b: boom",
    ]


@pytest.mark.asyncio
async def test_run_generates_script(mocked, config):
    mocked.post(f"{BASE_URL}/functions/v1/scrape-youtube-script", payload={"success": True, "script": TRANSCRIPT})
    mocked.post(f"{BASE_URL}/functions/v1/analyze-scripts", payload={"success": True, "analysis": {}})
    mocked.post(
        f"{BASE_URL}/functions/v1/generate-script",
        payload={"success": True, "script": "Stop scrolling. Here is why.", "wordCount": 5},
    )
    args = build_parser().parse_args(
        ["--topic", "Cold brew", "--script", "Reference one", "--youtube", "https://youtu.be/xyz"]
    )
    stream = io.StringIO()
    code = await run(args, config=config, stream=stream, workflow_config=WorkflowConfig.instant())
    output = stream.getvalue()
    assert code == 0
    assert "Stop scrolling. Here is why." in output
    assert "YouTube: https://youtu.be/xyz..." in output
    assert "[100.0%] complete" in output


@pytest.mark.asyncio
async def test_run_reports_failures(mocked, config):
    mocked.post(f"{BASE_URL}/functions/v1/analyze-scripts", payload={"success": True, "analysis": {}})
    mocked.post(f"{BASE_URL}/functions/v1/generate-script", status=503, body="unavailable")
    args = build_parser().parse_args(["--topic", "Cold brew", "--script", "One", "--script", "Two"])
    stream = io.StringIO()
    code = await run(args, config=config, stream=stream, workflow_config=WorkflowConfig.instant())
    assert code == 1
    assert "failed: generating" in stream.getvalue()
    assert "Script generation failed" in stream.getvalue()


def test_main_requires_functions_url(monkeypatch, capsys):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.setattr("scriptforge.main.load_dotenv", lambda: None)
    assert main(["--topic", "Cold brew", "--script", "One", "--script", "Two"]) == 1
    assert "SUPABASE_URL is not set" in capsys.readouterr().out
