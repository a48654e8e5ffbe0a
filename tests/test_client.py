import aiohttp
import pytest
from aioresponses import aioresponses

from scriptforge.client import FunctionsClient, FunctionsConfig
from scriptforge.exceptions import ConfigurationError, InvalidRequestError, RemoteFunctionError, ScrapeError

BASE_URL = "https://project.supabase.co"
GENERATE_URL = f"{BASE_URL}/functions/v1/generate-script"
SCRAPE_URL = f"{BASE_URL}/functions/v1/scrape-youtube-script"
ANALYZE_URL = f"{BASE_URL}/functions/v1/analyze-scripts"

TRANSCRIPT = "Here is a long enough transcript that easily clears the fifty character minimum."


# ===== Test Fixtures =====


@pytest.fixture
def mocked():
    with aioresponses() as m:
        yield m


def make_client():
    return FunctionsClient(FunctionsConfig(BASE_URL, api_key="anon-key"))


def posted(mocked, url):
    """Requests aioresponses recorded as POSTs to ``url``."""
    return [
        call
        for (method, request_url), calls in mocked.requests.items()
        if method == "POST" and str(request_url) == url
        for call in calls
    ]


# ===== Config =====


def test_config_from_env():
    config = FunctionsConfig.from_env(
        {"SUPABASE_URL": BASE_URL + "/", "SUPABASE_ANON_KEY": "anon-key", "SCRIPTFORGE_TIMEOUT": "12"}
    )
    assert config.base_url == BASE_URL
    assert config.api_key == "anon-key"
    assert config.timeout == 12.0
    assert config.function_url("generate-script") == GENERATE_URL


def test_config_from_env_requires_url():
    with pytest.raises(ConfigurationError):
        FunctionsConfig.from_env({})


# ===== Invoke =====


@pytest.mark.asyncio
async def test_invoke_returns_body_and_sends_auth(mocked):
    async with make_client() as client:
        mocked.post(GENERATE_URL, payload={"success": True, "script": "Hook. Story. CTA.", "wordCount": 3})
        data = await client.invoke("generate-script", {"topic": "coffee"})
        assert data["script"] == "Hook. Story. CTA."
        request = posted(mocked, GENERATE_URL)[0]
        assert request.kwargs["json"] == {"topic": "coffee"}
        assert request.kwargs["headers"]["Authorization"] == "Bearer anon-key"
        assert request.kwargs["headers"]["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test_invoke_http_error(mocked):
    async with make_client() as client:
        mocked.post(GENERATE_URL, status=500, body="upstream exploded")
        with pytest.raises(RemoteFunctionError) as excinfo:
            await client.invoke("generate-script", {})
        assert excinfo.value.status == 500
        assert "upstream exploded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_invoke_reported_failure(mocked):
    async with make_client() as client:
        mocked.post(GENERATE_URL, payload={"success": False, "error": "quota exceeded"})
        with pytest.raises(RemoteFunctionError) as excinfo:
            await client.invoke("generate-script", {})
        assert excinfo.value.error == "quota exceeded"
        assert excinfo.value.function_name == "generate-script"


@pytest.mark.asyncio
async def test_invoke_transport_error(mocked):
    async with make_client() as client:
        mocked.post(GENERATE_URL, exception=aiohttp.ClientConnectionError("connection refused"))
        with pytest.raises(RemoteFunctionError) as excinfo:
            await client.invoke("generate-script", {})
        assert isinstance(excinfo.value.__cause__, aiohttp.ClientConnectionError)


# ===== Wrappers =====


@pytest.mark.asyncio
async def test_scrape_youtube_script(mocked):
    async with make_client() as client:
        mocked.post(SCRAPE_URL, payload={"success": True, "script": TRANSCRIPT})
        script = await client.scrape_youtube_script(" https://youtu.be/abc123 ")
        assert script == TRANSCRIPT
        request = posted(mocked, SCRAPE_URL)[0]
        assert request.kwargs["json"] == {"url": "https://youtu.be/abc123", "platform": "youtube"}


@pytest.mark.asyncio
async def test_scrape_rejects_non_youtube_urls(mocked):
    async with make_client() as client:
        with pytest.raises(InvalidRequestError):
            await client.scrape_youtube_script("https://vimeo.com/123")
        assert not mocked.requests


@pytest.mark.asyncio
async def test_scrape_rejects_short_transcripts(mocked):
    async with make_client() as client:
        mocked.post(SCRAPE_URL, payload={"success": True, "script": "too short"})
        with pytest.raises(ScrapeError):
            await client.scrape_youtube_script("https://www.youtube.com/watch?v=abc")


@pytest.mark.asyncio
async def test_analyze_scripts_returns_analysis(mocked):
    async with make_client() as client:
        analysis = {"scriptAnalyses": [{"hook": "question"}], "synthesis": {"commonTactics": ["curiosity gap"]}}
        mocked.post(ANALYZE_URL, payload={"success": True, "analysis": analysis})
        result = await client.analyze_scripts(["one", "two"], {"platform": "tiktok"})
        assert result == analysis
        request = posted(mocked, ANALYZE_URL)[0]
        assert request.kwargs["json"] == {"scripts": ["one", "two"], "videoFormat": {"platform": "tiktok"}}
