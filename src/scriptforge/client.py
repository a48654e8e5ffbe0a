import asyncio
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

import aiohttp

from .exceptions import ConfigurationError, InvalidRequestError, RemoteFunctionError, ScrapeError

logger = logging.getLogger(__name__)

SCRAPE_FUNCTION = "scrape-youtube-script"
ANALYZE_FUNCTION = "analyze-scripts"
GENERATE_FUNCTION = "generate-script"

YOUTUBE_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+")
MIN_TRANSCRIPT_LENGTH = 50


@dataclass
class FunctionsConfig:
    """Connection settings for the remote script functions."""

    base_url: str
    api_key: str = ""
    timeout: float = 60.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FunctionsConfig":
        env = os.environ if environ is None else environ
        base_url = env.get("SUPABASE_URL", "")
        if not base_url:
            raise ConfigurationError("SUPABASE_URL is not set")
        return cls(
            base_url=base_url.rstrip("/"),
            api_key=env.get("SUPABASE_ANON_KEY", ""),
            timeout=float(env.get("SCRIPTFORGE_TIMEOUT", cls.timeout)),
        )

    def function_url(self, name: str) -> str:
        return f"{self.base_url.rstrip('/')}/functions/v1/{name}"


class FunctionsClient:
    """Async client for the scrape, analyze and generate functions."""

    def __init__(self, config: FunctionsConfig, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.config = config
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "FunctionsClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.timeout))
        return self._session

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            return {}
        return {"Authorization": f"Bearer {self.config.api_key}", "apikey": self.config.api_key}

    async def invoke(self, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Call a remote function and return its JSON body.

        Raises RemoteFunctionError on transport errors, HTTP errors and bodies
        that do not report ``success``.
        """
        session = self._get_session()
        logger.info("Invoking remote function", extra={"function": name})
        try:
            async with session.post(self.config.function_url(name), json=body, headers=self._headers()) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise RemoteFunctionError(name, text or response.reason, status=response.status)
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RemoteFunctionError(name, str(e) or e.__class__.__name__) from e

        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise RemoteFunctionError(name, error or "function reported failure")
        return data

    async def scrape_youtube_script(self, url: str) -> str:
        url = url.strip()
        if not YOUTUBE_URL_PATTERN.match(url):
            raise InvalidRequestError(f"Not a valid YouTube URL: {url}")
        data = await self.invoke(SCRAPE_FUNCTION, {"url": url, "platform": "youtube"})
        script = data.get("script") or ""
        if len(script) <= MIN_TRANSCRIPT_LENGTH:
            raise ScrapeError(SCRAPE_FUNCTION, "No meaningful transcript found for this video")
        logger.info("Extracted transcript", extra={"url": url, "length": len(script)})
        return script

    async def analyze_scripts(self, scripts: Sequence[str], video_format: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data = await self.invoke(ANALYZE_FUNCTION, {"scripts": list(scripts), "videoFormat": video_format or {}})
        return data.get("analysis") or {}

    async def generate_script(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.invoke(GENERATE_FUNCTION, payload)
