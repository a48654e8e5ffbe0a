import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from scriptforge.types import EventKind, TrackerEvent

logger = logging.getLogger(__name__)


class TrackerCallback:
    """Interface for tracker observers.

    The tracker calls ``handle`` once per event, after the state change is
    committed. The default implementation routes to ``on_<event kind>``.
    """

    def handle(self, event: TrackerEvent) -> None:
        getattr(self, f"on_{event.kind.value}")(event)

    def on_step_started(self, event: TrackerEvent) -> None:
        pass

    def on_step_progress(self, event: TrackerEvent) -> None:
        pass

    def on_step_completed(self, event: TrackerEvent) -> None:
        pass

    def on_step_error(self, event: TrackerEvent) -> None:
        pass

    def on_complete(self, event: TrackerEvent) -> None:
        pass

    def on_reset(self, event: TrackerEvent) -> None:
        pass


class LoggingCallback(TrackerCallback):
    """Callback that logs step transitions and tracks how long each step ran."""

    def __init__(self) -> None:
        self.step_timings: Dict[str, float] = {}
        self._started: Dict[str, float] = {}

    def on_step_started(self, event: TrackerEvent) -> None:
        self._started[event.step_id] = time.monotonic()
        logger.info("Starting step", extra={"step": event.step_id})

    def on_step_completed(self, event: TrackerEvent) -> None:
        self._finish(event, "completed")

    def on_step_error(self, event: TrackerEvent) -> None:
        self._finish(event, "error")

    def on_complete(self, event: TrackerEvent) -> None:
        logger.info("Pipeline complete", extra={"steps": len(event.snapshot.steps)})

    def on_reset(self, event: TrackerEvent) -> None:
        self._started.clear()

    def _finish(self, event: TrackerEvent, status: str) -> None:
        start = self._started.pop(event.step_id, None)
        if start is None:
            logger.info("Finished step", extra={"step": event.step_id, "status": status})
            return
        duration = time.monotonic() - start
        self.step_timings[event.step_id] = duration
        logger.info("Finished step", extra={"step": event.step_id, "duration": duration, "status": status})


class HttpProgressReporter(TrackerCallback):
    """Callback that POSTs every tracker event to a UI endpoint.

    Events are queued and sent in order by a single background task; call
    ``close`` to flush the queue and release the HTTP session.
    """

    def __init__(
        self,
        ui_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
        report_progress: bool = True,
    ) -> None:
        self.ui_url = ui_url
        self.timeout = timeout
        self.report_progress = report_progress
        self.sent = 0
        self._session = session
        self._owns_session = session is None
        self._queue: Optional[asyncio.Queue[Dict[str, Any]]] = None
        self._worker: Optional[asyncio.Task[None]] = None

    def handle(self, event: TrackerEvent) -> None:
        if event.kind is EventKind.STEP_PROGRESS and not self.report_progress:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping progress event", extra={"event": event.kind.value})
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        self._queue.put_nowait(event.to_dict())
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain(self._queue, self._session), name="progress-reporter")

    async def _drain(self, queue: "asyncio.Queue[Dict[str, Any]]", session: aiohttp.ClientSession) -> None:
        while True:
            payload = await queue.get()
            try:
                await self._post(session, payload)
            finally:
                queue.task_done()

    async def _post(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> None:
        try:
            async with session.post(self.ui_url, json=payload) as response:
                if response.status >= 400:
                    logger.warning(
                        "Progress endpoint rejected update",
                        extra={"event": payload["event"], "status": response.status},
                    )
                    return
                self.sent += 1
        except (aiohttp.ClientError, asyncio.TimeoutError):
            logger.warning("Failed to deliver progress update", exc_info=True, extra={"event": payload["event"]})

    async def close(self) -> None:
        if self._queue is not None and self._worker is not None and not self._worker.done():
            await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
