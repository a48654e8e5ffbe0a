import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Optional, Sequence, TypeVar

from .callbacks import TrackerCallback
from .client import FunctionsClient, GENERATE_FUNCTION
from .exceptions import InvalidRequestError, RemoteFunctionError, StepFailedError
from .tracker import ProgressTracker, TrackerConfig
from .types import StepDefinition, TrackerSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_SCRIPTS = 2
MAX_SCRIPTS = 8

GENERATION_STEPS = (
    StepDefinition("analyzing", "Analyzing reference scripts and viral tactics"),
    StepDefinition("generating", "Generating script"),
    StepDefinition("validating", "Validating content quality and uniqueness"),
    StepDefinition("finalizing", "Finalizing and formatting your script"),
)


async def run_tracked_step(
    tracker: ProgressTracker,
    step_id: str,
    operation: Awaitable[T],
    duration: Optional[float] = None,
) -> T:
    """Await ``operation`` while ``step_id`` is shown as running.

    With a ``duration`` the step gets simulated progress until the operation
    resolves. A failure marks the step as errored and raises StepFailedError.
    Cancellation also marks the step as errored, which stops its simulation,
    and then propagates.
    """
    if duration is None:
        tracker.start_step(step_id)
    else:
        tracker.simulate_progress(step_id, duration)
    try:
        result = await operation
    except asyncio.CancelledError:
        tracker.error_step(step_id, "cancelled")
        raise
    except Exception as e:
        tracker.error_step(step_id, str(e))
        raise StepFailedError(step_id, str(e)) from e
    tracker.complete_step(step_id)
    return result


@dataclass
class StepTiming:
    duration: float
    pause: float = 0.0


@dataclass
class WorkflowConfig:
    """Simulated durations and local pauses for each generation step, in seconds."""

    analyzing: StepTiming = field(default_factory=lambda: StepTiming(3.0, 2.0))
    generating: StepTiming = field(default_factory=lambda: StepTiming(30.0))
    validating: StepTiming = field(default_factory=lambda: StepTiming(1.0, 0.5))
    finalizing: StepTiming = field(default_factory=lambda: StepTiming(0.5, 0.3))

    @classmethod
    def instant(cls) -> "WorkflowConfig":
        return cls(*(StepTiming(0.0) for _ in range(4)))


@dataclass
class GenerationRequest:
    topic: str
    scripts: list[str]
    description: str = ""
    call_to_action: str = ""
    video_format: Dict[str, Any] = field(default_factory=dict)
    analysis: Optional[Dict[str, Any]] = None

    @property
    def filled_scripts(self) -> list[str]:
        return [script for script in self.scripts if script.strip()]

    def validate(self) -> None:
        if not self.topic or not self.topic.strip():
            raise InvalidRequestError("A video topic is required")
        count = len(self.filled_scripts)
        if count < MIN_SCRIPTS:
            raise InvalidRequestError(f"At least {MIN_SCRIPTS} reference scripts are required, got {count}")
        if count > MAX_SCRIPTS:
            raise InvalidRequestError(f"At most {MAX_SCRIPTS} reference scripts are supported, got {count}")

    @property
    def target_audience(self) -> str:
        topic = self.topic.strip()
        platform = self.video_format.get("platform")
        if platform == "youtube":
            return f"YouTube viewers interested in {topic}"
        if platform == "tiktok":
            return f"TikTok users interested in {topic}"
        return f"Social media users interested in {topic}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "topic": self.topic.strip(),
            "description": self.description.strip(),
            "targetAudience": self.target_audience,
            "analysis": self.analysis,
            "scripts": self.filled_scripts,
            "callToAction": self.call_to_action.strip(),
            "videoFormat": self.video_format,
            "targetWordCount": self.video_format.get("targetWordCount"),
        }


@dataclass
class GenerationResult:
    script: str
    word_count: Optional[int]
    data: Dict[str, Any]
    snapshot: TrackerSnapshot


def summarize_analysis(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten the analyze function's response into what generation expects."""
    synthesis = analysis.get("synthesis") or {}
    return {
        "scriptAnalyses": analysis.get("scriptAnalyses", []),
        "synthesizedTactics": synthesis.get("commonTactics", []),
        "blueprint": synthesis.get("blueprint"),
        "insights": synthesis.get("insights", []),
    }


class ScriptGenerationWorkflow:
    """Generates a script through the remote functions while driving a tracker.

    Steps run in order: analyzing, generating, validating, finalizing. The
    remote generation call gets simulated progress since it reports none.
    """

    def __init__(
        self,
        client: FunctionsClient,
        tracker: Optional[ProgressTracker] = None,
        config: Optional[WorkflowConfig] = None,
        callbacks: Optional[list[TrackerCallback]] = None,
    ) -> None:
        self.client = client
        self.config = config or WorkflowConfig()
        self._owns_tracker = tracker is None
        self.tracker = tracker or ProgressTracker(GENERATION_STEPS, callbacks=callbacks)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        request.validate()
        self.tracker.reset()
        timing = self.config

        await run_tracked_step(self.tracker, "analyzing", self._analyze(request), timing.analyzing.duration)
        data = await run_tracked_step(
            self.tracker,
            "generating",
            self.client.generate_script(request.to_payload()),
            timing.generating.duration,
        )
        await run_tracked_step(self.tracker, "validating", self._validate(data), timing.validating.duration)
        await run_tracked_step(
            self.tracker, "finalizing", asyncio.sleep(timing.finalizing.pause), timing.finalizing.duration
        )

        script = data.get("script", "")
        word_count = data.get("wordCount")
        logger.info("Generated script", extra={"topic": request.topic, "word_count": word_count})
        return GenerationResult(script=script, word_count=word_count, data=data, snapshot=self.tracker.snapshot())

    async def aclose(self) -> None:
        """Close the tracker if this workflow created it."""
        if self._owns_tracker:
            await self.tracker.aclose()

    async def __aenter__(self) -> "ScriptGenerationWorkflow":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _analyze(self, request: GenerationRequest) -> None:
        if request.analysis is None:
            analysis = await self.client.analyze_scripts(request.filled_scripts, request.video_format)
            request.analysis = summarize_analysis(analysis)
        await asyncio.sleep(self.config.analyzing.pause)

    async def _validate(self, data: Dict[str, Any]) -> None:
        script = data.get("script")
        if not isinstance(script, str) or not script.strip():
            raise RemoteFunctionError(GENERATE_FUNCTION, "returned an empty script")
        await asyncio.sleep(self.config.validating.pause)


class ReferenceScraper:
    """Pulls reference scripts from YouTube transcripts, one tracked step per URL."""

    def __init__(
        self,
        client: FunctionsClient,
        callbacks: Optional[list[TrackerCallback]] = None,
        duration: float = 10.0,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self.client = client
        self.callbacks = callbacks or []
        self.duration = duration
        self.config = config
        self.tracker: Optional[ProgressTracker] = None

    def build_tracker(self, urls: Sequence[str]) -> ProgressTracker:
        steps = [StepDefinition(f"scrape-{i}", f"YouTube: {url}") for i, url in enumerate(urls, start=1)]
        return ProgressTracker(steps, callbacks=list(self.callbacks), config=self.config)

    async def scrape(self, urls: Sequence[str]) -> list[str]:
        if not urls:
            return []
        self.tracker = self.build_tracker(urls)
        scripts = []
        with self.tracker as tracker:
            for definition, url in zip(tracker.definitions, urls):
                script = await run_tracked_step(
                    tracker, definition.id, self.client.scrape_youtube_script(url), self.duration
                )
                scripts.append(script)
        return scripts
