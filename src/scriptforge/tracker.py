import logging
from collections import deque
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from .callbacks import TrackerCallback
from .exceptions import InvalidStepsError
from .simulation import SimulationTimer
from .types import EventKind, OverallState, ProgressStep, StepDefinition, StepStatus, TrackerEvent, TrackerSnapshot

logger = logging.getLogger(__name__)

StepLike = Union[StepDefinition, Mapping[str, str], tuple[str, str]]


@dataclass
class TrackerConfig:
    """Configuration for progress tracking."""

    tick_interval: float = 0.5
    default_duration: float = 30.0
    simulation_cap: float = 90.0


def normalize_steps(steps: Iterable[StepLike]) -> tuple[StepDefinition, ...]:
    """Turn caller-supplied step definitions into validated StepDefinitions."""
    definitions: list[StepDefinition] = []
    seen: set[str] = set()
    for raw in steps:
        if isinstance(raw, StepDefinition):
            definition = raw
        elif isinstance(raw, Mapping):
            definition = StepDefinition(id=raw.get("id", ""), label=raw.get("label", ""))
        else:
            step_id, label = raw
            definition = StepDefinition(id=step_id, label=label)
        if not isinstance(definition.id, str) or not definition.id:
            raise InvalidStepsError("step ids must be non-empty strings")
        if definition.id in seen:
            raise InvalidStepsError("duplicate step id", definition.id)
        seen.add(definition.id)
        definitions.append(definition)
    if not definitions:
        raise InvalidStepsError("at least one step is required")
    return tuple(definitions)


def clamp_progress(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


def compute_overall_state(steps: Sequence[ProgressStep]) -> OverallState:
    """Mean progress over all steps and whether every step is completed."""
    if not steps:
        return OverallState(overall_progress=0.0, all_completed=False)
    total = sum(step.progress for step in steps)
    return OverallState(
        overall_progress=total / len(steps),
        all_completed=all(step.status is StepStatus.COMPLETED for step in steps),
    )


class ProgressTracker:
    """Tracks status and progress for a fixed, ordered list of pipeline steps.

    Every mutating operation is synchronous, ignores unknown step ids and
    returns the events it produced. Events are delivered to ``on_error`` /
    ``on_complete`` and to every registered callback after the state change
    is committed. Mutations made from inside a callback are applied at once,
    but their events are queued behind the event being delivered.
    """

    def __init__(
        self,
        steps: Iterable[StepLike],
        on_complete: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        callbacks: Optional[list[TrackerCallback]] = None,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self.definitions = normalize_steps(steps)
        self.config = config or TrackerConfig()
        self.on_complete = on_complete
        self.on_error = on_error
        self.callbacks: list[TrackerCallback] = callbacks or []
        self._positions = {definition.id: i for i, definition in enumerate(self.definitions)}
        self._timer = SimulationTimer(self.config.tick_interval, self.config.simulation_cap)
        self._pending_events: deque[TrackerEvent] = deque()
        self._dispatching = False
        self._closed = False
        self._init_state()

    def _init_state(self) -> None:
        self._steps = [ProgressStep.from_definition(definition) for definition in self.definitions]
        self._current_step_index = 0
        self._overall_progress = 0.0
        self._is_complete = False
        self._error: Optional[str] = None

    def add_callback(self, callback: TrackerCallback) -> None:
        self.callbacks.append(callback)

    @property
    def steps(self) -> tuple[ProgressStep, ...]:
        return tuple(self._steps)

    @property
    def current_step_index(self) -> int:
        return self._current_step_index

    @property
    def overall_progress(self) -> float:
        return self._overall_progress

    @property
    def is_complete(self) -> bool:
        return self._is_complete

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def simulating_step(self) -> Optional[str]:
        return self._timer.step_id

    @property
    def active_step(self) -> Optional[ProgressStep]:
        return next((step for step in self._steps if step.status is StepStatus.ACTIVE), None)

    def step(self, step_id: str) -> Optional[ProgressStep]:
        position = self._positions.get(step_id)
        return None if position is None else self._steps[position]

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            steps=tuple(self._steps),
            current_step_index=self._current_step_index,
            overall_progress=self._overall_progress,
            is_complete=self._is_complete,
            error=self._error,
        )

    def _lookup(self, step_id: str, operation: str) -> Optional[int]:
        position = self._positions.get(step_id)
        if position is None:
            logger.debug("Ignoring unknown step", extra={"step": step_id, "operation": operation})
        return position

    def start_step(self, step_id: str) -> list[TrackerEvent]:
        position = self._lookup(step_id, "start")
        if position is None:
            return []
        if self._steps[position].status.is_terminal:
            logger.debug("Ignoring start of finished step", extra={"step": step_id})
            return []
        self._timer.cancel()
        self._steps = [
            replace(step, status=StepStatus.ACTIVE, progress=0.0)
            if i == position
            else replace(step, status=StepStatus.PENDING)
            if step.status is StepStatus.ACTIVE
            else step
            for i, step in enumerate(self._steps)
        ]
        self._current_step_index = position
        return self._commit(EventKind.STEP_STARTED, step_id)

    def update_step_progress(self, step_id: str, progress: float) -> list[TrackerEvent]:
        position = self._lookup(step_id, "update")
        if position is None:
            return []
        self._steps[position] = replace(self._steps[position], progress=clamp_progress(progress))
        return self._commit(EventKind.STEP_PROGRESS, step_id)

    def complete_step(self, step_id: str) -> list[TrackerEvent]:
        position = self._lookup(step_id, "complete")
        if position is None:
            return []
        self._timer.cancel()
        step = self._steps[position]
        if step.status.is_terminal:
            return []
        self._steps[position] = replace(step, status=StepStatus.COMPLETED, progress=100.0)
        return self._commit(EventKind.STEP_COMPLETED, step_id)

    def error_step(self, step_id: str, message: str) -> list[TrackerEvent]:
        position = self._lookup(step_id, "error")
        if position is None:
            return []
        if self._steps[position].status is StepStatus.COMPLETED:
            # A finished step keeps its result, so is_complete never sits next to an errored step.
            logger.debug("Ignoring error on completed step", extra={"step": step_id, "error": message})
            return []
        if self._timer.step_id == step_id:
            self._timer.cancel()
        self._steps[position] = replace(self._steps[position], status=StepStatus.ERROR)
        self._error = message
        logger.warning("Step failed", extra={"step": step_id, "error": message})
        return self._commit(EventKind.STEP_ERROR, step_id, message)

    def simulate_progress(self, step_id: str, duration: Optional[float] = None) -> list[TrackerEvent]:
        """Start ``step_id`` and feed it time-based progress that stays below the cap.

        ``duration`` is in seconds and defaults to ``config.default_duration``.
        The ticks need a running event loop; without one the step is only started.
        """
        position = self._lookup(step_id, "simulate")
        if position is None:
            return []
        events = self.start_step(step_id)
        if self._steps[position].status is not StepStatus.ACTIVE:
            return events
        if self._closed:
            logger.debug("Tracker closed, not simulating", extra={"step": step_id})
            return events
        if duration is None:
            duration = self.config.default_duration
        try:
            self._timer.start(step_id, duration, self._on_simulated_tick)
        except RuntimeError:
            logger.warning("No running event loop, simulated progress disabled", extra={"step": step_id})
        return events

    def _on_simulated_tick(self, step_id: str, progress: float) -> None:
        self.update_step_progress(step_id, progress)

    def reset(self) -> list[TrackerEvent]:
        self._timer.cancel()
        self._init_state()
        return self._commit(EventKind.RESET)

    def _commit(self, kind: EventKind, step_id: Optional[str] = None, message: Optional[str] = None) -> list[TrackerEvent]:
        state = compute_overall_state(self._steps)
        self._overall_progress = state.overall_progress
        completed_now = state.all_completed and not self._is_complete
        if completed_now:
            self._is_complete = True
        snapshot = self.snapshot()
        events = [TrackerEvent(kind=kind, snapshot=snapshot, step_id=step_id, message=message)]
        if completed_now:
            events.append(TrackerEvent(kind=EventKind.COMPLETE, snapshot=snapshot))
        self._emit(events)
        return events

    def _emit(self, events: list[TrackerEvent]) -> None:
        self._pending_events.extend(events)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending_events:
                self._deliver(self._pending_events.popleft())
        finally:
            self._dispatching = False
            self._pending_events.clear()

    def _deliver(self, event: TrackerEvent) -> None:
        if event.kind is EventKind.STEP_ERROR and self.on_error is not None:
            self.on_error(event.message)
        elif event.kind is EventKind.COMPLETE and self.on_complete is not None:
            self.on_complete()
        for callback in self.callbacks:
            try:
                callback.handle(event)
            except Exception:
                logger.exception(
                    "Callback failed",
                    extra={"callback": type(callback).__name__, "event": event.kind.value},
                )

    def close(self) -> None:
        """Stop any running simulation. The tracker starts no new timers afterwards."""
        self._timer.cancel()
        self._closed = True

    async def aclose(self) -> None:
        self.close()
        for callback in self.callbacks:
            if hasattr(callback, "close") and callable(callback.close):
                await callback.close()

    def __enter__(self) -> "ProgressTracker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> "ProgressTracker":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
