import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Simulated progress stops once it is this close to the cap.
SETTLE_THRESHOLD = 0.01

TickHandler = Callable[[str, float], None]


def simulation_increment(duration: float, tick_interval: float) -> float:
    """Progress added per tick so that ``duration`` seconds would cover 0..100."""
    ticks = max(duration / tick_interval, 1.0)
    return 100.0 / ticks


def next_simulated_progress(current: float, increment: float, cap: float) -> float:
    """Advance simulated progress by one tick without ever reaching ``cap``.

    Each tick adds ``increment`` but never more than half of the remaining gap,
    so the value approaches the cap asymptotically. Once within
    ``SETTLE_THRESHOLD`` of the cap the value no longer moves.
    """
    if cap - current < SETTLE_THRESHOLD:
        return current
    return min(current + min(increment, (cap - current) / 2), math.nextafter(cap, 0.0))


@dataclass
class SimulationHandle:
    step_id: str
    increment: float
    progress: float = 0.0
    active: bool = True


class SimulationTimer:
    """Owns the single periodic task that feeds simulated progress to one step."""

    def __init__(self, tick_interval: float = 0.5, cap: float = 90.0) -> None:
        self.tick_interval = tick_interval
        self.cap = cap
        self._handle: Optional[SimulationHandle] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def step_id(self) -> Optional[str]:
        """Id of the step currently being simulated, if any."""
        if self._handle is not None and self._handle.active:
            return self._handle.step_id
        return None

    def owns(self, handle: SimulationHandle) -> bool:
        return handle.active and handle is self._handle

    def start(self, step_id: str, duration: float, on_tick: TickHandler) -> SimulationHandle:
        """Cancel any previous simulation and start ticking for ``step_id``.

        Raises RuntimeError when called outside a running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        handle = SimulationHandle(step_id=step_id, increment=simulation_increment(duration, self.tick_interval))
        self._handle = handle
        self._task = loop.create_task(self._run(handle, on_tick), name=f"simulate-{step_id}")
        logger.debug(
            "Started simulation",
            extra={"step": step_id, "duration": duration, "increment": handle.increment},
        )
        return handle

    def cancel(self) -> None:
        handle, task = self._handle, self._task
        self._handle = None
        self._task = None
        if handle is not None:
            handle.active = False
            logger.debug("Cancelled simulation", extra={"step": handle.step_id})
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, handle: SimulationHandle, on_tick: TickHandler) -> None:
        try:
            while self.owns(handle):
                await asyncio.sleep(self.tick_interval)
                if not self.owns(handle):
                    return
                handle.progress = next_simulated_progress(handle.progress, handle.increment, self.cap)
                on_tick(handle.step_id, handle.progress)
                if self.cap - handle.progress < SETTLE_THRESHOLD:
                    logger.debug("Simulation settled", extra={"step": handle.step_id})
                    break
        except Exception:
            logger.exception("Simulation tick failed", extra={"step": handle.step_id})
        finally:
            handle.active = False
            if handle is self._handle:
                self._handle = None
                self._task = None
