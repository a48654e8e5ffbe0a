# types.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class StepStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.ERROR)


class EventKind(Enum):
    STEP_STARTED = "step_started"
    STEP_PROGRESS = "step_progress"
    STEP_COMPLETED = "step_completed"
    STEP_ERROR = "step_error"
    COMPLETE = "complete"
    RESET = "reset"


@dataclass(frozen=True)
class StepDefinition:
    id: str
    label: str = ""


@dataclass(frozen=True)
class ProgressStep:
    """A step definition plus the engine-owned status and progress."""

    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    progress: float = 0.0

    @classmethod
    def from_definition(cls, definition: StepDefinition) -> "ProgressStep":
        return cls(id=definition.id, label=definition.label)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status.value,
            "progress": self.progress,
        }


@dataclass(frozen=True)
class OverallState:
    overall_progress: float
    all_completed: bool


@dataclass(frozen=True)
class TrackerSnapshot:
    """Read-only view of a tracker at one point in time."""

    steps: tuple[ProgressStep, ...]
    current_step_index: int = 0
    overall_progress: float = 0.0
    is_complete: bool = False
    error: Optional[str] = None

    def step(self, step_id: str) -> Optional[ProgressStep]:
        return next((s for s in self.steps if s.id == step_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "current_step_index": self.current_step_index,
            "overall_progress": self.overall_progress,
            "is_complete": self.is_complete,
            "error": self.error,
        }


@dataclass(frozen=True)
class TrackerEvent:
    kind: EventKind
    snapshot: TrackerSnapshot
    step_id: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind.value,
            "step_id": self.step_id,
            "message": self.message,
            "snapshot": self.snapshot.to_dict(),
        }
