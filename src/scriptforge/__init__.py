from .callbacks import HttpProgressReporter, LoggingCallback, TrackerCallback
from .client import FunctionsClient, FunctionsConfig
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    InvalidStepsError,
    RemoteFunctionError,
    ScrapeError,
    ScriptForgeError,
    StepFailedError,
)
from .simulation import SimulationTimer
from .tracker import ProgressTracker, TrackerConfig, compute_overall_state
from .types import EventKind, OverallState, ProgressStep, StepDefinition, StepStatus, TrackerEvent, TrackerSnapshot
from .workflow import (
    GENERATION_STEPS,
    GenerationRequest,
    GenerationResult,
    ReferenceScraper,
    ScriptGenerationWorkflow,
    WorkflowConfig,
    run_tracked_step,
)

__all__ = [
    "ConfigurationError",
    "EventKind",
    "FunctionsClient",
    "FunctionsConfig",
    "GENERATION_STEPS",
    "GenerationRequest",
    "GenerationResult",
    "HttpProgressReporter",
    "InvalidRequestError",
    "InvalidStepsError",
    "LoggingCallback",
    "OverallState",
    "ProgressStep",
    "ProgressTracker",
    "ReferenceScraper",
    "RemoteFunctionError",
    "ScrapeError",
    "ScriptForgeError",
    "ScriptGenerationWorkflow",
    "SimulationTimer",
    "StepDefinition",
    "StepFailedError",
    "StepStatus",
    "TrackerCallback",
    "TrackerConfig",
    "TrackerEvent",
    "TrackerSnapshot",
    "WorkflowConfig",
    "compute_overall_state",
    "run_tracked_step",
]
