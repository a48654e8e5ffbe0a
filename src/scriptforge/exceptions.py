from typing import Optional


class ScriptForgeError(Exception):
    """Base exception class for ScriptForge errors."""


class InvalidStepsError(ScriptForgeError):
    """Raised when a tracker is constructed with unusable step definitions."""

    def __init__(self, reason: str, step_id: Optional[str] = None) -> None:
        msg = f"Invalid step definitions: {reason}"
        if step_id is not None:
            msg += f" ('{step_id}')"
        super().__init__(msg)
        self.step_id = step_id


class ConfigurationError(ScriptForgeError):
    """Raised when required settings are missing."""


class RemoteFunctionError(ScriptForgeError):
    """Raised when a remote function call fails or reports failure."""

    def __init__(self, function_name: str, error: Optional[str] = None, status: Optional[int] = None) -> None:
        msg = f"Remote function '{function_name}' failed"
        if status is not None:
            msg += f" (HTTP {status})"
        if error:
            msg += f": {error}"
        super().__init__(msg)
        self.function_name = function_name
        self.error = error
        self.status = status


class ScrapeError(RemoteFunctionError):
    """Raised when a transcript could not be extracted from a video."""


class InvalidRequestError(ScriptForgeError):
    """Raised when a generation request fails validation."""


class StepFailedError(ScriptForgeError):
    """Raised when a tracked step fails."""

    def __init__(self, step_id: str, error: Optional[str] = None) -> None:
        msg = f"Step '{step_id}' failed"
        if error:
            msg += f": {error}"
        super().__init__(msg)
        self.step_id = step_id
