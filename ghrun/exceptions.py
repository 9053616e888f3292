"""ghrun exceptions."""

from typing import List, Optional
from dataclasses import dataclass


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""
    exit_code: int = 2


class GhrunError(Exception):
    """Base class for all ghrun errors."""


class WorkflowValidationError(GhrunError):
    """Raised when a workflow, job or step document fails validation.

    Raised before any state mutation so the CLI can map it to an exit code.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.exit_code = 2

        messages = []
        for error in errors:
            if error.path:
                messages.append(f"Validation error at {error.path}: {error.message}")
            else:
                messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))


class StepRegistrationError(GhrunError):
    """Raised when a step cannot be added to or overridden in the run state."""


class StateError(GhrunError):
    """Raised when the persisted run state is inconsistent."""


class ActionResolutionError(GhrunError):
    """Raised when an action reference cannot be fetched or parsed."""


class ActionNotFoundError(ActionResolutionError):
    """Raised when no action.yml or action.yaml exists in the action root."""


class ExpressionError(GhrunError):
    """Raised when an expression cannot be parsed or evaluated."""


class FileCommandError(GhrunError):
    """Raised when a file command marker file is malformed."""


class StepFailedError(GhrunError):
    """Raised by the runner when a step fails at a stage and the run aborts."""

    def __init__(self, step_id: str, stage: str, message: Optional[str] = None):
        self.step_id = step_id
        self.stage = stage
        text = f"step {step_id} failed at {stage} stage"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
