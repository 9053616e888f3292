"""State Manager for ghrun.

The run state is the single aggregate shared between the short-lived ghrun
invocations (``with step``, ``with job``, ``run``). It is loaded once at
process start, mutated in memory and saved once at process end.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from . import config
from .actions.context import Context
from .actions.models import Action, Step, StepResult, StepType
from .exceptions import StateError, StepRegistrationError, ValidationError, WorkflowValidationError

logger = logging.getLogger(__name__)


@dataclass
class ActionState:
    """A resolved action: where it came from, where it lives, its metadata."""
    source: str
    path: str
    metadata: Action

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "path": self.path,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionState":
        return cls(
            source=data["source"],
            path=data["path"],
            metadata=Action.from_dict(data.get("metadata") or {}),
        )


@dataclass
class StepState:
    """Unit the runner operates on: definition, result, private state, action."""
    step: Step
    result: StepResult = field(default_factory=StepResult)
    state: Dict[str, str] = field(default_factory=dict)
    action: Optional[Action] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "step": self.step.to_dict(),
            "result": self.result.to_dict(),
            "state": dict(self.state),
        }
        if self.action is not None:
            result["action"] = self.action.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepState":
        action = data.get("action")
        return cls(
            step=Step.from_dict(data.get("step") or {}),
            result=StepResult.from_dict(data.get("result")),
            state={str(k): str(v) for k, v in (data.get("state") or {}).items()},
            action=Action.from_dict(action) if action else None,
        )


def validate_step(step: Step) -> None:
    """Reject steps that are neither an action step nor a run step."""
    errors = []
    if step.uses and step.run:
        errors.append(ValidationError("step cannot define both 'uses' and 'run'", path=f"steps.{step.id or '?'}"))
    elif step.type == StepType.UNKNOWN:
        errors.append(ValidationError("step must define either 'uses' or 'run'", path=f"steps.{step.id or '?'}"))

    if errors:
        raise WorkflowValidationError(errors)


@dataclass
class RunState:
    """Complete run state persisted to state.json."""
    job_name: str = ""
    actions: Dict[str, ActionState] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    step_order: List[str] = field(default_factory=list)
    steps: Dict[str, StepState] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "job-name": self.job_name,
            "actions": {source: a.to_dict() for source, a in self.actions.items()},
            "env": dict(self.env),
            "step-order": list(self.step_order),
            "steps": {step_id: s.to_dict() for step_id, s in self.steps.items()},
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RunState":
        """Create RunState from dict. None or {} yields an empty state."""
        data = data or {}
        state = cls(
            job_name=data.get("job-name", ""),
            actions={k: ActionState.from_dict(v) for k, v in (data.get("actions") or {}).items()},
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            step_order=list(data.get("step-order") or []),
            steps={k: StepState.from_dict(v) for k, v in (data.get("steps") or {}).items()},
        )

        missing = [step_id for step_id in state.step_order if step_id not in state.steps]
        if missing:
            raise StateError(f"step-order references unknown steps: {', '.join(missing)}")

        return state

    def add_step(self, step: Step) -> StepState:
        """Register a new step; assigns the next sequential id when missing."""
        validate_step(step)

        if not step.id:
            step.id = str(len(self.steps))

        if step.id in self.steps:
            raise StepRegistrationError(f"step with id {step.id} already exists")

        step_state = StepState(step=step)
        self.step_order.append(step.id)
        self.steps[step.id] = step_state
        return step_state

    def override_step(self, step_id: str, step: Step) -> StepState:
        """Replace an existing step in place, resetting its result and state."""
        if not step_id:
            raise StepRegistrationError("step id must be provided to override")

        if step_id not in self.steps:
            raise StepRegistrationError(f"step with id {step_id} does not exist")

        validate_step(step)
        step.id = step_id

        step_state = StepState(step=step)
        self.steps[step_id] = step_state
        return step_state

    def add_workflow_and_job(self, job_name: str, workflow_env: Mapping[str, str],
                             job_env: Mapping[str, str], steps: List[Step]) -> None:
        """Register a job: merge workflow env under job env, then add its steps."""
        for step in steps:
            validate_step(step)

        self.job_name = job_name
        self.env.update(workflow_env)
        self.env.update(job_env)

        for step in steps:
            self.add_step(step)

    def get_step_state(self, step_id: str) -> Optional[StepState]:
        return self.steps.get(step_id)

    def get_action_state(self, source: str) -> Optional[ActionState]:
        return self.actions.get(source)

    def ordered_steps(self) -> List[StepState]:
        return [self.steps[step_id] for step_id in self.step_order]

    def build_context(self, environ: Optional[Mapping[str, str]] = None) -> Context:
        """Expression context: github/runner from environ, env and steps from state.

        Step results are copied, so a context never changes while a step runs.
        """
        context = Context.from_env(os.environ if environ is None else environ)
        context.env = dict(self.env)
        context.steps = {
            step_id: copy.deepcopy(step_state.result)
            for step_id, step_state in self.steps.items()
        }
        return context


class StateManager:
    """
    File-backed run state store.

    Usage::

        with StateManager() as state:
            state.add_step(step)

    The state is loaded on enter and saved on a clean exit.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = Path(state_file) if state_file else config.get_path(config.STATE_FILE)
        self.state: Optional[RunState] = None

    def load(self) -> RunState:
        """Load state from disk, creating an empty state file if absent."""
        config.ensure_file(self.state_file)
        data = config.read_json_file(self.state_file)
        self.state = RunState.from_dict(data)
        logger.debug(f"Loaded run state from {self.state_file} ({len(self.state.steps)} steps)")
        return self.state

    def save(self) -> None:
        if self.state is None:
            raise RuntimeError("No state to write")

        config.write_json_file(self.state_file, self.state.to_dict())
        logger.debug(f"Saved run state to {self.state_file}")

    def __enter__(self) -> RunState:
        return self.load()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.save()


class MemoryStateStore:
    """In-memory store with the StateManager interface, used in tests."""

    def __init__(self, state: Optional[RunState] = None):
        self._data = state.to_dict() if state else None
        self.state: Optional[RunState] = None
        self.saves = 0

    def load(self) -> RunState:
        self.state = RunState.from_dict(copy.deepcopy(self._data))
        return self.state

    def save(self) -> None:
        if self.state is None:
            raise RuntimeError("No state to write")
        self._data = self.state.to_dict()
        self.saves += 1

    def __enter__(self) -> RunState:
        return self.load()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.save()
