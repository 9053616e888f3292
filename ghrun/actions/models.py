"""
Action metadata and step data models.

Action mirrors the action.yml / action.yaml schema; Step mirrors a single
entry of ``jobs.<job_id>.steps``. Both round-trip through plain dicts with
the same hyphenated keys the YAML documents use.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .values import Bool, Float, String, value_to_json


class ActionStage(str, Enum):
    """Lifecycle stage of a step."""
    PRE = "pre"
    MAIN = "main"
    POST = "post"


class StepType(str, Enum):
    ACTION = "action"
    RUN = "run"
    UNKNOWN = "unknown"


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ActionRunsUsing(str, Enum):
    COMPOSITE = "composite"
    DOCKER = "docker"
    NODE12 = "node12"
    NODE16 = "node16"
    NODE20 = "node20"


NODE_RUNTIMES = {ActionRunsUsing.NODE12.value, ActionRunsUsing.NODE16.value, ActionRunsUsing.NODE20.value}


def _string_map(raw: Optional[Dict[str, Any]]) -> Dict[str, String]:
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"expected a mapping, got {type(raw).__name__}")
    return {str(k): String.parse(v) if v is not None else String() for k, v in raw.items()}


def _string_map_to_json(values: Dict[str, String]) -> Dict[str, Any]:
    return {k: v.to_json() for k, v in values.items()}


def _text(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw)


@dataclass
class ActionInput:
    description: Optional[String] = None
    default: Optional[String] = None
    required: Optional[Bool] = None
    deprecation_message: Optional[String] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ActionInput":
        data = data or {}
        return cls(
            description=String.parse(data.get('description')),
            default=String.parse(data.get('default')),
            required=Bool.parse(data.get('required')),
            deprecation_message=String.parse(data.get('deprecationMessage')),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'description': value_to_json(self.description),
            'default': value_to_json(self.default),
            'required': value_to_json(self.required),
            'deprecationMessage': value_to_json(self.deprecation_message),
        }
        return {k: v for k, v in result.items() if v is not None}


@dataclass
class ActionOutput:
    description: Optional[String] = None
    value: Optional[String] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ActionOutput":
        data = data or {}
        return cls(
            description=String.parse(data.get('description')),
            value=String.parse(data.get('value')),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'description': value_to_json(self.description),
            'value': value_to_json(self.value),
        }
        return {k: v for k, v in result.items() if v is not None}


@dataclass
class ActionRuns:
    """How the action is executed.

    main/pre/post are used by node actions, steps by composite actions and
    image/entrypoints/args by docker actions.
    """
    using: str = ""
    env: Dict[str, String] = field(default_factory=dict)
    main: str = ""
    pre: str = ""
    pre_if: Optional[String] = None
    post: str = ""
    post_if: Optional[String] = None
    steps: List["Step"] = field(default_factory=list)
    image: str = ""
    pre_entrypoint: str = ""
    entrypoint: str = ""
    post_entrypoint: str = ""
    args: List[String] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ActionRuns":
        data = data or {}
        return cls(
            using=_text(data.get('using')),
            env=_string_map(data.get('env')),
            main=_text(data.get('main')),
            pre=_text(data.get('pre')),
            pre_if=String.parse(data.get('pre-if')),
            post=_text(data.get('post')),
            post_if=String.parse(data.get('post-if')),
            steps=[Step.from_dict(s) for s in data.get('steps') or []],
            image=_text(data.get('image')),
            pre_entrypoint=_text(data.get('pre-entrypoint')),
            entrypoint=_text(data.get('entrypoint')),
            post_entrypoint=_text(data.get('post-entrypoint')),
            args=[String.parse(a) for a in data.get('args') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'using': self.using}
        if self.env:
            result['env'] = _string_map_to_json(self.env)
        for key, value in (
            ('main', self.main), ('pre', self.pre), ('post', self.post),
            ('image', self.image), ('pre-entrypoint', self.pre_entrypoint),
            ('entrypoint', self.entrypoint), ('post-entrypoint', self.post_entrypoint),
        ):
            if value:
                result[key] = value
        if self.pre_if is not None:
            result['pre-if'] = self.pre_if.to_json()
        if self.post_if is not None:
            result['post-if'] = self.post_if.to_json()
        if self.steps:
            result['steps'] = [s.to_dict() for s in self.steps]
        if self.args:
            result['args'] = [a.to_json() for a in self.args]
        return result

    def entrypoint_for(self, stage: ActionStage) -> str:
        """Entrypoint script for the stage, or '' when the action has none."""
        if self.using == ActionRunsUsing.DOCKER.value:
            return {
                ActionStage.PRE: self.pre_entrypoint,
                ActionStage.MAIN: self.entrypoint or self.image,
                ActionStage.POST: self.post_entrypoint,
            }[stage]
        return {
            ActionStage.PRE: self.pre,
            ActionStage.MAIN: self.main,
            ActionStage.POST: self.post,
        }[stage]


@dataclass
class Branding:
    color: Optional[String] = None
    icon: Optional[String] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Branding":
        data = data or {}
        return cls(color=String.parse(data.get('color')), icon=String.parse(data.get('icon')))

    def to_dict(self) -> Dict[str, Any]:
        result = {'color': value_to_json(self.color), 'icon': value_to_json(self.icon)}
        return {k: v for k, v in result.items() if v is not None}


@dataclass
class Action:
    """Metadata of an action loaded from action.yml or action.yaml."""
    name: Optional[String] = None
    author: Optional[String] = None
    description: Optional[String] = None
    inputs: Dict[str, ActionInput] = field(default_factory=dict)
    outputs: Dict[str, ActionOutput] = field(default_factory=dict)
    runs: ActionRuns = field(default_factory=ActionRuns)
    branding: Branding = field(default_factory=Branding)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        if not isinstance(data, dict):
            raise ValueError(f"action metadata must be a mapping, got {type(data).__name__}")
        return cls(
            name=String.parse(data.get('name')),
            author=String.parse(data.get('author')),
            description=String.parse(data.get('description')),
            inputs={str(k): ActionInput.from_dict(v) for k, v in (data.get('inputs') or {}).items()},
            outputs={str(k): ActionOutput.from_dict(v) for k, v in (data.get('outputs') or {}).items()},
            runs=ActionRuns.from_dict(data.get('runs')),
            branding=Branding.from_dict(data.get('branding')),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key in ('name', 'author', 'description'):
            value = getattr(self, key)
            if value is not None:
                result[key] = value.to_json()
        if self.inputs:
            result['inputs'] = {k: v.to_dict() for k, v in self.inputs.items()}
        if self.outputs:
            result['outputs'] = {k: v.to_dict() for k, v in self.outputs.items()}
        result['runs'] = self.runs.to_dict()
        branding = self.branding.to_dict()
        if branding:
            result['branding'] = branding
        return result


@dataclass
class Step:
    """A single step of a job: either ``uses`` an action or ``run``s a script."""
    id: str = ""
    if_condition: Optional[String] = None
    name: Optional[String] = None
    continue_on_error: Optional[Bool] = None
    timeout_minutes: Optional[Float] = None
    env: Dict[str, String] = field(default_factory=dict)
    uses: str = ""
    with_inputs: Dict[str, String] = field(default_factory=dict)
    run: str = ""
    shell: str = ""
    working_directory: str = ""

    @property
    def type(self) -> StepType:
        if self.uses:
            return StepType.ACTION
        if self.run:
            return StepType.RUN
        return StepType.UNKNOWN

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        if not isinstance(data, dict):
            raise ValueError(f"step must be a mapping, got {type(data).__name__}")
        return cls(
            id=_text(data.get('id')),
            if_condition=String.parse(data.get('if')),
            name=String.parse(data.get('name')),
            continue_on_error=Bool.parse(data.get('continue-on-error')),
            timeout_minutes=Float.parse(data.get('timeout-minutes')),
            env=_string_map(data.get('env')),
            uses=_text(data.get('uses')),
            with_inputs=_string_map(data.get('with')),
            run=_text(data.get('run')),
            shell=_text(data.get('shell')),
            working_directory=_text(data.get('working-directory')),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.id:
            result['id'] = self.id
        if self.if_condition is not None:
            result['if'] = self.if_condition.to_json()
        if self.name is not None:
            result['name'] = self.name.to_json()
        if self.continue_on_error is not None:
            result['continue-on-error'] = self.continue_on_error.to_json()
        if self.timeout_minutes is not None:
            result['timeout-minutes'] = self.timeout_minutes.to_json()
        if self.env:
            result['env'] = _string_map_to_json(self.env)
        if self.uses:
            result['uses'] = self.uses
        if self.with_inputs:
            result['with'] = _string_map_to_json(self.with_inputs)
        for key, value in (('run', self.run), ('shell', self.shell), ('working-directory', self.working_directory)):
            if value:
                result[key] = value
        return result

    def display_name(self) -> str:
        if self.name is not None and self.name.value:
            return self.name.value
        if self.uses:
            return self.uses
        first_line = self.run.strip().split('\n')[0] if self.run else ''
        return first_line or self.id

    def log_message(self, stage: ActionStage) -> str:
        """Header line shown before the step runs at the given stage."""
        if self.type == StepType.ACTION:
            prefix = {ActionStage.PRE: "Pre ", ActionStage.MAIN: "", ActionStage.POST: "Post "}[stage]
            if self.name is not None and self.name.value:
                return f"{prefix}{self.name.value}"
            return f"{prefix}Run {self.uses}"
        return f"Run {self.display_name()}"


@dataclass
class StepResult:
    """Outcome of a step. Conclusion and outcome are tracked separately."""
    outputs: Dict[str, str] = field(default_factory=dict)
    conclusion: Optional[StepStatus] = None
    outcome: Optional[StepStatus] = None

    def set_status(self, status: StepStatus) -> None:
        self.conclusion = status
        self.outcome = status

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StepResult":
        data = data or {}
        conclusion = data.get('conclusion')
        outcome = data.get('outcome')
        return cls(
            outputs={str(k): _text(v) for k, v in (data.get('outputs') or {}).items()},
            conclusion=StepStatus(conclusion) if conclusion else None,
            outcome=StepStatus(outcome) if outcome else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'outputs': dict(self.outputs),
            'conclusion': self.conclusion.value if self.conclusion else '',
            'outcome': self.outcome.value if self.outcome else '',
        }
