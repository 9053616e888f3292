"""Workflow loader: reads .github/workflows and looks up jobs and steps."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .actions.models import Step
from .actions.values import String
from .exceptions import ValidationError, WorkflowValidationError

logger = logging.getLogger(__name__)

WORKFLOWS_DIR = ".github/workflows"
WORKFLOW_SUFFIXES = (".yml", ".yaml")


class PreservingLoader(yaml.SafeLoader):
    """Custom YAML loader that preserves string keys like 'on' instead of converting to bool."""
    pass


# Drop the implicit bool resolvers for 'on'/'off' so the workflow trigger key stays a string
PreservingLoader.yaml_implicit_resolvers = dict(PreservingLoader.yaml_implicit_resolvers)
for _first in ('o', 'O'):
    if _first in PreservingLoader.yaml_implicit_resolvers:
        PreservingLoader.yaml_implicit_resolvers[_first] = [
            (tag, regexp) for tag, regexp in PreservingLoader.yaml_implicit_resolvers[_first]
            if tag != 'tag:yaml.org,2002:bool'
        ]


def _string_env(raw: Any, path: str, errors: List[ValidationError]) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        errors.append(ValidationError("'env' must be a mapping", path=path))
        return {}
    return {str(k): String.parse(v).to_json() if v is not None else "" for k, v in raw.items()}


@dataclass
class Job:
    """A job of a workflow; only what the runner needs."""
    id: str
    name: str = ""
    env: Dict[str, str] = field(default_factory=dict)
    steps: List[Step] = field(default_factory=list)


@dataclass
class Workflow:
    name: str
    path: str
    env: Dict[str, str] = field(default_factory=dict)
    jobs: Dict[str, Job] = field(default_factory=dict)


class WorkflowLoader:
    """Loads GitHub workflow files. Only env, jobs and steps are interpreted."""

    def __init__(self, root: Optional[Path] = None):
        self.root = (root or Path.cwd()).resolve()
        self.errors: List[ValidationError] = []

    def load_all(self, directory: Optional[Path] = None) -> Dict[str, Workflow]:
        """
        Load every workflow in directory, keyed by workflow name.

        Workflows without a name are keyed by their path relative to the root.
        """
        workflows_dir = Path(directory) if directory else self.root / WORKFLOWS_DIR
        if not workflows_dir.is_absolute():
            workflows_dir = self.root / workflows_dir

        workflows: Dict[str, Workflow] = {}
        if not workflows_dir.is_dir():
            logger.debug(f"No workflows directory at {workflows_dir}")
            return workflows

        for path in sorted(workflows_dir.iterdir()):
            if path.suffix not in WORKFLOW_SUFFIXES or not path.is_file():
                continue
            workflow = self.load(path)
            workflows[workflow.name or workflow.path] = workflow

        return workflows

    def load(self, workflow_path: Path) -> Workflow:
        """Load a single workflow file."""
        self.errors = []

        try:
            relative = str(workflow_path.resolve().relative_to(self.root))
        except ValueError:
            relative = str(workflow_path)

        try:
            with open(workflow_path, 'r') as f:
                data = yaml.load(f, Loader=PreservingLoader)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load workflow: {e}", relative)
            self._raise_validation_errors()

        if not isinstance(data, dict):
            self._add_error("Workflow must be a YAML object/dictionary", relative)
            self._raise_validation_errors()

        workflow = Workflow(
            name=str(data.get('name') or ""),
            path=relative,
            env=_string_env(data.get('env'), f"{relative}.env", self.errors),
        )

        jobs = data.get('jobs') or {}
        if not isinstance(jobs, dict):
            self._add_error("'jobs' must be a mapping", f"{relative}.jobs")
            jobs = {}

        for job_id, job_data in jobs.items():
            job = self._load_job(str(job_id), job_data, f"{relative}.jobs.{job_id}")
            if job is not None:
                workflow.jobs[job.id] = job

        if self.errors:
            self._raise_validation_errors()

        return workflow

    def _load_job(self, job_id: str, data: Any, path: str) -> Optional[Job]:
        if not isinstance(data, dict):
            self._add_error("job must be a mapping", path)
            return None

        steps = []
        for index, step_data in enumerate(data.get('steps') or []):
            try:
                steps.append(Step.from_dict(step_data))
            except (ValueError, TypeError) as e:
                self._add_error(str(e), f"{path}.steps[{index}]")

        return Job(
            id=job_id,
            name=str(data.get('name') or ""),
            env=_string_env(data.get('env'), f"{path}.env", self.errors),
            steps=steps,
        )

    def _add_error(self, message: str, path: str = "", exit_code: int = 2):
        """Add validation error."""
        self.errors.append(ValidationError(message, path, exit_code))

    def _raise_validation_errors(self):
        """Raise WorkflowValidationError with accumulated errors."""
        raise WorkflowValidationError(self.errors)


def get_job(workflows: Dict[str, Workflow], workflow_name: str, job_name: str):
    """
    Look up a job; a job without a name takes its id as name.

    Returns:
        (workflow, job) tuple

    Raises:
        WorkflowValidationError: If the workflow or job does not exist
    """
    workflow = workflows.get(workflow_name)
    if workflow is None:
        raise WorkflowValidationError([ValidationError(f"workflow {workflow_name} not found")])

    job = workflow.jobs.get(job_name)
    if job is None:
        raise WorkflowValidationError([ValidationError(f"job {workflow_name}/{job_name} not found")])

    if not job.name:
        job.name = job_name

    return workflow, job


def parse_step_json(document: str) -> Step:
    """Parse a step from its JSON document (same keys as the workflow YAML)."""
    try:
        data = json.loads(document)
        return Step.from_dict(data)
    except (ValueError, TypeError) as e:
        raise WorkflowValidationError([ValidationError(f"failed to parse step json: {e}", path="--json")])
