"""
Evaluation context for expressions.

A Context is a read-only snapshot of the namespaces an expression may
reference. It is rebuilt from the run state and the process environment for
each evaluation and is never persisted.
"""

import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ..exceptions import ExpressionError


def _flag(env: Mapping[str, str], key: str) -> bool:
    return env.get(key, '') == 'true'


@dataclass
class GithubContext:
    """Information about the workflow run and the triggering event."""
    ci: bool = False
    action: str = ""
    action_path: str = ""
    action_ref: str = ""
    action_repository: str = ""
    action_status: str = ""
    actions: bool = False
    actor: str = ""
    actor_id: str = ""
    api_url: str = ""
    base_ref: str = ""
    env: str = ""
    event: Dict[str, Any] = field(default_factory=dict)
    event_name: str = ""
    event_path: str = ""
    graphql_url: str = ""
    head_ref: str = ""
    job: str = ""
    job_workflow_sha: str = ""
    path: str = ""
    ref: str = ""
    ref_name: str = ""
    ref_protected: bool = False
    ref_type: str = ""
    repository: str = ""
    repository_id: str = ""
    repository_owner: str = ""
    repository_owner_id: str = ""
    repository_url: str = field(default="", metadata={'key': 'repositoryUrl'})
    retention_days: int = 0
    run_id: str = ""
    run_number: str = ""
    run_attempt: str = ""
    secret_source: str = ""
    server_url: str = ""
    sha: str = ""
    token: str = ""
    triggering_actor: str = ""
    workflow: str = ""
    workflow_ref: str = ""
    workflow_sha: str = ""
    workspace: str = ""

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "GithubContext":
        retention_days = 0
        value = env.get('GITHUB_RETENTION_DAYS', '')
        if value:
            try:
                retention_days = int(value)
            except ValueError:
                raise ExpressionError(f"GITHUB_RETENTION_DAYS {value} is not a valid integer")

        return cls(
            ci=_flag(env, 'CI'),
            actions=_flag(env, 'GITHUB_ACTIONS'),
            action=env.get('GITHUB_ACTION', ''),
            action_path=env.get('GITHUB_ACTION_PATH', ''),
            action_repository=env.get('GITHUB_ACTION_REPOSITORY', ''),
            actor=env.get('GITHUB_ACTOR', ''),
            actor_id=env.get('GITHUB_ACTOR_ID', ''),
            api_url=env.get('GITHUB_API_URL', ''),
            base_ref=env.get('GITHUB_BASE_REF', ''),
            env=env.get('GITHUB_ENV', ''),
            event_name=env.get('GITHUB_EVENT_NAME', ''),
            event_path=env.get('GITHUB_EVENT_PATH', ''),
            graphql_url=env.get('GITHUB_GRAPHQL_URL', ''),
            head_ref=env.get('GITHUB_HEAD_REF', ''),
            job=env.get('GITHUB_JOB', ''),
            path=env.get('GITHUB_PATH', ''),
            ref=env.get('GITHUB_REF', ''),
            ref_name=env.get('GITHUB_REF_NAME', ''),
            ref_protected=_flag(env, 'GITHUB_REF_PROTECTED'),
            ref_type=env.get('GITHUB_REF_TYPE', ''),
            repository=env.get('GITHUB_REPOSITORY', ''),
            repository_id=env.get('GITHUB_REPOSITORY_ID', ''),
            repository_owner=env.get('GITHUB_REPOSITORY_OWNER', ''),
            repository_owner_id=env.get('GITHUB_REPOSITORY_OWNER_ID', ''),
            retention_days=retention_days,
            run_attempt=env.get('GITHUB_RUN_ATTEMPT', ''),
            run_id=env.get('GITHUB_RUN_ID', ''),
            run_number=env.get('GITHUB_RUN_NUMBER', ''),
            server_url=env.get('GITHUB_SERVER_URL', ''),
            sha=env.get('GITHUB_SHA', ''),
            workflow=env.get('GITHUB_WORKFLOW', ''),
            workflow_ref=env.get('GITHUB_WORKFLOW_REF', ''),
            workflow_sha=env.get('GITHUB_WORKFLOW_SHA', ''),
            workspace=env.get('GITHUB_WORKSPACE', ''),
            token=env.get('GITHUB_TOKEN', ''),
        )


@dataclass
class RunnerContext:
    """Information about the runner executing the job."""
    name: str = ""
    os: str = ""
    arch: str = ""
    temp: str = ""
    tool_cache: str = ""
    debug: str = ""

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "RunnerContext":
        return cls(
            name=env.get('RUNNER_NAME', ''),
            os=env.get('RUNNER_OS', ''),
            arch=env.get('RUNNER_ARCH', ''),
            temp=env.get('RUNNER_TEMP', ''),
            tool_cache=env.get('RUNNER_TOOL_CACHE', ''),
            debug=env.get('RUNNER_DEBUG', ''),
        )


@dataclass
class JobContext:
    container: Dict[str, str] = field(default_factory=dict)
    services: Dict[str, Any] = field(default_factory=dict)
    status: str = ""


@dataclass
class StrategyContext:
    fail_fast: bool = field(default=False, metadata={'key': 'fail-fast'})
    job_index: int = field(default=0, metadata={'key': 'job-index'})
    job_total: int = field(default=0, metadata={'key': 'job-total'})
    max_parallel: int = field(default=0, metadata={'key': 'max-parallel'})


@dataclass
class Context:
    """Namespaces visible to expression evaluation."""
    github: GithubContext = field(default_factory=GithubContext)
    env: Dict[str, str] = field(default_factory=dict)
    vars: Dict[str, str] = field(default_factory=dict)
    job: JobContext = field(default_factory=JobContext)
    steps: Dict[str, Any] = field(default_factory=dict)
    runner: RunnerContext = field(default_factory=RunnerContext)
    secrets: Dict[str, str] = field(default_factory=dict)
    strategy: StrategyContext = field(default_factory=StrategyContext)
    matrix: Dict[str, Any] = field(default_factory=dict)
    needs: Dict[str, Any] = field(default_factory=dict)

    NAMESPACES = (
        'github', 'env', 'vars', 'job', 'steps', 'runner',
        'secrets', 'strategy', 'matrix', 'needs',
    )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Context":
        """Build a context with github/runner populated from the environment."""
        env = os.environ if env is None else env
        return cls(
            github=GithubContext.from_env(env),
            runner=RunnerContext.from_env(env),
        )

    def get_variable(self, name: str) -> Any:
        if name in self.NAMESPACES:
            return getattr(self, name)
        if name == 'infinity':
            return math.inf
        if name == 'nan':
            return math.nan
        raise ExpressionError(f"unknown variable: {name}")
