"""
Step execution engine.

Runs the registered steps of a job as three full passes over the step order:
every step's pre stage, then every main stage, then every post stage. The
first failing stage aborts the run.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .. import config
from ..actions.models import ActionRunsUsing, ActionStage, NODE_RUNTIMES, StepStatus, StepType
from ..actions.resolver import ActionResolver
from ..commands.file_commands import process_file_commands
from ..commands.workflow_commands import WorkflowCommandProcessor, parse_command
from ..exceptions import ActionResolutionError, GhrunError, StepFailedError
from ..exec.environment import build_step_env, file_commands_dir
from ..exec.output_capture import StepLogs, logs_dir
from ..exec.step_executor import StepExecutor
from ..log import WorkflowLogger, group
from ..state import RunState, StepState

logger = logging.getLogger(__name__)

STAGES = (ActionStage.PRE, ActionStage.MAIN, ActionStage.POST)
SETUP_STAGE = "setup"

RUN_SHELL = ["bash", "--noprofile", "--norc", "-e", "-o", "pipefail"]


def script_path(step_id: str) -> Path:
    return config.get_path("scripts", step_id, "run.sh")


@dataclass
class RunResult:
    """Outcome of a run. status is 'completed' or 'failed'."""
    status: str
    failed_step: Optional[str] = None
    stage: Optional[str] = None
    message: Optional[str] = None
    history: List[Tuple[str, str, StepStatus]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.status}
        if self.failed_step is not None:
            result["failed_step"] = self.failed_step
            result["stage"] = self.stage
        if self.message:
            result["message"] = self.message
        return result


class Runner:
    """
    Executes the steps of a RunState.

    The runner owns the "current environment": a copy of the process
    environment that set-env, add-path and the GITHUB_ENV/GITHUB_PATH files
    mutate. os.environ itself is never modified.
    """

    def __init__(
        self,
        state: RunState,
        resolver: Optional[ActionResolver] = None,
        executor: Optional[StepExecutor] = None,
        workflow_logger: Optional[WorkflowLogger] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.state = state
        self.resolver = resolver or ActionResolver(state.actions)
        self.executor = executor or StepExecutor()
        self.logger = workflow_logger or WorkflowLogger()
        self.env: Dict[str, str] = dict(os.environ if environ is None else environ)
        self.processor = WorkflowCommandProcessor(self.env, self.logger)
        self.history: List[Tuple[str, str, StepStatus]] = []
        self.failure_message: Optional[str] = None

    def execute(self, cancel_event: Optional[threading.Event] = None) -> RunResult:
        """Run the job; failures are reported in the returned RunResult."""
        try:
            self.run(cancel_event)
        except StepFailedError as e:
            logger.error(str(e))
            return RunResult(
                status="failed",
                failed_step=e.step_id,
                stage=e.stage,
                message=str(e),
                history=list(self.history),
            )

        return RunResult(status="completed", history=list(self.history))

    def run(self, cancel_event: Optional[threading.Event] = None) -> None:
        """
        Run the job.

        Raises:
            StepFailedError: On the first failing step stage
        """
        self.setup_job()

        for stage in STAGES:
            for step_state in self.state.ordered_steps():
                status = self.run_stage(step_state, stage, cancel_event)
                self.history.append((step_state.step.id, stage.value, status))
                if status == StepStatus.FAILURE:
                    raise StepFailedError(step_state.step.id, stage.value, self.failure_message)

    def setup_job(self) -> None:
        """Resolve actions and write run step scripts."""
        with group(self.logger, "Set up job"):
            for step_state in self.state.ordered_steps():
                step = step_state.step

                if step.type == StepType.ACTION:
                    try:
                        _, action = self.resolver.resolve(step.uses)
                    except ActionResolutionError as e:
                        step_state.result.set_status(StepStatus.FAILURE)
                        raise StepFailedError(step.id, SETUP_STAGE, str(e))
                    step_state.action = action
                    self.logger.info(f"Download action repository '{step.uses}'")

                elif step.type == StepType.RUN:
                    path = script_path(step.id)
                    config.write_file(path, f"#!/bin/bash\n{step.run}", mode=0o755)
                    self.logger.debug(f"Write script to '{path}' for step '{step.id}'")

            self.logger.info(f"Complete job name: {self.state.job_name}")

    def run_stage(self, step_state: StepState, stage: ActionStage,
                  cancel_event: Optional[threading.Event] = None) -> StepStatus:
        """Run one stage of one step and return its status."""
        step = step_state.step

        if step.type == StepType.RUN and stage != ActionStage.MAIN:
            return StepStatus.SKIPPED

        if step.type == StepType.ACTION:
            action = step_state.action
            entrypoint = action.runs.entrypoint_for(stage) if action else ""
            if not entrypoint and stage != ActionStage.MAIN:
                return StepStatus.SKIPPED

        with group(self.logger, step.log_message(stage)):
            try:
                argv, action_path = self._command_for(step_state, stage)
            except GhrunError as e:
                return self._fail(step_state, stage, str(e))

            return self._execute(step_state, stage, argv, action_path, cancel_event)

    def _command_for(self, step_state: StepState, stage: ActionStage) -> Tuple[List[str], Optional[Path]]:
        step = step_state.step

        if step.type == StepType.RUN:
            return RUN_SHELL + [str(script_path(step.id))], None

        if step.type != StepType.ACTION:
            raise GhrunError(f"not supported step type {step.type.value}")

        action = step_state.action
        action_state = self.state.get_action_state(step.uses)
        if action is None or action_state is None:
            raise GhrunError(f"action '{step.uses}' not found")

        using = action.runs.using
        if using in (ActionRunsUsing.DOCKER.value, ActionRunsUsing.COMPOSITE.value):
            raise GhrunError(f"'{using}' actions are not supported")
        if using not in NODE_RUNTIMES:
            raise GhrunError(f"unknown action runtime '{using}'")

        entrypoint = action.runs.entrypoint_for(stage)
        if not entrypoint:
            raise GhrunError(f"action '{step.uses}' has no {stage.value} entrypoint")

        action_path = Path(action_state.path)
        return ["node", f"{action_path}/{entrypoint}"], action_path

    def _execute(self, step_state: StepState, stage: ActionStage, argv: List[str],
                 action_path: Optional[Path], cancel_event: Optional[threading.Event]) -> StepStatus:
        step = step_state.step

        try:
            context = self.state.build_context(self.env)
            env = build_step_env(self.env, self.state.env, step_state, stage, context, action_path)
        except (GhrunError, OSError) as e:
            return self._fail(step_state, stage, str(e))

        logs = StepLogs()

        def handle_line(line: str) -> None:
            if not line.endswith('\n'):
                line += '\n'
            logs.add_output(line)

            command = parse_command(line)
            if command is None:
                self.logger.info(line.rstrip('\r\n'))
                return

            logs.add_command(line, command.to_dict())
            self.processor.process(command, step_state)

        cwd = Path(step.working_directory) if step.working_directory else None
        result = self.executor.execute(argv, env=env, cwd=cwd, on_line=handle_line, cancel_event=cancel_event)

        logs.stderr.append(result.stderr)
        logs.flush(logs_dir(step.id, stage.value))

        try:
            process_file_commands(self.env, step_state, file_commands_dir(step.id, stage))
        except (GhrunError, OSError) as e:
            return self._fail(step_state, stage, f"failed to process file commands: {e}")

        if result.error:
            return self._fail(step_state, stage, result.error["message"])
        if result.exit_code != 0:
            return self._fail(step_state, stage, f"process completed with exit code {result.exit_code}")

        step_state.result.set_status(StepStatus.SUCCESS)
        return StepStatus.SUCCESS

    def _fail(self, step_state: StepState, stage: ActionStage, message: str) -> StepStatus:
        self.logger.error(f"Step {step_state.step.id} failed at {stage.value} stage: {message}")
        self.failure_message = message
        step_state.result.set_status(StepStatus.FAILURE)
        return StepStatus.FAILURE
