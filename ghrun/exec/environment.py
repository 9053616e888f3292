"""
Step environment construction.

Later sources override earlier ones:

1. the runner's current environment (seeded from os.environ)
2. the run state env (workflow and job env)
3. STATE_<key> for every saved state entry of the step
4. INPUT_<KEY> for every ``with:`` entry (action steps)
5. INPUT_<KEY> for non-empty defaults of inputs absent from ``with:``
6. the step's own env
7. fresh file command marker files (GITHUB_ENV, GITHUB_PATH, ...)
"""

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from .. import config
from ..actions.models import ActionStage, StepType
from ..commands.file_commands import FILE_COMMAND_VARIABLES

logger = logging.getLogger(__name__)


def file_commands_dir(step_id: str, stage: ActionStage) -> Path:
    return config.get_path("steps", step_id, stage.value, "file_commands")


def input_variable(name: str) -> str:
    return f"INPUT_{name.upper()}"


def build_step_env(
    base_env: Mapping[str, str],
    run_env: Mapping[str, str],
    step_state,
    stage: ActionStage,
    context,
    action_path: Optional[Path] = None,
) -> Dict[str, str]:
    """
    Build the complete environment for one stage of a step.

    Args:
        base_env: Runner-owned current environment
        run_env: Workflow/job env from the run state
        step_state: StepState being executed
        stage: Lifecycle stage
        context: Evaluation context for expressions
        action_path: Resolved action directory (action steps)

    Returns:
        Environment mapping for the step process

    Raises:
        ExpressionError: If an input, default or env value fails to evaluate
    """
    step = step_state.step

    env: Dict[str, str] = dict(base_env)
    env.update(run_env)

    for key, value in step_state.state.items():
        env[f"STATE_{key}"] = value

    if step.type == StepType.ACTION:
        action = step_state.action

        for key, value in step.with_inputs.items():
            env[input_variable(key)] = value.eval(context)

        if action is not None:
            provided = {key.lower() for key in step.with_inputs}
            for name, action_input in action.inputs.items():
                if name.lower() in provided:
                    if action_input.deprecation_message is not None and action_input.deprecation_message.value:
                        logger.warning(f"Input '{name}' has been deprecated with message: "
                                       f"{action_input.deprecation_message.value}")
                    continue

                default = action_input.default.eval(context) if action_input.default is not None else ""
                if default:
                    env[input_variable(name)] = default
                elif action_input.required is not None and action_input.required.value:
                    logger.warning(f"Input required and not supplied: {name}")

        if action_path is not None:
            env["GITHUB_ACTION_PATH"] = str(action_path)

    for key, value in step.env.items():
        env[key] = value.eval(context)

    directory = config.ensure_dir(file_commands_dir(step.id, stage))
    for file_name, variable in FILE_COMMAND_VARIABLES.items():
        marker = directory / file_name
        config.write_file(marker, "")
        env[variable] = str(marker)

    return env
