"""`with step` command implementation."""

import logging
from argparse import Namespace
from typing import Dict, List, Optional

from ghrun.actions.models import Step
from ghrun.actions.values import String
from ghrun.exceptions import GhrunError, StepRegistrationError, WorkflowValidationError
from ghrun.loader import parse_step_json
from ghrun.state import StateManager


logger = logging.getLogger(__name__)


def parse_pairs(items: Optional[List[str]], flag: str) -> Dict[str, str]:
    """Parse KEY=VALUE arguments."""
    pairs = {}
    for item in items or []:
        if '=' not in item:
            raise ValueError(f"Invalid {flag} format: {item}. Expected KEY=VALUE")
        key, value = item.split('=', 1)
        pairs[key] = value
    return pairs


def step_from_args(args: Namespace) -> Step:
    """Build the step from --json, or from the individual flags."""
    if args.json:
        return parse_step_json(args.json)

    return Step(
        id=args.id,
        name=String.parse(args.name) if args.name else None,
        uses=args.uses,
        env={k: String.parse(v) for k, v in parse_pairs(args.env, '--env').items()},
        with_inputs={k: String.parse(v) for k, v in parse_pairs(args.with_inputs, '--with').items()},
        run=args.run,
        shell=args.shell,
    )


def add_step(args: Namespace, state_manager: Optional[StateManager] = None) -> int:
    """
    Add or override a step in the run state.

    Returns:
        0 on success, 2 for invalid step definitions, 1 for other errors
    """
    try:
        step = step_from_args(args)

        if args.override and not step.id:
            raise StepRegistrationError("step id must be provided to override")

        with state_manager or StateManager() as state:
            if args.override:
                step_state = state.override_step(step.id, step)
                logger.info(f"Overrode step {step_state.step.id}")
            else:
                step_state = state.add_step(step)
                logger.info(f"Added step {step_state.step.id}")

    except WorkflowValidationError as e:
        for error in e.errors:
            logger.error(f"Validation error: {error.message}")
        return e.exit_code
    except (GhrunError, ValueError) as e:
        logger.error(str(e))
        return 1

    return 0
