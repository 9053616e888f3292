"""`with job` command implementation."""

import logging
from argparse import Namespace
from pathlib import Path
from typing import Optional

from ghrun.exceptions import GhrunError, WorkflowValidationError
from ghrun.loader import WorkflowLoader, get_job
from ghrun.state import StateManager


logger = logging.getLogger(__name__)


def add_job(args: Namespace, state_manager: Optional[StateManager] = None) -> int:
    """Register the workflow/job env and every step of the job."""
    try:
        loader = WorkflowLoader(Path.cwd())
        workflows_dir = Path(args.workflows_dir) if args.workflows_dir else None
        workflows = loader.load_all(workflows_dir)

        workflow, job = get_job(workflows, args.workflow, args.job)

        with state_manager or StateManager() as state:
            state.add_workflow_and_job(job.name, workflow.env, job.env, job.steps)

        logger.info(f"Added job {job.name} with {len(job.steps)} steps")

    except WorkflowValidationError as e:
        for error in e.errors:
            if error.path:
                logger.error(f"Validation error at {error.path}: {error.message}")
            else:
                logger.error(f"Validation error: {error.message}")
        return e.exit_code
    except GhrunError as e:
        logger.error(str(e))
        return 1

    return 0
