"""CLI command handlers."""

from .job import add_job
from .run import run_steps
from .step import add_step

__all__ = ['add_step', 'add_job', 'run_steps']
