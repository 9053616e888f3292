"""
Action and step models.
Typed values, metadata models and the expression evaluation context.
"""

from .context import Context, GithubContext, RunnerContext
from .models import Action, ActionStage, Step, StepResult, StepStatus, StepType
from .values import Bool, Float, Int, String

__all__ = [
    'Action',
    'ActionStage',
    'Bool',
    'Context',
    'Float',
    'GithubContext',
    'Int',
    'RunnerContext',
    'Step',
    'StepResult',
    'StepStatus',
    'StepType',
    'String',
]
