"""
Execution module for ghrun.
Handles step environments, process execution and log artifacts.
"""

from .environment import build_step_env
from .output_capture import StepLogs
from .step_executor import ExecutionResult, StepExecutor

__all__ = [
    "build_step_env",
    "StepLogs",
    "StepExecutor",
    "ExecutionResult",
]
