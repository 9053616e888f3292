"""Workflow and file command processing."""

from .file_commands import process_file_commands, values_from_file
from .workflow_commands import Command, WorkflowCommandProcessor, parse_command

__all__ = [
    'Command',
    'WorkflowCommandProcessor',
    'parse_command',
    'process_file_commands',
    'values_from_file',
]
