"""
Workflow command processing.

Step processes talk back to the runner by printing lines of the form::

    ::name key=value,key=value::value

Each recognised command mutates the runner's environment, the current step's
result or state, or the log output.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, MutableMapping, Optional

from ..log import NOTICE, WorkflowLogger

logger = logging.getLogger(__name__)

COMMAND_PATTERN = re.compile(r'^\s*::([A-Za-z][A-Za-z0-9_-]*)(?:\s+(.*?))?::(.*)$')

_DATA_ESCAPES = (('%0D', '\r'), ('%0A', '\n'), ('%25', '%'))
_PROPERTY_ESCAPES = (('%0D', '\r'), ('%0A', '\n'), ('%3A', ':'), ('%2C', ','), ('%25', '%'))


def _unescape(value: str, escapes) -> str:
    for token, replacement in escapes:
        value = value.replace(token, replacement)
    return value


@dataclass
class Command:
    """A parsed workflow command."""
    name: str
    parameters: Dict[str, str] = field(default_factory=dict)
    value: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "parameters": dict(self.parameters), "value": self.value}


def parse_command(line: str) -> Optional[Command]:
    """Parse a stdout line; returns None for ordinary output."""
    match = COMMAND_PATTERN.match(line.rstrip('\r\n'))
    if not match:
        return None

    name, raw_parameters, value = match.groups()

    parameters: Dict[str, str] = {}
    if raw_parameters:
        for pair in raw_parameters.split(','):
            pair = pair.strip()
            if not pair:
                continue
            key, sep, raw = pair.partition('=')
            if not sep:
                continue
            parameters[key.strip()] = _unescape(raw, _PROPERTY_ESCAPES)

    return Command(name=name, parameters=parameters, value=_unescape(value, _DATA_ESCAPES))


def append_path(env: MutableMapping[str, str], entry: str) -> None:
    """Append an entry to PATH in the given environment."""
    current = env.get('PATH', '')
    env['PATH'] = f"{current}{os.pathsep}{entry}" if current else entry


class WorkflowCommandProcessor:
    """
    Applies workflow commands for the step currently executing.

    ``env`` is the runner-owned current environment; set-env and add-path
    mutate it so the change is visible to every later step of the run.
    """

    def __init__(self, env: MutableMapping[str, str], workflow_logger: WorkflowLogger):
        self.env = env
        self.logger = workflow_logger

    def process(self, command: Command, step_state) -> None:
        handler = getattr(self, f"_cmd_{command.name.replace('-', '_')}", None)
        if handler is None:
            logger.debug(f"Ignoring unknown workflow command '{command.name}'")
            return
        handler(command, step_state)

    def _cmd_group(self, command: Command, step_state) -> None:
        self.logger.start_group(command.value)

    def _cmd_endgroup(self, command: Command, step_state) -> None:
        self.logger.end_group()

    def _cmd_debug(self, command: Command, step_state) -> None:
        self.logger.debug(command.value)

    def _cmd_error(self, command: Command, step_state) -> None:
        self.logger.annotate(logging.ERROR, command.value, command.parameters)

    def _cmd_warning(self, command: Command, step_state) -> None:
        self.logger.annotate(logging.WARNING, command.value, command.parameters)

    def _cmd_notice(self, command: Command, step_state) -> None:
        self.logger.annotate(NOTICE, command.value, command.parameters)

    def _cmd_set_env(self, command: Command, step_state) -> None:
        name = command.parameters.get('name')
        if not name:
            self.logger.warning("set-env command requires a 'name' parameter")
            return
        self.env[name] = command.value

    def _cmd_set_output(self, command: Command, step_state) -> None:
        name = command.parameters.get('name')
        if not name:
            self.logger.warning("set-output command requires a 'name' parameter")
            return
        step_state.result.outputs[name] = command.value

    def _cmd_save_state(self, command: Command, step_state) -> None:
        name = command.parameters.get('name')
        if not name:
            self.logger.warning("save-state command requires a 'name' parameter")
            return
        step_state.state[name] = command.value

    def _cmd_add_mask(self, command: Command, step_state) -> None:
        self.logger.info(f"[add-mask] {command.value}")

    def _cmd_add_matcher(self, command: Command, step_state) -> None:
        self.logger.info(f"[add-matcher] {command.value}")

    def _cmd_add_path(self, command: Command, step_state) -> None:
        append_path(self.env, command.value)
