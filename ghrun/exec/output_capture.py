"""
Output capture module for per-step log artifacts.

Each executed stage of a step keeps its raw stdout, stderr and the workflow
commands it emitted. After the process exits the buffers are written to::

    <data home>/steps/<id>/<stage>/logs/
        stdout.log
        stderr.log
        workflow_commands.log
        workflow_commands.json

Empty buffers produce no file.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .. import config

logger = logging.getLogger(__name__)

STDOUT_LOG = "stdout.log"
STDERR_LOG = "stderr.log"
COMMANDS_LOG = "workflow_commands.log"
COMMANDS_JSON = "workflow_commands.json"


def logs_dir(step_id: str, stage: str) -> Path:
    return config.get_path("steps", step_id, stage, "logs")


@dataclass
class StepLogs:
    """Buffers for the output of one step stage."""
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    command_lines: List[str] = field(default_factory=list)
    commands: List[Dict[str, Any]] = field(default_factory=list)

    def add_output(self, line: str) -> None:
        self.stdout.append(line)

    def add_command(self, line: str, command: Dict[str, Any]) -> None:
        self.command_lines.append(line)
        self.commands.append(command)

    def flush(self, directory: Path) -> None:
        """
        Write non-empty buffers to directory.

        Failures are logged and swallowed; losing an artifact never fails a step.
        """
        artifacts = {
            STDOUT_LOG: "".join(self.stdout),
            STDERR_LOG: "".join(self.stderr),
            COMMANDS_LOG: "".join(self.command_lines),
        }
        if self.commands:
            artifacts[COMMANDS_JSON] = json.dumps(self.commands, indent=2)

        try:
            for name, content in artifacts.items():
                if content:
                    config.write_file(directory / name, content)
        except OSError as e:
            logger.warning(f"Failed to write step logs to {directory}: {e}")
