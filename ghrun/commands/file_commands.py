"""
File command processing.

Besides stdout commands, a step can write to the files named by GITHUB_ENV,
GITHUB_PATH and GITHUB_OUTPUT. After the step exits these files are parsed
and applied to the runner environment and the step's outputs.
"""

import logging
from pathlib import Path
from typing import Dict, MutableMapping

from ..exceptions import FileCommandError
from .workflow_commands import append_path

logger = logging.getLogger(__name__)

ENV_FILE = "env"
PATH_FILE = "path"
STEP_SUMMARY_FILE = "step_summary"
OUTPUT_FILE = "output"

# Marker file name -> environment variable exposing its path to the step
FILE_COMMAND_VARIABLES = {
    ENV_FILE: "GITHUB_ENV",
    PATH_FILE: "GITHUB_PATH",
    STEP_SUMMARY_FILE: "GITHUB_STEP_SUMMARY",
    OUTPUT_FILE: "GITHUB_OUTPUT",
}


def values_from_file(path: Path) -> Dict[str, str]:
    """
    Parse a file command marker file.

    Supports:
    - ``key=value`` single-line entries
    - ``key<<MARKER`` ... ``MARKER`` multi-line entries
    - bare ``value`` lines (GITHUB_PATH entries), stored with an empty value

    Missing files parse as empty.
    """
    values: Dict[str, str] = {}

    if not path.exists():
        return values

    current_key = ""
    end_marker = ""
    body = []
    in_multiline = False

    with open(path, 'r') as f:
        for raw_line in f:
            line = raw_line.strip()

            if in_multiline:
                if line == end_marker:
                    values[current_key] = "\n".join(body)
                    in_multiline = False
                    continue
                if '<<' in line:
                    raise FileCommandError(f"unexpected '<<' in line: {line}")
                # body lines are kept verbatim, blank lines included
                body.append(raw_line.rstrip('\r\n'))
                continue

            if not line:
                continue

            if '<<' in line:
                key, _, marker = line.partition('<<')
                current_key = key.strip()
                end_marker = marker.strip()
                if not current_key or not end_marker:
                    raise FileCommandError(f"invalid multi-line entry: {line}")
                body = []
                in_multiline = True
                continue

            key, sep, value = line.partition('=')
            if sep:
                values[key.strip()] = value.strip()
            else:
                values[key.strip()] = ""

    if in_multiline:
        raise FileCommandError(f"missing end marker '{end_marker}' for '{current_key}' in {path}")

    return values


def process_file_commands(env: MutableMapping[str, str], step_state, directory: Path) -> None:
    """Apply env, path and output marker files found in directory."""
    for key, value in values_from_file(directory / ENV_FILE).items():
        env[key] = value

    for entry in values_from_file(directory / PATH_FILE):
        append_path(env, entry)

    outputs = values_from_file(directory / OUTPUT_FILE)
    step_state.result.outputs.update(outputs)

    summary = directory / STEP_SUMMARY_FILE
    if summary.exists() and summary.stat().st_size > 0:
        logger.debug(f"Step summary written to {summary}")
