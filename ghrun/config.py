"""Data home layout and file helpers.

Everything ghrun persists (state, scripts, fetched actions, step logs and file
command markers) lives under a single data home directory.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional, Union

DEFAULT_DATA_HOME = "/home/runner/_temp/ghx"
DATA_HOME_ENV = "GHRUN_HOME"

STATE_FILE = "state.json"
EXIT_CODE_FILE = "exit-code"


def data_home() -> Path:
    """Return the data home directory, honouring GHRUN_HOME."""
    return Path(os.environ.get(DATA_HOME_ENV) or DEFAULT_DATA_HOME)


def get_path(*parts: Union[str, Path]) -> Path:
    """Return the path of the given file or directory under the data home."""
    return data_home().joinpath(*[str(p) for p in parts])


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_file(path: Path) -> Path:
    """Create the file (and its parent directory) if it does not exist."""
    ensure_dir(path.parent)
    if not path.exists():
        path.touch()
    return path


def write_file(path: Path, content: Union[str, bytes], mode: Optional[int] = None) -> None:
    """Write content to path, creating parent directories as needed."""
    ensure_dir(path.parent)
    if isinstance(content, str):
        path.write_text(content)
    else:
        path.write_bytes(content)
    if mode is not None:
        os.chmod(path, mode)


def read_json_file(path: Path) -> Optional[Any]:
    """Read a JSON file. Empty files yield None instead of a parse error."""
    with open(path, 'r') as f:
        text = f.read()

    if not text.strip():
        return None

    return json.loads(text)


def write_json_file(path: Path, data: Any) -> None:
    """Write JSON atomically (temp file + rename)."""
    ensure_dir(path.parent)
    temp_file = path.with_suffix(path.suffix + '.tmp')
    with open(temp_file, 'w') as f:
        json.dump(data, f, indent=2)
    temp_file.replace(path)
