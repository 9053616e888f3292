"""Shared fixtures for ghrun tests."""

from pathlib import Path

import pytest

from ghrun import config


@pytest.fixture
def ghrun_home(tmp_path, monkeypatch):
    """Point the data home at a temporary directory."""
    home = tmp_path / "ghx"
    home.mkdir()
    monkeypatch.setenv(config.DATA_HOME_ENV, str(home))
    return home


@pytest.fixture
def make_action(tmp_path):
    """Create a local action directory with the given metadata text."""
    def _make(metadata: str, name: str = "action", file_name: str = "action.yml", scripts=None) -> Path:
        directory = tmp_path / "actions" / name
        directory.mkdir(parents=True)
        (directory / file_name).write_text(metadata)
        for script, content in (scripts or {}).items():
            (directory / script).write_text(content)
        return directory

    return _make
