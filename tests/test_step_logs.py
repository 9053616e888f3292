"""Tests for per-step log artifacts."""

import json
import logging

from ghrun.exec.output_capture import StepLogs, logs_dir


class TestStepLogs:

    def test_flush_writes_non_empty_buffers(self, tmp_path):
        logs = StepLogs()
        logs.add_output("hello\n")
        logs.add_output("::set-output name=a::b\n")
        logs.add_command("::set-output name=a::b\n", {"name": "set-output", "parameters": {"name": "a"}, "value": "b"})

        logs.flush(tmp_path / "logs")

        assert (tmp_path / "logs" / "stdout.log").read_text() == "hello\n::set-output name=a::b\n"
        assert (tmp_path / "logs" / "workflow_commands.log").read_text() == "::set-output name=a::b\n"
        assert json.loads((tmp_path / "logs" / "workflow_commands.json").read_text()) == [
            {"name": "set-output", "parameters": {"name": "a"}, "value": "b"},
        ]
        assert not (tmp_path / "logs" / "stderr.log").exists()

    def test_empty_logs_write_nothing(self, tmp_path):
        StepLogs().flush(tmp_path / "logs")

        assert not (tmp_path / "logs").exists()

    def test_flush_errors_are_swallowed(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        logs = StepLogs(stderr=["boom\n"])

        with caplog.at_level(logging.WARNING, logger="ghrun.exec.output_capture"):
            logs.flush(blocker / "logs")

        assert "Failed to write step logs" in caplog.text

    def test_logs_dir_layout(self, ghrun_home):
        assert logs_dir("build", "post") == ghrun_home / "steps" / "build" / "post" / "logs"
