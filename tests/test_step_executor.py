"""Tests for subprocess execution."""

import io
import threading
import time

import pytest

from ghrun.exec.step_executor import EXIT_CANCELLED, EXIT_SPAWN_FAILED, ExecutionResult, StepExecutor


@pytest.fixture
def stderr_sink():
    return io.StringIO()


@pytest.fixture
def executor(stderr_sink):
    return StepExecutor(kill_grace_sec=1.0, stderr=stderr_sink)


class TestStepExecutor:

    def test_lines_delivered_in_order(self, executor):
        lines = []

        result = executor.execute(
            ["bash", "-c", "for i in 1 2 3; do echo line$i; done; printf 'tail'"],
            on_line=lines.append,
        )

        assert result.exit_code == 0
        assert result.succeeded
        assert lines == ["line1\n", "line2\n", "line3\n", "tail"]

    def test_exit_code_reported(self, executor):
        result = executor.execute(["bash", "-c", "exit 3"])

        assert result.exit_code == 3
        assert not result.succeeded
        assert result.error is None

    def test_stderr_tee_and_capture(self, executor, stderr_sink):
        result = executor.execute(["bash", "-c", "echo oops >&2"])

        assert result.stderr == "oops\n"
        assert stderr_sink.getvalue() == "oops\n"

    def test_environment_and_cwd(self, executor, tmp_path):
        lines = []

        executor.execute(
            ["bash", "-c", 'echo "$GREETING"; pwd'],
            env={"GREETING": "hello", "PATH": "/usr/bin:/bin"},
            cwd=tmp_path,
            on_line=lines.append,
        )

        assert lines == ["hello\n", f"{tmp_path}\n"]

    def test_spawn_failure(self, executor):
        result = executor.execute(["/nonexistent/program"])

        assert result.exit_code == EXIT_SPAWN_FAILED
        assert result.error["type"] == "execution_error"

    def test_large_output_does_not_block(self, executor):
        count = []

        result = executor.execute(
            ["bash", "-c", "for i in $(seq 1 20000); do echo $i; done"],
            on_line=lambda line: count.append(1),
        )

        assert result.exit_code == 0
        assert len(count) == 20000

    def test_cancellation_terminates_process(self, executor):
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()

        started = time.time()
        try:
            result = executor.execute(["bash", "-c", "echo started; sleep 30"], cancel_event=cancel)
        finally:
            timer.cancel()

        assert time.time() - started < 10
        assert result.cancelled
        assert result.exit_code == EXIT_CANCELLED
        assert result.error["type"] == "cancelled"

    def test_handler_error_kills_process(self, executor):
        def handler(line):
            raise RuntimeError("boom")

        started = time.time()
        with pytest.raises(RuntimeError, match="boom"):
            executor.execute(["bash", "-c", "echo first; sleep 30"], on_line=handler)

        assert time.time() - started < 10

    def test_keyboard_interrupt_kills_process(self, executor, tmp_path):
        finished = tmp_path / "finished"

        def handler(line):
            raise KeyboardInterrupt

        started = time.time()
        with pytest.raises(KeyboardInterrupt):
            executor.execute(["bash", "-c", f"echo first; sleep 3; touch {finished}"], on_line=handler)

        assert time.time() - started < 3
        time.sleep(0.5)
        assert not finished.exists()


class TestExecutionResult:

    def test_to_dict(self):
        assert ExecutionResult(exit_code=0, duration_ms=5).to_dict() == {"exit_code": 0, "duration_ms": 5}

        cancelled = ExecutionResult(exit_code=130, cancelled=True, error={"type": "cancelled"})
        assert cancelled.to_dict() == {
            "exit_code": 130,
            "duration_ms": 0,
            "cancelled": True,
            "error": {"type": "cancelled"},
        }
