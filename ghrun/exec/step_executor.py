"""
Step executor module for running step processes.

stdout is drained line by line on a reader thread and handed, in write order,
to a line handler on the calling thread. stderr is drained on a second thread,
tee'd to our own stderr and captured for the step logs.
"""

import logging
import os
import queue
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, IO, List, Mapping, Optional

logger = logging.getLogger(__name__)

EXIT_SPAWN_FAILED = 127
EXIT_CANCELLED = 130

_EOF = object()


@dataclass
class ExecutionResult:
    """Result of a step process."""
    exit_code: int
    stderr: str = ""
    duration_ms: int = 0
    cancelled: bool = False
    error: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
        }
        if self.cancelled:
            result["cancelled"] = True
        if self.error:
            result["error"] = self.error
        return result


def _decode(raw: bytes) -> str:
    return raw.decode('utf-8', errors='replace')


class StepExecutor:
    """
    Spawns step processes one at a time.

    A threading.Event passed as ``cancel_event`` terminates the in-flight
    process group, escalating to SIGKILL after ``kill_grace_sec``.
    """

    POLL_INTERVAL_SEC = 0.1

    def __init__(self, kill_grace_sec: float = 5.0, stderr: Optional[IO[str]] = None):
        self.kill_grace_sec = kill_grace_sec
        self._stderr = stderr

    def execute(
        self,
        argv: List[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        on_line: Optional[Callable[[str], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        """
        Run argv to completion.

        Args:
            argv: Program and arguments (no shell)
            env: Complete process environment
            cwd: Working directory (default: current directory)
            on_line: Called with every stdout line, newline included
            cancel_event: Set to cancel the process

        Returns:
            ExecutionResult with exit code and captured stderr
        """
        start_time = time.time()
        logger.debug(f"Executing: {' '.join(argv)}")

        try:
            process = subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            return ExecutionResult(
                exit_code=EXIT_SPAWN_FAILED,
                duration_ms=int((time.time() - start_time) * 1000),
                error={
                    "type": "execution_error",
                    "message": str(e),
                    "context": {"argv": list(argv)},
                },
            )

        lines: "queue.Queue[Any]" = queue.Queue()
        stderr_chunks: List[str] = []

        stdout_reader = threading.Thread(target=self._read_stdout, args=(process.stdout, lines), daemon=True)
        stderr_reader = threading.Thread(target=self._tee_stderr, args=(process.stderr, stderr_chunks), daemon=True)
        stdout_reader.start()
        stderr_reader.start()

        cancelled = False
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set() and not cancelled:
                    cancelled = True
                    logger.info(f"Cancelling process {process.pid}")
                    self._terminate(process)

                try:
                    line = lines.get(timeout=self.POLL_INTERVAL_SEC)
                except queue.Empty:
                    continue

                if line is _EOF:
                    break
                if on_line is not None:
                    on_line(line)
        except BaseException:
            # includes KeyboardInterrupt: the child runs in its own session and never sees it
            self._terminate(process)
            raise
        finally:
            stdout_reader.join()
            stderr_reader.join()

        exit_code = process.wait()
        duration_ms = int((time.time() - start_time) * 1000)

        if cancelled:
            return ExecutionResult(
                exit_code=EXIT_CANCELLED,
                stderr="".join(stderr_chunks),
                duration_ms=duration_ms,
                cancelled=True,
                error={
                    "type": "cancelled",
                    "message": "Step was cancelled",
                    "context": {"process_exit_code": exit_code},
                },
            )

        return ExecutionResult(
            exit_code=exit_code,
            stderr="".join(stderr_chunks),
            duration_ms=duration_ms,
        )

    @staticmethod
    def _read_stdout(stream: IO[bytes], lines: "queue.Queue[Any]") -> None:
        try:
            for raw in iter(stream.readline, b''):
                lines.put(_decode(raw))
        finally:
            stream.close()
            lines.put(_EOF)

    def _tee_stderr(self, stream: IO[bytes], chunks: List[str]) -> None:
        target = self._stderr or sys.stderr
        try:
            for raw in iter(stream.readline, b''):
                text = _decode(raw)
                chunks.append(text)
                target.write(text)
                target.flush()
        finally:
            stream.close()

    def _terminate(self, process: subprocess.Popen) -> None:
        """SIGTERM the process group, SIGKILL it if still alive after the grace period."""
        if process.poll() is not None:
            return

        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            return

        try:
            process.wait(timeout=self.kill_grace_sec)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} did not exit after SIGTERM, killing")
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
