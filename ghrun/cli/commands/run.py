"""`run` command implementation.

The host running ghrun cannot tell a failed job from a failed ghrun process,
so the job result is written to ``<data home>/exit-code`` and the command
itself exits 0.
"""

import logging
import signal
import threading
from argparse import Namespace
from typing import Dict, Optional

from ghrun import config
from ghrun.actions.resolver import ActionResolver
from ghrun.exceptions import GhrunError
from ghrun.runner.executor import Runner
from ghrun.state import StateManager


logger = logging.getLogger(__name__)

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_cancel_handlers(cancel_event: threading.Event) -> Dict[int, object]:
    """Set cancel_event on SIGINT/SIGTERM. Returns the replaced handlers."""
    # signal.signal only works on the main thread
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _cancel_handler(signum, frame):
        logger.warning(f"Received {signal.Signals(signum).name}, cancelling run")
        cancel_event.set()

    old_handlers = {}
    for signum in CANCEL_SIGNALS:
        old_handlers[signum] = signal.signal(signum, _cancel_handler)
    return old_handlers


def _restore_handlers(old_handlers: Dict[int, object]) -> None:
    for signum, handler in old_handlers.items():
        signal.signal(signum, handler)


def run_steps(args: Namespace, state_manager: Optional[StateManager] = None, fetcher=None) -> int:
    """Run all configured steps and record the exit code artifact."""
    exit_code = 0
    cancel_event = threading.Event()
    old_handlers = _install_cancel_handlers(cancel_event)

    try:
        with state_manager or StateManager() as state:
            runner = Runner(state, resolver=ActionResolver(state.actions, fetcher))
            result = runner.execute(cancel_event)
            exit_code = result.exit_code
    except (GhrunError, OSError, ValueError) as e:
        logger.error(f"Error executing command: {e}")
        exit_code = 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        exit_code = 1
    finally:
        _restore_handlers(old_handlers)

    path = config.get_path(config.EXIT_CODE_FILE)
    logger.info(f"Writing exit code {exit_code} to {path}")
    config.write_file(path, str(exit_code))

    return 0
