"""Grouped workflow logger.

Step output and workflow commands are reported through a ``logging`` adapter
that indents records by the current ``::group::`` depth and understands the
GitHub annotation parameters (file, line, col, endLine, endCol, title).
"""

import logging
from typing import Any, Dict, Optional

NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

ANNOTATION_KEYS = ("file", "line", "col", "endLine", "endCol", "title")


class WorkflowLogger(logging.LoggerAdapter):
    """Logger adapter that tracks log groups for step output."""

    INDENT = "  "

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(logger or logging.getLogger("ghrun.workflow"), {})
        self.depth = 0

    def process(self, msg, kwargs):
        return f"{self.INDENT * self.depth}{msg}", kwargs

    def start_group(self, title: Optional[str] = None) -> None:
        if title:
            self.info(title)
        self.depth += 1

    def end_group(self) -> None:
        if self.depth > 0:
            self.depth -= 1

    def notice(self, msg, *args, **kwargs) -> None:
        self.log(NOTICE, msg, *args, **kwargs)

    def annotate(self, level: int, message: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        """Log an error/warning/notice annotation with its location, if any."""
        details = []
        for key in ANNOTATION_KEYS:
            value = (parameters or {}).get(key)
            if value:
                details.append(f"{key}={value}")

        if details:
            message = f"{message} ({', '.join(details)})"

        self.log(level, message)


class group:
    """Context manager opening a log group for the duration of a block."""

    def __init__(self, logger: WorkflowLogger, title: Optional[str] = None):
        self.logger = logger
        self.title = title

    def __enter__(self) -> WorkflowLogger:
        self.logger.start_group(self.title)
        return self.logger

    def __exit__(self, exc_type, exc, tb) -> None:
        self.logger.end_group()
