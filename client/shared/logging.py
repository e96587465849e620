"""structlog setup for the participant client.

Everything logs through structlog bound loggers. Events are rendered by the
stdlib handlers attached in `setup_logging`, so pytest's caplog sees them too.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

LOG_FILE_NAME = "arena-client.log"

# Transport libraries that log every packet at INFO/DEBUG.
QUIET_LOGGERS = ("httpx", "httpcore", "socketio.client", "engineio.client")


def configure_structlog() -> None:
    """Route structlog through stdlib logging with the client's processor chain."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _formatter(*, json_output: bool, colors: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(
    log_dir: Path | str | None = None,
    *,
    level: str = "INFO",
    json_output: bool = False,
) -> Path | None:
    """Send client logs to stdout and, when `log_dir` is set, append them to a file there.

    Returns the log file path, or None when only stdout is used.
    Calling it again replaces the handlers installed by the previous call.
    """
    configure_structlog()

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(json_output=json_output, colors=not json_output and sys.stdout.isatty()))
    root.addHandler(console)

    if log_dir is None:
        return None

    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    log_file = path / LOG_FILE_NAME
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(_formatter(json_output=json_output, colors=False))
    root.addHandler(file_handler)
    return log_file
