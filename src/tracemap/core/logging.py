"""structlog over stdlib logging, one handler per configured output.

Events are snake_case (``file_indexed``, ``audit_rotated``). Every event
logged while an indexing run is active carries that run's ``run_id``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from structlog.contextvars import bind_contextvars, get_contextvars, unbind_contextvars

if TYPE_CHECKING:
    from tracemap.config.models import LoggingConfig, LogOutputConfig

_RUN_ID_KEY = "run_id"

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
]


def new_run_id() -> str:
    return uuid4().hex[:12]


def get_run_id() -> str | None:
    value = get_contextvars().get(_RUN_ID_KEY)
    return str(value) if value is not None else None


def set_run_id(run_id: str | None = None) -> str:
    """Bind ``run_id`` (or a fresh one) to the current context."""
    rid = run_id or new_run_id()
    bind_contextvars(**{_RUN_ID_KEY: rid})
    return rid


def clear_run_id() -> None:
    unbind_contextvars(_RUN_ID_KEY)


@contextmanager
def run_context(run_id: str | None = None) -> Iterator[str]:
    """Bind a run id for the duration of the block."""
    rid = set_run_id(run_id)
    try:
        yield rid
    finally:
        clear_run_id()


class _MuteWhileLive(logging.Filter):
    """Drops console records while a progress bar is drawn."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        from tracemap.core.progress import live_display_active

        return not live_display_active()


def _level(name: str | None, default: int = logging.INFO) -> int:
    if not name:
        return default
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else default


def _build_handler(output: LogOutputConfig, default_level: int) -> logging.Handler:
    handler: logging.Handler
    on_terminal = output.destination in ("stderr", "stdout")
    if output.destination == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    elif output.destination == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        path = Path(output.destination).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=on_terminal and sys.stderr.isatty(), pad_event_to=0
        )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer, foreign_pre_chain=_SHARED_PROCESSORS
        )
    )
    handler.setLevel(_level(output.level, default_level))
    if on_terminal:
        handler.addFilter(_MuteWhileLive())
    return handler


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Install structlog and the stdlib handlers.

    A ``config`` wins over ``json_format``/``level``, which only build a
    single stderr output.
    """
    from tracemap.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    default_level = _level(config.level)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(default_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(default_level)
    for output in config.outputs:
        root.addHandler(_build_handler(output, default_level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
