"""Structured logging configuration using structlog.

Log lines go to stderr so command output on stdout stays machine-readable.
Each provisioning run binds ``run_id`` and ``command`` into the context, so
every line emitted by the scheduler, executor and provider during that run
carries them.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import structlog


def setup_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog; *fmt* is ``json`` or ``console``."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer: structlog.typing.Processor
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def run_context(command: str) -> Iterator[str]:
    """Bind a fresh run id for the duration of one plan/apply/destroy run."""
    run_id = uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(run_id=run_id, command=command):
        yield run_id


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
