# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Diagnostic logging for the checker and the dashboard.

A check prints two streams.  stdout carries the ``[KIND]`` progress lines
that the dashboard parses to drive its CAPTCHA banner; stderr carries
everything routed through ``logging`` (driver decisions, recovery state
changes, raw-link dumps at DEBUG).  The dashboard only scans stdout for blocking
markers, so a log record can never raise the banner.

Imports nothing from serprank, so ``cli.main`` calls it before anything
else is set up.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Chatty third-party loggers kept at WARNING unless verbose.
_NOISY_LOGGERS = ("asyncio", "aiosqlite", "uvicorn.access")


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route stdlib and structlog records to a single stderr handler.

    Calling it again replaces the handler rather than adding a second one.

    Args:
        json_output: One JSON object per record instead of colored console text.
        level: Root level name; unknown names fall back to INFO.  Below INFO the
            chatty third-party loggers are left alone.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(root_level)

    if root_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
