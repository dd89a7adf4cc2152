"""
Logging setup — structlog rendered through the stdlib logging tree.

Every module logs with `structlog.get_logger()` and snake_case event names;
call configure_logging() once at process start to pick level and renderer.
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from config.settings import LogConfig

LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


def parse_level(level: str) -> int:
    try:
        return LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {level!r}") from None


def _formatter(json: bool, colors: bool) -> structlog.stdlib.ProcessorFormatter:
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(
    level: str = "info",
    json: bool = False,
    *,
    filename: str = "",
    dir: str = "./log",
    max_bytes: int = 1 << 26,
    backup_count: int = 5,
) -> None:
    """
    Route structlog through the root logger: always to stderr, and also to a
    size-rotated file under `dir` when `filename` is given.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    handler = logging.StreamHandler()
    handler.setFormatter(_formatter(json, colors=True))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)

    if filename:
        Path(dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(dir) / filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(_formatter(json, colors=False))
        root.addHandler(file_handler)
    root.setLevel(parse_level(level))


def configure_from_config(config: LogConfig) -> None:
    configure_logging(
        level=config.level,
        json=config.json,
        filename=config.filename,
        dir=config.dir,
        max_bytes=config.max_bytes,
        backup_count=config.backup_count,
    )
