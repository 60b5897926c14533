import logging
from pathlib import Path
from typing import Any

import structlog


def _as_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    file_level: int | str = logging.INFO,
) -> None:
    """Configure structlog/standard logging bridge.

    When ``log_file`` is given, events at ``file_level`` and above are also
    appended to that file, independent of the console level.
    """

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_level = _as_level(level)
    stream = logging.StreamHandler()
    stream.setLevel(console_level)
    handlers: list[logging.Handler] = [stream]
    root_level = console_level

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(_as_level(file_level))
        handlers.append(file_handler)
        root_level = min(root_level, _as_level(file_level))

    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind contextual fields for downstream logs."""

    logger = structlog.get_logger()
    return logger.bind(**kwargs)
