"""Centralized logging configuration.

Applies per-category log levels from Settings so that noisy loggers
(SQLAlchemy statements, httpx/httpcore) can be silenced without affecting
the application's own loggers.

Usage:
    from app.logging_config import setup_logging
    setup_logging()   # Call once at startup (FastAPI lifespan)
"""

import logging
import sys

from app.config import settings

# Settings field -> logger names it controls.
_CATEGORY_MAP: dict[str, list[str]] = {
    "LOG_LEVEL_SQL": [
        "sqlalchemy.engine",
        "sqlalchemy.pool",
        "aiosqlite",
        "asyncpg",
    ],
    "LOG_LEVEL_HTTP": [
        "httpx",
        "httpcore",
    ],
}


def setup_logging() -> None:
    """Configure Python logging levels from application settings."""
    root = logging.getLogger()
    root.setLevel(_parse_level(settings.LOG_LEVEL))

    # uvicorn installs its own handlers; scripts and tests may not.
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        root.addHandler(handler)

    for settings_field, logger_names in _CATEGORY_MAP.items():
        level = _parse_level(getattr(settings, settings_field, "INFO"))
        for name in logger_names:
            logging.getLogger(name).setLevel(level)

    logging.getLogger(__name__).debug(
        "Logging configured: root=%s, sql=%s, http=%s",
        settings.LOG_LEVEL,
        settings.LOG_LEVEL_SQL,
        settings.LOG_LEVEL_HTTP,
    )


def _parse_level(raw: str) -> int:
    """Convert a level name string to a logging constant, defaulting to INFO."""
    numeric = getattr(logging, str(raw).upper(), None)
    if isinstance(numeric, int):
        return numeric
    return logging.INFO
