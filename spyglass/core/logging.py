"""Rich console logging for the bridge process"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Library loggers held above the service level
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "asyncpg": logging.WARNING,
    "asyncio": logging.ERROR,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def setup_logging(log_level: str = "INFO") -> None:
    """Route every logger through a single RichHandler.

    Safe to call twice: once with the default level before settings are
    loaded, again with the configured level.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = RichHandler(
        console=Console(stderr=True, width=120),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_width=120,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%Y-%m-%d %H:%M:%S]"))

    # force=True: uvicorn may have configured the root logger already
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, quiet_level))
