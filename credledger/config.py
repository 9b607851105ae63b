# credledger/config.py
"""
Runtime configuration, read from flags first and environment second.

    CREDLEDGER_DB_PATH     SQLite database file
    CREDLEDGER_LOG_LEVEL   default log level (DEBUG, INFO, WARNING, ...)
"""

import logging
import os
from pathlib import Path
from typing import Optional

DB_PATH_ENV = "CREDLEDGER_DB_PATH"
LOG_LEVEL_ENV = "CREDLEDGER_LOG_LEVEL"
DEFAULT_DB_FILENAME = "credentials.db"


def default_cli_db_path() -> Path:
    return Path.home() / ".credledger" / DEFAULT_DB_FILENAME


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. CREDLEDGER_DB_PATH environment variable
    3. Default: ~/.credledger/credentials.db
    """
    if db_flag:
        path = Path(db_flag).resolve()
    else:
        env_path = os.environ.get(DB_PATH_ENV)
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = default_cli_db_path()

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def get_log_level(verbose: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    name = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(verbose: bool = False) -> None:
    """Route package logs through rich. Called once by the CLI entry point."""
    from rich.console import Console
    from rich.logging import RichHandler

    logger = logging.getLogger("credledger")
    logger.setLevel(get_log_level(verbose))
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
