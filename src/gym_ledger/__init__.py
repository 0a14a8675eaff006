import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional


LOG_DIR_ENV = "GYM_LEDGER_LOG_DIR"
LOG_FILE_NAME = "gym_ledger.log"


def resolve_log_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return where the rotating log lives.

    ``GYM_LEDGER_LOG_DIR`` wins when set; otherwise logs go to ``.logs`` under
    the working directory, next to the ``config.ini`` the CLI usually runs
    beside.
    """

    environ = os.environ if environ is None else environ
    configured = environ.get(LOG_DIR_ENV, "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path.cwd() / ".logs"


def _configure_logging(log_dir: Path) -> logging.Logger:
    """Configure package-wide logging with file and console handlers."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_file = log_dir / LOG_FILE_NAME
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(f"Warning: unable to open log file '{log_file}': {exc}", file=sys.stderr)

    # CLI output goes to stdout; only problems reach the terminal.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging(resolve_log_dir())
log.info("Logger initialized for the 'gym_ledger' package.")
