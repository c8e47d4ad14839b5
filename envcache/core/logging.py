# envcache/core/logging.py
# -----------------------------------------------------------------------------
# Loguru logging setup
# - rotating file sink with backtraces + stderr sink
# - call setup_logging() once at application startup
# -----------------------------------------------------------------------------
import sys
from pathlib import Path

from loguru import logger

from envcache.core.config import settings

_configured = False


def setup_logging(level: str | None = None, log_dir: str | None = None) -> None:
    global _configured
    if _configured:
        return

    lvl = (level or settings.LOG_LEVEL).upper()
    directory = Path(log_dir or settings.LOG_DIR)
    directory.mkdir(exist_ok=True, parents=True)

    logger.remove()  # drop the default handler
    logger.add(sys.stderr, level=lvl)
    logger.add(
        directory / "envcache.log",
        rotation="10 MB",
        retention="10 files",
        enqueue=True,  # safe across worker processes
        backtrace=True,
        diagnose=False,
        level=lvl,
    )
    _configured = True
