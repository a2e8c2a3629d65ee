import logging
import os
from pathlib import Path

__all__ = ["LOG_FILE", "logger"]

LOG_DIR = Path(os.getenv("COMPANION_LOG_DIR", "./log"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "companion.log"

logger = logging.getLogger("cursor_companion")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    _fh = logging.FileHandler(LOG_FILE, encoding="utf-8")
    _fh.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_fh)
