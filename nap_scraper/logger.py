"""Logging setup: console plus a rotating file under the cache's log dir."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Union

# httpx logs every request at INFO; the scraper already logs each download
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logger(log_dir: str = "logs", level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Configure the "nap_scraper" logger once. `level` may be a name like "DEBUG"."""
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger("nap_scraper")
    logger.setLevel(level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    logger.addHandler(console)

    # 10MB per file, keep 5
    run_log = RotatingFileHandler(
        os.path.join(log_dir, "nap_scraper.log"),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    run_log.setFormatter(fmt)
    logger.addHandler(run_log)

    return logger
