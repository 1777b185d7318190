"""Centralized logging configuration."""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """Log to stderr through ``rich`` and, optionally, to a rotating file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        log_time_format="[%X]",
    )
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter(fmt=_FILE_FORMAT, datefmt=_DATE_FORMAT))
        root_logger.addHandler(file_handler)
