# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import os
import pathlib
from logging.handlers import RotatingFileHandler
from typing import Optional

from tqdm import tqdm

LOGGER_NAME = "novelgrab"
LOG_FILE_NAME = "novelgrab.log"
LOG_DIR_ENV = "NOVELGRAB_LOG_DIR"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 5
FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
QUIET_LOGGERS = ("asyncio", "playwright", "PIL", "urllib3")


class TqdmHandler(logging.StreamHandler):
    """Console handler that writes through ``tqdm.write`` so chapter bars are not torn."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except Exception:
            self.handleError(record)


def resolve_log_dir(log_dir: Optional[pathlib.Path] = None) -> pathlib.Path:
    if log_dir:
        return pathlib.Path(log_dir).expanduser()
    env = os.getenv(LOG_DIR_ENV, "").strip()
    return pathlib.Path(env).expanduser() if env else pathlib.Path("logs")


def _crawler_file_handler(root: logging.Logger, log_path: pathlib.Path) -> RotatingFileHandler:
    wanted = os.path.abspath(log_path)
    for handler in root.handlers:
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == wanted:
            return handler
    handler = RotatingFileHandler(log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.addFilter(logging.Filter(LOGGER_NAME))
    root.addHandler(handler)
    return handler


def setup_logging(log_dir: Optional[pathlib.Path] = None, verbose: bool = False) -> pathlib.Path:
    """Console output for the run plus a rotating ``novelgrab.log`` with crawler records only.

    Calling it again reuses the installed handlers and only updates levels.
    """
    log_dir = resolve_log_dir(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME
    console_level = logging.DEBUG if verbose else logging.INFO

    fmt = logging.Formatter(FORMAT)
    root = logging.getLogger()
    root.setLevel(console_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)

    console = next((h for h in root.handlers if isinstance(h, TqdmHandler)), None)
    if console is None:
        console = TqdmHandler()
        root.addHandler(console)
    console.setLevel(console_level)
    console.setFormatter(fmt)

    file_handler = _crawler_file_handler(root, log_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(fmt)
    return log_path
