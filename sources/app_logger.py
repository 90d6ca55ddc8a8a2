# app_logger.py
"""
Single source of truth for log configuration.

Every module does ``from app_logger import logger``. Records go to two
places: a bounded in‑memory buffer (INFO and up) that a UI layer can
poll, and a log file that also receives the DEBUG protocol traces.
"""

import logging
from collections import deque
from typing import Deque, List, Optional

from settings import LOG_FILE

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
MAX_LOG_RECORDS = 200

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

logger = logging.getLogger("AranetSync")
logger.setLevel(logging.DEBUG)      # each handler filters for itself
logger.propagate = False

formatter = logging.Formatter(LOG_FORMAT)


class MemoryHandler(logging.Handler):
    """Ring of the newest ``capacity`` formatted lines."""

    def __init__(self, capacity: int = MAX_LOG_RECORDS, level: int = logging.INFO):
        super().__init__(level)
        self.capacity = capacity
        self.buffer: Deque[str] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        self.buffer.append(self.format(record))

    def snapshot(self) -> List[str]:
        return list(self.buffer)


memory_handler = MemoryHandler()
memory_handler.setFormatter(formatter)
logger.addHandler(memory_handler)
log_buffer = memory_handler.buffer

file_handler: Optional[logging.FileHandler] = None


def set_log_file(path: str, level: int = logging.DEBUG) -> logging.FileHandler:
    """
    Point the file handler at ``path``, closing the previous one.
    The file is only created once the first record is written.
    """
    global file_handler
    if file_handler is not None:
        logger.removeHandler(file_handler)
        file_handler.close()
    file_handler = logging.FileHandler(path, encoding="utf-8", delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return file_handler


set_log_file(LOG_FILE)


def log_debug(msg: str, *args, **kwargs) -> None:
    """Shortcut for `logger.debug(msg, *args, **kwargs)`."""
    logger.debug(msg, *args, **kwargs)
