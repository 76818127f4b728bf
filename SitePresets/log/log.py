"""Root logger configuration for SitePresets.

Records always land in an in-memory :class:`TankHandler`. The command line keeps the
stderr stream quiet unless ``--verbose`` is given, and prints the tank's errors when a
command fails.
"""
import logging
import sys
from typing import List, Optional, Tuple

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL = logging.INFO
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

LEVELS: Tuple[int, ...] = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level: int) -> None:
    """
    Apply ``level`` to the root logger and every handler installed on it.

    Raises:
        ValueError: If ``level`` is not one of the standard logging levels.
    """
    if not isinstance(level, int) or level not in LEVELS:
        raise ValueError(f'Invalid logging level {level!r}, expected one of {LEVELS}.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Forward a Qt message to the ``Qt`` logger. Fatal messages exit the process."""
    level = QT_LEVELS.get(mode, logging.WARNING)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Replace the root logger's handlers with a fresh tank and, optionally, a stderr stream.

    Args:
        enable_stream_handler (bool): Also log to stderr. Command output goes to stdout.
        enable_qt_handler (bool): Route Qt messages through Python logging.
        log_level (int): Level of the root logger and its handlers.
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    handlers: List[logging.Handler] = [TankHandler()]
    if enable_stream_handler:
        handlers.append(logging.StreamHandler(sys.stderr))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    set_logging_level(log_level)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank() -> Optional['TankHandler']:
    """Return the TankHandler of the root logger, or None if logging was not set up."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps every formatted record of the process in memory.

    Attributes:
        tank (list[tuple[int, str]]): ``(levelno, message)`` pairs in emission order.
    """

    def __init__(self):
        super().__init__()
        self.tank: List[Tuple[int, str]] = []

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET) -> List[str]:
        """Return the stored messages at or above ``level``."""
        return [msg for lvl, msg in self.tank if lvl >= level]
