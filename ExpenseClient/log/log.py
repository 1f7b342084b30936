import logging
import re
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..ui.actions import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

VALID_LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

MASK = '***'

# Loggers that would otherwise print request lines and headers at DEBUG
QUIET_LOGGERS = ('urllib3', 'google', 'requests')

SECRET_PATTERNS = (
    re.compile(r'(Bearer\s+)[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),
    re.compile(
        r'''(["']?(?:token|authToken|refreshToken|password|otp)["']?\s*[:=]\s*["']?)[^"',\s}]+''',
        re.IGNORECASE,
    ),
)


def redact(text):
    """Masks bearer tokens, passwords and OTP codes in ``text``."""
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(r'\1' + MASK, text)
    return text


class SecretFilter(logging.Filter):
    """
    Handler filter that rewrites each record with its secrets masked.

    The record's arguments are merged into the message first, so a token passed
    as a ``%s`` argument is masked the same way as one written into the message.

    """

    def filter(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def set_logging_level(level):
    """
    Applies ``level`` to the root logger and every handler attached to it.

    Args:
        level (int): One of the standard logging levels.

    Raises:
        ValueError: If ``level`` is not a standard logging level.

    """
    if not isinstance(level, int) or isinstance(level, bool):
        raise ValueError('Logging level must be an integer.')
    if level not in VALID_LEVELS:
        raise ValueError(f'Invalid logging level {level}. Use one of {VALID_LEVELS}.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Routes Qt's own diagnostics through the ``Qt`` logger."""
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode == QtMsgType.QtCriticalMsg:
        logger.error(message)
    elif mode == QtMsgType.QtFatalMsg:
        logger.critical(message)
        sys.exit(1)


def _add_handler(root_logger, handler, formatter, level):
    handler.setFormatter(formatter)
    handler.setLevel(level)
    handler.addFilter(SecretFilter())
    root_logger.addHandler(handler)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Configures the client's root logger.

    Existing handlers are replaced. Every installed handler masks secrets
    before formatting, and the HTTP transport loggers are capped at WARNING.

    Args:
        enable_stream_handler (bool): Also print records to stdout.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int): The level applied to the root logger and its handlers.

    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        _add_handler(root_logger, logging.StreamHandler(sys.stdout), formatter, log_level)
    _add_handler(root_logger, TankHandler(), formatter, log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """Returns the :class:`TankHandler` on the root logger, or None."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps formatted records in memory so the session history can be shown to the user.

    Error records emit :attr:`signals.showLogs`.

    Attributes:
        tank (list[tuple[int, str]]): ``(levelno, formatted message)`` pairs, oldest first.

    """

    def __init__(self):
        super().__init__()
        self.tank = []

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)
            return
        if record.levelno >= logging.ERROR:
            signals.showLogs.emit()

    def get_logs(self, level=logging.NOTSET):
        """Returns stored messages at ``level`` or above."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()
