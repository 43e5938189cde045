"""
Logging setup shared by the whole application

Every logger gets a colored console handler, an optional plain-text file
handler and a filter that masks anything shaped like a one-time code.
"""
import logging
import re
import sys
from pathlib import Path
from typing import Optional, Union

from rizara.config import settings

RESET = '\033[0m'
LEVEL_COLORS = {
    logging.DEBUG: '\033[96m',
    logging.INFO: '\033[92m',
    logging.WARNING: '\033[93m',
    logging.ERROR: '\033[91m',
    logging.CRITICAL: '\033[95m\033[1m',
}

LOG_FORMAT = '%(levelname)-8s | %(asctime)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# a standalone 6-digit token; digits inside emails, UUIDs and other identifiers are left alone
OTP_PATTERN = re.compile(r'(?<![\w@.-])\d{6}(?![\w@-]|\.\w)')


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name"""

    def __init__(self):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)
        self._formatters = {
            level: logging.Formatter(
                LOG_FORMAT.replace('%(levelname)-8s', f'{color}%(levelname)-8s{RESET}'),
                datefmt=DATE_FORMAT)
            for level, color in LEVEL_COLORS.items()
        }

    def format(self, record):
        formatter = self._formatters.get(record.levelno)
        if formatter is None:
            return super().format(record)
        return formatter.format(record)


class OTPRedactionFilter(logging.Filter):
    """Mask standalone 6-digit tokens so a code can never end up in the logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = OTP_PATTERN.sub('******', message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        return logging.getLevelName(level.upper())
    return level


def setup_logger(
    name: str,
    level: Union[int, str, None] = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure and return a named logger

    Args:
        name: logger name
        level: log level; defaults to settings.log_level
        log_file: optional path of a plain-text log file; defaults to
            settings.log_file

    Returns:
        The configured Logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    # handlers are attached once per name
    if logger.handlers:
        return logger

    logger.addFilter(OTPRedactionFilter())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    log_file = log_file or settings.log_file
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


app_logger = setup_logger('app')
api_logger = setup_logger('api')
db_logger = setup_logger('database', level=logging.WARNING)
otp_logger = setup_logger('otp')
auth_logger = setup_logger('auth')


def get_logger(name: str) -> logging.Logger:
    """Get or create a logger"""
    return setup_logger(name)
