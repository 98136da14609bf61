import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional


__version__ = '1.0.0'

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'time': datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def parse_log_level(level: str) -> int:
    """
    Convert a level name (debug, info, warn, error) to a logging level.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"invalid log level: {level} (valid: debug, info, warn, error)")


def _console_formatter(fmt: str) -> logging.Formatter:
    fmt = fmt.lower()
    if fmt == 'json':
        return JSONFormatter()
    if fmt == 'text':
        return logging.Formatter(
            'time=%(asctime)s level=%(levelname)s logger=%(name)s msg="%(message)s"'
        )
    return logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )


def configure_logging(level: str = 'info', fmt: str = 'pretty', log_file: Optional[str] = None):
    """
    Configure application logging.

    Args:
        level: debug, info, warn or error (unknown values fall back to info)
        fmt: pretty, text or json console output
        log_file: Optional path for a rotating log file
    """
    try:
        log_level = parse_log_level(level)
    except ValueError as e:
        log_level = logging.INFO
        logging.getLogger(__name__).error(f"{e}, using INFO")

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(_console_formatter(fmt))
    handlers = [console_handler]

    # File handler
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        ))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # APScheduler is chatty at INFO
    logging.getLogger('apscheduler').setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
