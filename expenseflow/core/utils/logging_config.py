"""
Logging setup for the expenseflow service.

Production (PRODUCTION=true or running under gunicorn) writes one JSON object
per line; development gets a short coloured line per record.
"""

import os
import sys
import json
import logging
from datetime import datetime, timezone

ROOT_LOGGER = 'expenseflow'


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'where': f'{record.module}.{record.funcName}:{record.lineno}',
        }
        context = getattr(record, 'context', None)
        if context:
            entry['context'] = context
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Readable single-line output for local runs."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        reset = self.RESET if color else ''
        when = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        short_name = record.name.replace(f'{ROOT_LOGGER}.', '', 1)

        line = f'{color}[{when}] {record.levelname:8}{reset} {short_name:28} {record.getMessage()}'

        context = getattr(record, 'context', None)
        if context:
            line += ' | ' + ' '.join(f'{k}={v}' for k, v in context.items())
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = 'INFO', json_format: bool = None) -> logging.Logger:
    """Attach a stdout handler to the 'expenseflow' logger tree.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_format: Force JSON output. None picks it from the environment.

    Returns:
        The 'expenseflow' logger.
    """
    if json_format is None:
        json_format = os.environ.get('PRODUCTION', '').lower() == 'true' or \
                      'gunicorn' in os.environ.get('SERVER_SOFTWARE', '')

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else DevelopmentFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log message with key/value context rendered by both formatters."""
    logger.log(level, message, extra={'context': context})
