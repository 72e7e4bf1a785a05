"""
Console logging configuration.

JSON output for automation, plain text for people at a terminal.
"""

import json
import logging
from datetime import datetime, timezone

LOGGER_NAME = "jamf_provisioner"


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for attr in ('run_id', 'resource_type', 'resource_id'):
            value = getattr(record, attr, None)
            if value is not None:
                log_entry[attr] = value

        return json.dumps(log_entry)


def configure_logging(log_level: str = "WARNING", log_format: str = "text") -> logging.Logger:
    """Configure the package logger's console handler.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ...)
        log_format: "json" or "text"

    Returns:
        Configured package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Replace only our console handler so an open audit log survives
    for handler in list(logger.handlers):
        if getattr(handler, "_provisioner_console", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.WARNING))
    console_handler._provisioner_console = True

    if log_format == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    logger.addHandler(console_handler)
    return logger
