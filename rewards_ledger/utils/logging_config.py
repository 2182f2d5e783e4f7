"""
Logging setup for the rewards ledger.

Configures the root logger once per process. Level comes from LOG_LEVEL
(default INFO); set LOG_FORMAT=json for one-line JSON records.
"""
import json
import logging
import os
import sys

_configured = False

TEXT_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


class JsonFormatter(logging.Formatter):
    """Single-line JSON records for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'ts': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        details = getattr(record, 'details', None)
        if details:
            payload['details'] = details
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = None) -> None:
    """Attach a stdout handler to the root logger."""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    handler = logging.StreamHandler(sys.stdout)
    if os.getenv('LOG_FORMAT') == 'json':
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    # SQL echo is noisy at INFO
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)

    _configured = True
