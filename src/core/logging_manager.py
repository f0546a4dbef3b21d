"""
Logging setup for the offline sync service
Console and rotating file handlers with secret masking
"""

import logging
import logging.handlers
import json
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict


class SecuritySafeFormatter(logging.Formatter):
    """Formatter that masks credential material in log messages"""

    sensitive_fields = (
        'password', 'hashedpassword', 'secret', 'token', 'authorization',
        'apikey', 'api_key'
    )

    def format(self, record):
        message = record.getMessage()
        record.msg = self._sanitize_message(message)
        record.args = None
        return super().format(record)

    def _sanitize_message(self, message: str) -> str:
        lowered = message.lower()
        for field in self.sensitive_fields:
            if field in lowered:
                # field=value, field: value, "field": "value"
                pattern = rf'({field})["\']?\s*[:=]\s*["\']?([^"\'\s,}}]+)'
                message = re.sub(pattern, r'\1=***', message, flags=re.IGNORECASE)
        return message


class JSONFormatter(SecuritySafeFormatter):
    """One JSON object per line"""

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'component': record.name,
            'message': self._sanitize_message(record.getMessage()),
        }
        if record.exc_info:
            log_data['stack_trace'] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


_configured = False


def setup_logging(config: Dict[str, Any], force: bool = False):
    """Configure the root logger from the ``logging`` config section"""
    global _configured
    if _configured and not force:
        return

    logging_config = config.get('logging', {})
    level = getattr(logging, str(logging_config.get('level', 'INFO')).upper(), logging.INFO)

    if logging_config.get('json'):
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = SecuritySafeFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_file = logging_config.get('file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding='utf-8'
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    _configured = True
    logging.getLogger(__name__).info("Logging configured")

