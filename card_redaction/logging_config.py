# card_redaction/logging_config.py

"""Structured logging configuration for production deployment.

Log output never carries a full card number: every record passes through
``CardNumberMaskingFilter`` before it is formatted.
"""

import logging
import re
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes present on every LogRecord; anything else came from `extra=`
_RESERVED_ATTRS = set(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

# 13 to 19 digits, optionally separated by single spaces or hyphens
_CARD_LIKE = re.compile(r"(?<!\d)(?:\d[ -]?){12,18}\d(?!\d)")

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def mask_card_numbers(text: str) -> str:
    """Replaces card-like digit runs with a mask that keeps the last four digits."""

    def _mask(found: "re.Match[str]") -> str:
        digits = re.sub(r"\D", "", found.group(0))
        return f"****{digits[-4:]}"

    return _CARD_LIKE.sub(_mask, text)


class CardNumberMaskingFilter(logging.Filter):
    """Masks card-like numbers in the message and in string `extra=` values."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = mask_card_numbers(record.getMessage())
        record.args = ()

        for key, value in list(vars(record).items()):
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, str):
                setattr(record, key, mask_card_numbers(value))

        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines; plain text is easier to read locally
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if root_logger.handlers:
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(CardNumberMaskingFilter())
    handler.setFormatter(
        StructuredFormatter() if json_format else logging.Formatter(PLAIN_FORMAT)
    )

    root_logger.addHandler(handler)

    # Analysis client, HTTP and imaging libraries are chatty at INFO
    for name in ("botocore", "boto3", "urllib3", "PIL"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(
        "Logging configured",
        extra={"log_level": level, "json_format": json_format},
    )
