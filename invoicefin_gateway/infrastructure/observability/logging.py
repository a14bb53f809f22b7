"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from invoicefin_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_financing_event(
    operation: str,
    outcome: str,
    invoice_id: Optional[str] = None,
    amount_cents: Optional[int] = None,
    reason: Optional[str] = None,
    **extra: Any,
) -> None:
    """Log one structured record per lifecycle or pool operation"""
    logging.getLogger("invoicefin.financing").info(
        "Financing operation completed" if outcome == "ok" else "Financing operation rejected",
        extra={
            "step": operation,
            "outcome": outcome,
            "invoice_id": invoice_id,
            "amount_cents": amount_cents,
            "reason": reason,
            **extra,
        },
    )
