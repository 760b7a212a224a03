"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from tenant_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level or settings.log_level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_commit(
    tenant_id: str,
    allocation_count: int,
    total_amount: Decimal,
    outcome: str,
    duration_ms: float,
    store: str,
    error: Optional[str] = None,
) -> None:
    """Log structured settlement commit outcome"""
    extra = {
        "tenant_id": tenant_id,
        "step": "settlement_commit",
        "outcome": outcome,
        "allocation_count": allocation_count,
        "total_amount": str(total_amount),
        "duration_ms": duration_ms,
        "store": store,
    }
    if error:
        extra["error"] = error
        logging.getLogger("tenant_ledger.settlement").error("Settlement commit failed", extra=extra)
    else:
        logging.getLogger("tenant_ledger.settlement").info("Settlement committed", extra=extra)
