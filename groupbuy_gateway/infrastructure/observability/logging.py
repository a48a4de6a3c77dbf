"""Structured JSON logging for production observability"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from groupbuy_gateway.config import settings

# Set per request by RequestIDMiddleware
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name
        request_id = request_id_var.get()
        if request_id and "request_id" not in log_record:
            log_record["request_id"] = request_id


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


def log_transition(entity: str, entity_id, status: str, **fields: Any) -> None:
    """Log a state transition of a group, order or bid"""
    logging.getLogger("groupbuy_gateway.transitions").info(
        f"{entity} -> {status}",
        extra={
            "entity": entity,
            "entity_id": str(entity_id),
            "step": "transition",
            "status": status,
            **fields,
        },
    )


def log_settlement(
    bid_id,
    supplier_id,
    order_ids: list,
    amount_cents: int,
    credit_delta_cents: int,
) -> None:
    """Log the outcome of a bid acceptance cascade"""
    logging.getLogger("groupbuy_gateway.settlement").info(
        "Bid settled",
        extra={
            "bid_id": str(bid_id),
            "supplier_id": str(supplier_id),
            "order_ids": [str(o) for o in order_ids],
            "step": "settlement_complete",
            "amount_cents": amount_cents,
            "credit_delta_cents": credit_delta_cents,
        },
    )
