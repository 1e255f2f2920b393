"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, List, Optional

from pythonjsonlogger import jsonlogger

from pawnbook.config import settings
from pawnbook.utils.date_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
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


def log_submission(
    request_id: Optional[str],
    ticket_number: str,
    customer_id: str,
    principal: int,
    new_customer: bool,
    replayed: bool,
    duration_ms: float,
) -> None:
    """Log structured loan submission outcome"""
    logging.info(
        "Loan submitted",
        extra={
            "request_id": request_id,
            "ticket_number": ticket_number,
            "customer_id": customer_id,
            "step": "submission_complete",
            "principal": principal,
            "new_customer": new_customer,
            "replayed": replayed,
            "duration_ms": duration_ms,
        },
    )


def log_submission_failure(
    request_id: Optional[str],
    step: str,
    completed_steps: List[str],
    error: str,
) -> None:
    logging.warning(
        "Loan submission failed",
        extra={
            "request_id": request_id,
            "step": step,
            "completed_steps": completed_steps,
            "error": error,
        },
    )


def log_status_change(loan_id: str, from_status: str, to_status: str, item_status: Optional[str] = None) -> None:
    """Log a loan status transition and its item cascade"""
    logging.info(
        "Loan status changed",
        extra={
            "loan_id": loan_id,
            "from_status": from_status,
            "to_status": to_status,
            "item_status": item_status,
        },
    )
