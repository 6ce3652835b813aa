"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args: Any, service_name: str = "autopay-gateway", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "autopay-gateway") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_execution(
    obligation_id: str,
    kind: str,
    period: str,
    status: str,
    amount_cents: int,
    terminal: bool,
    duration_ms: float,
    message: Optional[str] = None,
) -> None:
    """Log structured execution outcome for analysis"""
    logging.getLogger("autopay_gateway.execution").info(
        "Execution completed",
        extra={
            "obligation_id": obligation_id,
            "kind": kind,
            "period": period,
            "step": "execution_complete",
            "status": status,
            "amount_cents": amount_cents,
            "terminal": terminal,
            "duration_ms": duration_ms,
            "detail": message,
        },
    )
