"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from adelanto_gateway.config import settings


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


def log_step_outcome(
    step: str,
    autorizacion: Optional[str],
    success: bool,
    error_type: Optional[str],
    duration_ms: float,
) -> None:
    """Log structured wizard step outcome for analysis"""
    logging.getLogger("adelanto_gateway.steps").log(
        logging.INFO if success else logging.WARNING,
        "Step completed",
        extra={
            "step": step,
            "autorizacion": autorizacion,
            "outcome": "success" if success else "failure",
            "error_type": error_type,
            "duration_ms": duration_ms,
        },
    )
