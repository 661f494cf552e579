"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from credit_workflow.config import settings
from credit_workflow.domain.models import DecisionEvent


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


def log_transition(
    event: DecisionEvent,
    request_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log one workflow transition for analysis"""
    logging.info(
        "Decision event recorded",
        extra={
            "request_id": request_id,
            "application_id": event.application_id,
            "event_id": event.event_id,
            "step": event.kind.value.lower(),
            "actor_id": event.actor_id,
            "actor_role": event.actor_role,
            "prior_decision": event.prior_decision.value if event.prior_decision else None,
            "decision": event.decision.value if event.decision else None,
            "score": event.score,
            "duration_ms": duration_ms,
        },
    )
