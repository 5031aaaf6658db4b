"""Structured logging for store writes, feed delivery and external calls."""

import logging
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)


class StructuredSyncLogger:
    """Structured logger for trip synchronization events."""

    def log_write(
        self,
        action: str,
        trip_id: UUID,
        outcome: str,
        error_reason: str | None = None,
        **fields: Any,
    ) -> None:
        """Log a write intent (pay, react, edit, activity change) and its outcome."""
        log_data: dict[str, Any] = {
            "trip_id": str(trip_id),
            "action": action,
            "outcome": outcome,
            **fields,
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Trip write: {action} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    def log_external_call(
        self,
        call: str,
        outcome: str,
        latency_ms: float,
        trip_id: UUID | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log an outbound call to pricing, generation or image services."""
        log_data: dict[str, Any] = {
            "call": call,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if trip_id is not None:
            log_data["trip_id"] = str(trip_id)
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"External call: {call} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
