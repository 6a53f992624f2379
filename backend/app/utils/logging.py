"""Structured audit logging for policy operations."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredAuditLogger:
    """Structured logger for ingestion, retrieval and status changes."""

    def log_event(
        self,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        *,
        success: bool = True,
        details: dict[str, Any] | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log an audit event with structured data."""
        log_data: dict[str, Any] = {
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "success": success,
        }

        if details:
            log_data["details"] = details
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Audit: {action} {resource_type} - {'success' if success else 'failure'}"

        if success:
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})


audit_logger = StructuredAuditLogger()
