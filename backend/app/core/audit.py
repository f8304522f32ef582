"""
Audit logging for checkout decisions.

Every session transition and every finalized run is written as one JSON
object to the separate "audit" logger, so the decision trail can be shipped
to centralized logging independently of application logs.

Customer emails are masked before they reach the log.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def mask_email(email: Optional[str]) -> Optional[str]:
    """'jane.doe@example.com' -> 'j***@example.com'."""
    if not email or "@" not in email:
        return email
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


class AuditLog:
    """Central audit logging for checkout events."""

    @staticmethod
    def log_checkout_event(
        event: str,  # "start", "confirm", "cancel", "expire", "pay"
        session_id: str,
        medicine_name: str,
        quantity: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Log a checkout session transition.

        Usage:
            AuditLog.log_checkout_event("confirm", session.id, "Dolo 650", 2)
            AuditLog.log_checkout_event("pay", session.id, "Dolo 650", 2, {"commit_ok": False})
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": f"checkout.{event}",
            "session_id": session_id,
            "medicine_name": medicine_name,
            "quantity": quantity,
        }
        if details:
            if "email" in details:
                details = {**details, "email": mask_email(details["email"])}
            log_entry["details"] = details

        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_run_finalized(
        run_id: str,
        outcome: str,
        approved: bool,
        commit_ok: bool,
        trace_count: int,
        suggestion_score: int,
        order_id: Optional[str] = None,
    ):
        """
        Log the terminal RunRecord of one utterance-to-resolution cycle.

        Usage:
            AuditLog.log_run_finalized(run.run_id, "COMMITTED", True, True, 5, 100, order_id="...")
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "run.finalized",
            "run_id": run_id,
            "outcome": outcome,
            "approved": approved,
            "commit_ok": commit_ok,
            "trace_count": trace_count,
            "suggestion_score": suggestion_score,
        }
        if order_id:
            log_entry["order_id"] = order_id

        audit_logger.info(json.dumps(log_entry))

    @staticmethod
    def log_collaborator_failure(collaborator: str, reason: str):
        """
        Log a failed external call (catalog, policy service, commit, STT).

        Usage:
            AuditLog.log_collaborator_failure("transcriber", "STT API failed: 502")
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_severity": "WARNING",
            "event_type": "collaborator.unavailable",
            "collaborator": collaborator,
            "reason": reason,
        }

        audit_logger.warning(json.dumps(log_entry))
