"""
Logging configuration for the attestation registry.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from .util import mask_sensitive

AUDIT_LOGGER = "attestation_registry.audit"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Audit records carry their typed fields under the top level; fields
    left as None (an absent signer, say) are dropped.
    """

    service = "attestation-registry"

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
                         + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.name != AUDIT_LOGGER:
            log_data["location"] = f"{record.module}:{record.funcName}:{record.lineno}"

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in getattr(record, "extra_fields", {}).items():
            if value is not None:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for registry audit events.

    One method per mutation outcome, plus rejections and
    security-relevant events (bad signatures, wrong signer, replays).
    """

    def __init__(self, name: str = AUDIT_LOGGER):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, message: str = "", **fields) -> None:
        fields["event_type"] = event_type
        self._logger.log(level, "%s: %s", event_type, message, extra={"extra_fields": fields})

    def program_initialized(self, authority: str) -> None:
        self._log(
            logging.INFO,
            "PROGRAM_INITIALIZED",
            authority=authority,
            message=f"Program initialized with authority {authority}"
        )

    def attestation_created(
        self,
        address: str,
        jurisdiction: str,
        attestation_type: str,
        tax_year: int,
        num_wallets: int
    ) -> None:
        """Log a newly issued attestation."""
        self._log(
            logging.INFO,
            "ATTESTATION_CREATED",
            address=address,
            jurisdiction=jurisdiction,
            attestation_type=attestation_type,
            tax_year=tax_year,
            num_wallets=num_wallets,
            message=f"{attestation_type} attestation created for {jurisdiction} {tax_year}"
        )

    def status_updated(self, address: str, old_status: str, new_status: str) -> None:
        self._log(
            logging.INFO,
            "STATUS_UPDATED",
            address=address,
            old_status=old_status,
            new_status=new_status,
            message=f"Status {old_status} -> {new_status}"
        )

    def attestation_revoked(self, address: str, revoked_at: int) -> None:
        self._log(
            logging.INFO,
            "ATTESTATION_REVOKED",
            address=address,
            revoked_at=revoked_at,
            message=f"Attestation {address} revoked"
        )

    def mutation_rejected(
        self,
        instruction: str,
        error_code: str,
        reason: str,
        signer: Optional[str] = None
    ) -> None:
        """Log a rejected mutation. Nothing was written."""
        self._log(
            logging.WARNING,
            "MUTATION_REJECTED",
            instruction=instruction,
            error_code=error_code,
            reason=reason,
            signer=signer,
            message=f"{instruction} rejected: {error_code}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        if "signature" in details and isinstance(details["signature"], str):
            details["signature"] = mask_sensitive(details["signature"], 8)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Route all records to stdout (and optionally a file).

    Args:
        level: Root log level name
        json_format: JSON lines when True, plain text otherwise
        log_file: Optional path that receives the same stream
    """
    formatter: logging.Formatter = StructuredFormatter() if json_format else logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    )
    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level.upper()))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)

    # the audit trail is always kept, even when the root level is raised
    logging.getLogger(AUDIT_LOGGER).setLevel(logging.INFO)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (generated when absent) to the current context."""
    if not request_id:
        request_id = uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
