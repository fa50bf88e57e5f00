from dataclasses import dataclass
from typing import Optional
from sqlalchemy.orm.session import Session
from fusion_gate.db import db_security_event
from fusion_gate.log.system_log import system_logger
from fusion_gate.schemas.schemas import SecurityEventCreate


@dataclass(frozen=True)
class AuditOutcome:
    """
    What happened to the audit record of a decision:
    - persisted: the row was written
    - event_id: id of the new row (None when not persisted)
    - error: why it was not written
    """
    persisted: bool
    event_id: Optional[int] = None
    error: Optional[str] = None


def log_security_event(db: Session, event: SecurityEventCreate) -> AuditOutcome:
    """
    Append one security event.
    A failure is written to the system log and returned in the outcome, never raised:
    the caller's block/allow decision must not depend on the audit trail being available.
    """
    try:
        result = db_security_event.create_security_event(db=db, event=event)
    except Exception as ex:  # Anything the helper did not anticipate (driver bug, closed session...)
        system_logger.exception("Failed to log security event %s from %s", event.event_type.value, event.ip_address)
        return AuditOutcome(persisted=False, error=f"{ex.__class__.__name__}: {ex}")

    if not result["success"]:
        system_logger.error("Failed to log security event %s from %s: %s",
                            event.event_type.value, event.ip_address, result["message"])
        return AuditOutcome(persisted=False, error=result["message"])

    return AuditOutcome(persisted=True, event_id=result["data"].id)
