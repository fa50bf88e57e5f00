from datetime import datetime
from typing import Optional
from sqlalchemy import case, func, or_
from sqlalchemy import exc
from sqlalchemy.orm.session import Session
from fusion_gate.db.models import DbSecurityEvent
from fusion_gate.schemas.schemas import SecurityEventCreate


"""
Queries on the security_events table.
Every helper returns {"success", "data", "message"} and never raises a database error to its caller.
There is deliberately no update or delete helper: the table is an append-only audit trail.
"""


def create_security_event(db: Session, event: SecurityEventCreate):
    """
    Insert one security event
    - `event`: validated record (a blocked event always has a reason)
    """
    response = {
        "success": False,
        "data": None,
        "message": "Failed to write the security event"
    }

    new_event = DbSecurityEvent(
        event_type=event.event_type.value,
        ip_address=event.ip_address,
        user_agent=event.user_agent,
        endpoint=event.endpoint,
        request_method=event.request_method,
        request_body=event.request_body,
        response_status=event.response_status,
        threat_level=event.threat_level.value,
        reason=event.reason,
        blocked=event.blocked,
        event_metadata=event.metadata,
        location=event.location,
        user_id=event.user_id,
    )

    try:
        db.add(new_event)
        db.commit()
        # refresh loads the generated id and detected_at
        db.refresh(new_event)

        response["success"] = True
        response["data"] = new_event
        response["message"] = "Security event written"

    except exc.IntegrityError as e:  # Constraint violation (blocked without reason, missing column...)
        db.rollback()
        response["message"] = f"Failed to write the security event: constraint violation ({str(e)})"

    except exc.DataError as e:  # Value does not fit its column
        db.rollback()
        response["message"] = f"Failed to write the security event: invalid data ({str(e)})"

    except exc.SQLAlchemyError as e:  # Any other database error (connection lost, missing table...)
        db.rollback()
        response["message"] = f"Failed to write the security event: {str(e)}"

    return response


def count_events_by_ip_since(db: Session, ip_address: str, since: datetime):
    """
    Count the security events of one IP detected at or after `since`
    """
    response = {
        "success": False,
        "data": 0,
        "message": "Failed to count security events"
    }

    try:
        count = (
            db.query(func.count(DbSecurityEvent.id))
            .filter(DbSecurityEvent.ip_address == ip_address)
            .filter(DbSecurityEvent.detected_at >= since)
            .scalar()
        )
        response["success"] = True
        response["data"] = int(count or 0)
        response["message"] = "Security events counted"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Failed to count security events: {str(e)}"

    return response


def _filtered_query(db: Session, threat_level: Optional[str], search: Optional[str]):
    query = db.query(DbSecurityEvent)

    if threat_level:
        query = query.filter(DbSecurityEvent.threat_level == threat_level)

    if search:
        term = search.lower()
        # IP is matched as typed, endpoint and event type case-insensitively
        query = query.filter(or_(
            DbSecurityEvent.ip_address.contains(search, autoescape=True),
            func.lower(DbSecurityEvent.endpoint).contains(term, autoescape=True),
            func.lower(DbSecurityEvent.event_type).contains(term, autoescape=True),
        ))

    return query


def list_security_events(db: Session, limit: int = 500, threat_level: Optional[str] = None, search: Optional[str] = None):
    """
    Newest security events first
    - `limit`: maximum number of rows
    - `threat_level`: keep one level only (critical/high/medium/low)
    - `search`: substring of the IP, the endpoint or the event type
    """
    response = {
        "success": False,
        "data": [],
        "message": "Failed to read security events"
    }

    try:
        events = (
            _filtered_query(db, threat_level, search)
            .order_by(DbSecurityEvent.detected_at.desc(), DbSecurityEvent.id.desc())
            .limit(limit)
            .all()
        )
        response["success"] = True
        response["data"] = events
        response["message"] = "Security events found" if events else "No security event recorded"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Failed to read security events: {str(e)}"

    return response


def get_security_event_stats(db: Session):
    """
    Counters of the monitoring page: total, per threat level, blocked and distinct IPs
    """
    response = {
        "success": False,
        "data": None,
        "message": "Failed to compute security statistics"
    }

    def _level(level: str):
        return func.sum(case((DbSecurityEvent.threat_level == level, 1), else_=0))

    try:
        row = db.query(
            func.count(DbSecurityEvent.id),
            _level("critical"),
            _level("high"),
            _level("medium"),
            _level("low"),
            func.sum(case((DbSecurityEvent.blocked.is_(True), 1), else_=0)),
            func.count(func.distinct(DbSecurityEvent.ip_address)),
        ).one()

        total, critical, high, medium, low, blocked, unique_ips = row
        response["success"] = True
        response["data"] = {
            "total": int(total or 0),
            "critical": int(critical or 0),
            "high": int(high or 0),
            "medium": int(medium or 0),
            "low": int(low or 0),
            "blocked": int(blocked or 0),
            "unique_ips": int(unique_ips or 0),
        }
        response["message"] = "Security statistics computed"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Failed to compute security statistics: {str(e)}"

    return response
