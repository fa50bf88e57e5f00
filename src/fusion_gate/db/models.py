from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, CheckConstraint, Column, DateTime, Integer, String, Text, Unicode
from fusion_gate.db.database import Base

"""
Tables owned by the security layer
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DbSecurityEvent(Base):
    """
    One detected threat (or a client-reported security event).
    Append-only audit record: rows are inserted once and never updated or deleted by the app.
    A blocked row always carries a reason.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        CheckConstraint("NOT blocked OR reason IS NOT NULL", name="ck_security_events_blocked_reason"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(50), nullable=False, index=True)
    ip_address = Column(String(100), nullable=False, index=True)
    user_agent = Column(Unicode(1000))
    endpoint = Column(Unicode(500), nullable=False)
    request_method = Column(String(10))
    request_body = Column(JSON)                     # Parsed body, or {"raw": text} when it was not JSON
    response_status = Column(Integer, default=403)
    threat_level = Column(String(20), nullable=False, index=True)
    reason = Column(Text)
    blocked = Column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes, the column keeps the name
    event_metadata = Column("metadata", JSON)
    location = Column(Unicode(200))
    user_id = Column(String(100))
    detected_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
