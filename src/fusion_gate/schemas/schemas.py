import enum
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, model_validator

"""
Shapes exchanged with the API and between the security components.
Request models keep their fields optional where the endpoint answers its own 400 message.
"""


class EventType(str, enum.Enum):
    SQL_INJECTION = "sql_injection"
    XSS_ATTEMPT = "xss_attempt"
    PATH_TRAVERSAL = "path_traversal"
    COMMAND_INJECTION = "command_injection"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    BRUTE_FORCE = "brute_force"
    UNAUTHORIZED_ACCESS = "unauthorized_access"


class ThreatLevel(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SecurityEventCreate(BaseModel):
    """
    Record written by the security event logger
    - **event_type**: category of the threat
    - **ip_address** / **user_agent**: origin of the request
    - **endpoint** / **request_method**: what was targeted
    - **request_body**: parsed body kept for forensics
    - **threat_level**: triage label for the monitoring UI
    - **reason**: human readable, mandatory when **blocked** is true
    - **metadata**: detected value, user agent or request rate
    """
    event_type: EventType
    ip_address: str
    user_agent: Optional[str] = None
    endpoint: str
    request_method: Optional[str] = None
    request_body: Optional[Any] = None
    response_status: int = 403
    threat_level: ThreatLevel
    reason: Optional[str] = None
    blocked: bool = False
    metadata: Optional[dict] = None
    location: Optional[str] = None
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def _blocked_needs_reason(self):
        if self.blocked and not self.reason:
            raise ValueError("A blocked security event must carry a reason")
        return self


class SecurityEventDisplay(BaseModel):
    """
    Security event as shown by the monitoring endpoints
    """
    id: int
    event_type: str
    ip_address: str
    user_agent: Optional[str] = None
    endpoint: str
    request_method: Optional[str] = None
    request_body: Optional[Any] = None
    response_status: Optional[int] = None
    threat_level: str
    reason: Optional[str] = None
    blocked: bool
    metadata: Optional[Any] = None
    location: Optional[str] = None
    detected_at: datetime

    class Config():
        from_attributes = True

    @model_validator(mode="before")
    @classmethod
    def _read_metadata_column(cls, data):
        # The ORM attribute is event_metadata ("metadata" is reserved by SQLAlchemy)
        if hasattr(data, "event_metadata"):
            return {
                column: getattr(data, "event_metadata" if column == "metadata" else column)
                for column in cls.model_fields
            }
        return data


class SecurityEventStats(BaseModel):
    total: int
    critical: int
    high: int
    medium: int
    low: int
    blocked: int
    unique_ips: int


class LogSecurityEventRequest(BaseModel):
    """
    Security event reported by a client. The four required fields are checked by the endpoint
    so a missing one answers "Missing required fields".
    """
    event_type: Optional[str] = None
    endpoint: Optional[str] = None
    request_method: Optional[str] = None
    request_body: Optional[Any] = None
    response_status: Optional[int] = None
    threat_level: Optional[str] = None
    reason: Optional[str] = None
    metadata: Optional[dict] = None
    location: Optional[str] = None
    blocked: Optional[bool] = None
    user_id: Optional[str] = None


class SignupRequest(BaseModel):
    """
    Signup form of the marketing site
    - **email**, **fullName**, **password**: required
    - **userType**: account type, "creator" by default
    """
    email: Optional[str] = None
    fullName: Optional[str] = None
    password: Optional[str] = None
    userType: str = "creator"


class AdminAuth(BaseModel):
    """
    Admin identity decoded from a bearer token
    """
    ID: str
    Email: str
    Privilege: str
