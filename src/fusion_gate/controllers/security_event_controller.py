import io
from typing import List, Optional
from fastapi import HTTPException, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.orm.session import Session
from fusion_gate.db import db_security_event
from fusion_gate.log.system_log import system_logger
from fusion_gate.schemas.schemas import (
    AdminAuth, EventType, LogSecurityEventRequest, SecurityEventCreate,
    SecurityEventDisplay, SecurityEventStats, ThreatLevel,
)
from fusion_gate.security.event_logger import log_security_event
from fusion_gate.utils.get_ip_client import get_client_ip

# Upper bound of the monitoring list, whatever the caller asks
MAX_EVENTS_LIMIT = 1000
DEFAULT_EVENTS_LIMIT = 500

EXPORT_COLUMNS = ["Date", "IP Address", "Event Type", "Threat Level", "Endpoint", "Method", "Status", "Reason", "Blocked"]


def _check_threat_level(threat_level: Optional[str]) -> Optional[str]:
    if not threat_level or threat_level == "all":
        return None
    if threat_level not in {level.value for level in ThreatLevel}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": f"Unknown threat level: {threat_level}",
            }
        )
    return threat_level


def _read_events(db: Session, limit: int, threat_level: Optional[str], search: Optional[str]) -> List[SecurityEventDisplay]:
    events = db_security_event.list_security_events(
        db=db,
        limit=min(limit, MAX_EVENTS_LIMIT),
        threat_level=_check_threat_level(threat_level),
        search=search or None,
    )
    if not events["success"]:
        system_logger.error("Security event listing failed: %s", events["message"])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": "Failed to read security events",
            }
        )
    return [SecurityEventDisplay.model_validate(event) for event in events["data"]]


class Security_Event_Controller:
    """
    Controller of the security_events table:
    - admins read, filter, count and export events (privilege checked by required_admin_user)
    - clients report events they detected themselves
    """

    def list_events(user_info: AdminAuth, db: Session, limit: int = DEFAULT_EVENTS_LIMIT,
                    threat_level: Optional[str] = None, search: Optional[str] = None) -> List[SecurityEventDisplay]:
        """
        Newest events first
        - `limit`: capped to MAX_EVENTS_LIMIT
        - `threat_level`: critical/high/medium/low, "all" or empty for every level
        - `search`: substring of the IP, endpoint or event type
        """
        return _read_events(db, limit, threat_level, search)

    def get_stats(user_info: AdminAuth, db: Session) -> SecurityEventStats:
        """
        Counters of the whole table (not only the listed page)
        """
        stats = db_security_event.get_security_event_stats(db=db)
        if not stats["success"]:
            system_logger.error("Security statistics failed: %s", stats["message"])
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "message": "Failed to compute security statistics",
                }
            )
        return SecurityEventStats(**stats["data"])

    def export_xlsx(user_info: AdminAuth, db: Session, limit: int = DEFAULT_EVENTS_LIMIT,
                    threat_level: Optional[str] = None, search: Optional[str] = None) -> StreamingResponse:
        """
        Export the filtered list to an xlsx workbook (one row per event)
        """
        events = _read_events(db, limit, threat_level, search)

        wb = Workbook()
        ws = wb.active
        ws.title = "SecurityEvents"
        ws.append(EXPORT_COLUMNS)
        for event in events:
            ws.append([
                event.detected_at.strftime("%Y-%m-%d %H:%M:%S"),
                event.ip_address,
                event.event_type,
                event.threat_level,
                event.endpoint,
                event.request_method or "",
                event.response_status,
                event.reason or "",
                "Yes" if event.blocked else "No",
            ])

        # Write the workbook in memory and stream it back
        bio = io.BytesIO()
        wb.save(bio)
        bio.seek(0)

        headers = {
            "Content-Disposition": 'attachment; filename="security_events.xlsx"',
            "Cache-Control": "no-store",
        }

        return StreamingResponse(
            bio,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )

    def report_event(request: Request, data: LogSecurityEventRequest, db: Session) -> dict:
        """
        Store an event reported by a client
        - 400 "Missing required fields" without event_type, endpoint, threat_level or reason
        - IP address and user agent are taken from the request headers
        - A storage failure is acknowledged anyway: reporting must never break the caller's flow
        """
        if not (data.event_type and data.endpoint and data.threat_level and data.reason):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": "Missing required fields",
                }
            )

        if data.event_type not in {e.value for e in EventType}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": f"Unknown event_type: {data.event_type}",
                }
            )

        if data.threat_level not in {level.value for level in ThreatLevel}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": f"Unknown threat_level: {data.threat_level}",
                }
            )

        event = SecurityEventCreate(
            event_type=EventType(data.event_type),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent") or "unknown",
            endpoint=data.endpoint,
            request_method=data.request_method or "POST",
            request_body=data.request_body,
            response_status=data.response_status or 403,
            threat_level=ThreatLevel(data.threat_level),
            reason=data.reason,
            blocked=bool(data.blocked),
            metadata=data.metadata,
            location=data.location,
            user_id=data.user_id,
        )

        outcome = log_security_event(db, event)
        if not outcome.persisted:
            return {
                "success": True,
                "event_id": None,
                "message": "Security event acknowledged (logging unavailable)",
            }

        return {
            "success": True,
            "event_id": outcome.event_id,
            "message": "Security event logged successfully",
        }
