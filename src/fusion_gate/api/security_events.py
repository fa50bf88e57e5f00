from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from fusion_gate.auth.oauth2 import required_admin_user
from fusion_gate.controllers.security_event_controller import (
    DEFAULT_EVENTS_LIMIT, MAX_EVENTS_LIMIT, Security_Event_Controller,
)
from fusion_gate.db.database import get_db
from fusion_gate.schemas.schemas import AdminAuth, SecurityEventDisplay, SecurityEventStats


router = APIRouter(
    prefix="/api/security-events",
    tags=["Security Monitoring"]
)


@router.get("", summary="List security events", response_model=List[SecurityEventDisplay])
def list_security_events(limit: int = Query(DEFAULT_EVENTS_LIMIT, ge=1, le=MAX_EVENTS_LIMIT),
                         threat_level: Optional[str] = Query(None, description="critical/high/medium/low or all"),
                         search: Optional[str] = Query(None, description="IP, endpoint or event type"),
                         user_info: AdminAuth = Depends(required_admin_user),
                         db: Session = Depends(get_db)):
    """
    Newest security events first, optionally filtered by threat level and search term.
    """
    return Security_Event_Controller.list_events(user_info=user_info, db=db, limit=limit,
                                                 threat_level=threat_level, search=search)


@router.get("/stats", summary="Security event counters", response_model=SecurityEventStats)
def security_event_stats(user_info: AdminAuth = Depends(required_admin_user), db: Session = Depends(get_db)):
    """
    Total events, per threat level, blocked requests and distinct IPs.
    """
    return Security_Event_Controller.get_stats(user_info=user_info, db=db)


@router.get("/export.xlsx", summary="Export security events to Excel")
def export_security_events(limit: int = Query(DEFAULT_EVENTS_LIMIT, ge=1, le=MAX_EVENTS_LIMIT),
                           threat_level: Optional[str] = Query(None),
                           search: Optional[str] = Query(None),
                           user_info: AdminAuth = Depends(required_admin_user),
                           db: Session = Depends(get_db)):
    """
    Same filters as the list, as an xlsx download.
    """
    return Security_Event_Controller.export_xlsx(user_info=user_info, db=db, limit=limit,
                                                 threat_level=threat_level, search=search)
