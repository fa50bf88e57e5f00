from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm.session import Session
from fusion_gate.controllers.security_event_controller import Security_Event_Controller
from fusion_gate.db.database import get_db
from fusion_gate.log.system_log import system_logger
from fusion_gate.schemas.schemas import LogSecurityEventRequest
from fusion_gate.security.config import FUNCTIONS_PREFIX
from fusion_gate.utils.get_ip_client import get_client_ip


router = APIRouter(
    prefix=FUNCTIONS_PREFIX.rstrip("/"),
    tags=["Security Events"]
)


@router.post(
    "/log-security-event",
    summary="Report a security event",
    response_model=dict,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": LogSecurityEventRequest.model_json_schema()}},
        }
    },
)
async def log_security_event(request: Request, db: Session = Depends(get_db)):
    """
    Client-side detections (blocked form input, failed 2FA...) are appended to the audit trail.
    - **event_type**, **endpoint**, **threat_level**, **reason** are required
    - The IP address and user agent are read from the request headers
    - A body that is not a JSON object is acknowledged without being stored
    """
    try:
        data = LogSecurityEventRequest.model_validate_json(await request.body())
    except ValidationError as e:
        system_logger.warning("Unreadable security event report from %s (%d errors)", get_client_ip(request), e.error_count())
        return {"success": True, "message": "Security event acknowledged"}

    return Security_Event_Controller.report_event(request=request, data=data, db=db)
