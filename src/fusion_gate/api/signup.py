from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from fusion_gate.controllers.signup_controller import Signup_Controller
from fusion_gate.schemas.schemas import SignupRequest
from fusion_gate.security.gate import GateResult, security_gate


router = APIRouter(
    prefix="/api",
    tags=["Signup"]
)


@router.post(
    "/signup",
    summary="Sign up a new user",
    status_code=status.HTTP_201_CREATED,
    response_model=dict,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": SignupRequest.model_json_schema()}},
        }
    },
)
async def signup(request: Request, _: GateResult = Depends(security_gate("signup-user"))):
    """
    Signup of the marketing site, screened by the security gate first:
    - 403 when the body or the caller looks like an attack (a body that is not JSON is scanned as raw text)
    - 400 when the body is not a signup form, on missing fields, invalid email or short password
    """
    # Read here rather than as a body parameter so the gate sees the raw body first
    try:
        form = SignupRequest.model_validate_json(await request.body() or b"{}")
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Invalid request body",
            }
        )

    return Signup_Controller.signup(request=form)
