import re
from fastapi import HTTPException, status
from fusion_gate.log.system_log import system_logger
from fusion_gate.schemas.schemas import SignupRequest

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


class Signup_Controller:
    """
    Signup of the marketing site. The request has already passed the security gate;
    storing the account belongs to the hosted account service.
    """

    def signup(request: SignupRequest) -> dict:
        """
        Validate the signup form
        - 400 when email, full name or password is missing
        - 400 on a malformed email or a password shorter than 8 characters
        """
        if not request.email or not request.fullName or not request.password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": "Email, full name, and password are required",
                }
            )

        if not EMAIL_REGEX.match(request.email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": "Invalid email format",
                }
            )

        if len(request.password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                }
            )

        email = request.email.lower()
        system_logger.info("Signup accepted for %s (%s)", email, request.userType)

        return {
            "success": True,
            "message": "Signup received",
            "email": email,
            "userType": request.userType,
        }
