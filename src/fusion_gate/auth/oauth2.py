from fastapi.security import OAuth2PasswordBearer
from typing import Optional
from fastapi import Depends, HTTPException, status
from datetime import datetime, timedelta, timezone
from jose import jwt # pip install python-jose
from jose.exceptions import JWTError
from fusion_gate.schemas.schemas import AdminAuth
from dotenv import load_dotenv
import os

load_dotenv()


# Secret key of the admin tokens, generate one with: openssl rand -hex 32
# Only holders of SECRET_KEY can sign and verify tokens.
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 15

# Privileges allowed to read the security monitoring endpoints
HIGH_PRIVILEGE_LIST = {"admin", "super_admin"}

# Tokens are issued by the hosted account service, the URL is only used by the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Create a JWT (RFC 7519)
    - **data: dict**: claims to sign, here `ID`, `Email` and `Privilege`
    - **expires_delta**: token lifetime, 15 minutes by default
    """
    # Copy so the caller's dict is left untouched
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    return encoded_jwt


def required_admin_user(token: str = Depends(oauth2_scheme)) -> AdminAuth:
    """
    Admin identity of the bearer token
    - 401 when the token is missing, expired or invalid
    - 403 when the privilege is not in HIGH_PRIVILEGE_LIST
    """
    credentials_exception = HTTPException(
        status_code= status.HTTP_401_UNAUTHORIZED,
        detail= {
            "message": "Could not validate the access token"
        },
        headers= {"WWW-Authenticate": "Bearer"}
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms= [ALGORITHM])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("ID")
    email = payload.get("Email")
    privilege = payload.get("Privilege")

    if not user_id or not email:
        raise credentials_exception

    if privilege not in HIGH_PRIVILEGE_LIST:
        raise HTTPException(
            status_code= status.HTTP_403_FORBIDDEN,
            detail= {
                "message": "You do not have permission to read security events"
            }
        )

    return AdminAuth(ID=str(user_id), Email=email, Privilege=privilege)
