"""
Authentication router for admin access codes.
Admins exchange a code for a JWT that unlocks the AI settings endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Annotated, Optional

from fastapi import APIRouter, HTTPException, Header
from pydantic import BaseModel
from jose import jwt, JWTError

from flowme.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# JWT settings
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_DAYS = 30


class ValidateCodeRequest(BaseModel):
    code: str


class ValidateCodeResponse(BaseModel):
    token: str
    is_admin: bool


def get_admin_codes() -> set[str]:
    """Get set of admin codes from environment."""
    settings = get_settings()
    if not settings.admin_codes:
        return set()
    return set(code.strip() for code in settings.admin_codes.split(",") if code.strip())


def create_jwt_token_for_admin(code: str) -> str:
    """Create a JWT token for an admin user."""
    settings = get_settings()
    payload = {
        "code": code,
        "is_admin": True,
        "exp": datetime.utcnow() + timedelta(days=JWT_EXPIRY_DAYS),
        "iat": datetime.utcnow(),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_jwt_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token. Returns None if invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
        return payload
    except JWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None


@router.post("/validate-code", response_model=ValidateCodeResponse)
async def validate_code(request: ValidateCodeRequest):
    """Validate an admin access code and return a JWT token."""
    code = request.code.strip().upper()

    if not get_settings().jwt_secret:
        raise HTTPException(status_code=503, detail="Authentication is not configured")

    if code in get_admin_codes():
        logger.info(f"Admin code validated: {code[:8]}...")
        return ValidateCodeResponse(token=create_jwt_token_for_admin(code), is_admin=True)

    logger.warning(f"Invalid admin code attempted: {code[:8]}...")
    raise HTTPException(status_code=401, detail="Invalid access code")


async def verify_admin_token(authorization: Annotated[Optional[str], Header()] = None) -> str:
    """Dependency to verify admin authorization for protected endpoints."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    # Accept "Bearer <token>" format
    if authorization.startswith("Bearer "):
        token = authorization[7:]
    else:
        token = authorization

    payload = decode_jwt_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("is_admin"):
        raise HTTPException(status_code=403, detail="Admin access required")

    return payload["code"]
