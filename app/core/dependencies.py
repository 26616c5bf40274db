import logging
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import SUPABASE_JWT_SECRET, SUPABASE_URL

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Verify a Supabase access token and return its claims."""
    return jwt.decode(
        token,
        SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        issuer=f"{SUPABASE_URL}/auth/v1",
        options={"verify_aud": False, "require": ["sub"]},
        leeway=60,
    )


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        return decode_token(token)

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.info(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user_id(payload: dict = Depends(verify_token)) -> str:
    return str(payload["sub"])


def optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[str]:
    """Caller's id when a valid token is present, otherwise None. Never rejects."""
    if credentials is None:
        return None

    try:
        return str(decode_token(credentials.credentials)["sub"])
    except jwt.InvalidTokenError:
        return None
