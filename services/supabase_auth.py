# services/supabase_auth.py
import logging
import os

from fastapi import Depends, HTTPException, Request, status
from jose import jwt, JWTError

logger = logging.getLogger(__name__)

SUPABASE_JWT_AUD = os.getenv("SUPABASE_JWT_AUD", "authenticated")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return auth.split(" ", 1)[1].strip()


async def get_current_supabase_user(request: Request) -> dict:
    token = _get_bearer_token(request)

    secret = os.getenv("SUPABASE_JWT_SECRET")
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Authentication is not configured")

    project_url = os.getenv("SUPABASE_PROJECT_URL", "").rstrip("/")
    try:
        payload = jwt.decode(
            token,
            secret,                 # HS256 uses shared secret
            algorithms=["HS256"],
            audience=SUPABASE_JWT_AUD,
            issuer=f"{project_url}/auth/v1" if project_url else None,
        )
        return payload
    except JWTError as e:
        logger.info("jwt_rejected reason=%s", e.__class__.__name__)
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_user_id(payload: dict = Depends(get_current_supabase_user)) -> str:
    """Supabase user id (JWT `sub`) of the authenticated caller."""
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid auth token")
    return str(sub)
