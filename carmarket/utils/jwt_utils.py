import os
import time
import logging
from typing import Optional, Dict, Any, Tuple

import jwt

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60 * 24


def _secret() -> str:
    return os.getenv("SECRET_KEY") or "dev-secret-change-me"


def create_token(user_id: int, ttl_seconds: int = DEFAULT_TTL_SECONDS, *, role: str | None = None) -> str:
    now = int(time.time())
    payload = {
        "sub": str(int(user_id)),
        "iat": now,
        "exp": now + int(ttl_seconds),
        "type": "access",
    }
    if role:
        # Informational only; the role column on the user row is authoritative.
        payload["role"] = str(role)
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        logger.info("jwt_expired")
        return None
    except jwt.InvalidTokenError:
        return None


def parse_auth_header(auth_header: str) -> Tuple[Optional[str], Optional[str]]:
    if not auth_header:
        return None, None
    parts = auth_header.split()
    if len(parts) != 2:
        return None, None
    scheme = parts[0].lower()
    if scheme == "bearer":
        return parts[1], "bearer"
    if scheme == "token":
        logger.warning("deprecated_auth_scheme scheme=Token")
        return parts[1], "token"
    return None, None


def get_bearer_token(auth_header: str) -> Optional[str]:
    token, _scheme = parse_auth_header(auth_header)
    return token


def subject_user_id(payload: Optional[Dict[str, Any]]) -> Optional[int]:
    if not payload:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
