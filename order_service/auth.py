from typing import Optional

import jwt
from fastapi import Request

from order_service import config
from order_service.errors import Unauthorized


def extract_token(request: Request) -> Optional[str]:
    # The web client sends a bare `token` header; other callers use Bearer.
    token = request.headers.get("token")
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[len("bearer "):].strip()
    return None


def decode_user_id(token: str) -> int:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")
    user_id = payload.get("userId") or payload.get("id")
    if not user_id:
        raise Unauthorized("Invalid token payload")
    try:
        return int(user_id)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token payload")


def get_token_user_id(request: Request) -> Optional[int]:
    """Dependency: the caller's user id, or None when no token was sent."""
    token = extract_token(request)
    if token is None:
        return None
    return decode_user_id(token)


def resolve_user_id(token_user_id: Optional[int], body_user_id: Optional[int]) -> Optional[int]:
    return token_user_id or body_user_id
