"""
Bearer-token identity from the external auth provider.

Tokens are HS256 JWTs with audience "authenticated"; "sub" is the user id and
"email" the address used for Stripe customer lookup.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config import get_settings
from src.services.errors import Unauthorized

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


def decode_token(token: str) -> CurrentUser:
    import jwt as pyjwt
    settings = get_settings()

    try:
        payload = pyjwt.decode(
            token,
            settings.auth_jwt_secret or settings.app_secret_key,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
        )
    except pyjwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except pyjwt.InvalidTokenError:
        raise Unauthorized("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token payload")
    return CurrentUser(id=str(user_id), email=payload.get("email"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Dependency to extract and verify the user from the Bearer token."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("User not authenticated")
    return decode_token(credentials.credentials)


def request_origin(request: Request) -> str:
    """Browser origin for redirect URLs, falling back to the configured base URL."""
    return request.headers.get("origin") or get_settings().app_base_url
