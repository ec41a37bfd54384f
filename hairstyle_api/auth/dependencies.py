from dataclasses import dataclass
from typing import Annotated, Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from clerk_backend_api import Clerk
from clerk_backend_api.security.types import AuthenticateRequestOptions
from clerk_backend_api.models import ClerkBaseError

from ..config import settings
from ..error_handlers import UnauthorizedException
from ..logging_config import get_logger

logger = get_logger(__name__)

# auto_error=False: a missing token means an anonymous caller, not a 403
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


def build_clerk_client() -> Optional[Clerk]:
    if not settings.CLERK_SECRET_KEY:
        logger.warning("CLERK_SECRET_KEY not configured; all requests are anonymous")
        return None
    return Clerk(bearer_auth=settings.CLERK_SECRET_KEY)


async def get_auth_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
) -> Optional[AuthUser]:
    """
    Resolve the session identity, or None for anonymous callers.

    Invalid or expired sessions are treated as anonymous; the caller decides
    whether identity is required.
    """
    if credentials is None:
        return None

    clerk_client: Optional[Clerk] = getattr(request.app.state, "clerk", None)
    if clerk_client is None:
        return None

    try:
        # Convert FastAPI request to httpx request for Clerk's authenticate_request
        httpx_request = httpx.Request(
            method=request.method,
            url=str(request.url),
            headers=dict(request.headers)
        )

        request_state = clerk_client.authenticate_request(
            httpx_request,
            AuthenticateRequestOptions(
                authorized_parties=[settings.FRONTEND_URL] if settings.FRONTEND_URL else None
            )
        )
    except ClerkBaseError as e:
        logger.warning(f"Session validation failed: {str(e)}")
        return None
    except Exception as e:
        logger.error(f"Session validation error: {str(e)}", exc_info=True)
        return None

    if not request_state.is_signed_in:
        logger.debug(f"Request not signed in: {request_state.reason}")
        return None

    payload = request_state.payload or {}
    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Session token missing user ID")
        return None

    user = AuthUser(
        id=user_id,
        email=payload.get("email"),
        name=payload.get("name"),
    )
    request.state.user_id = user.id
    return user


async def require_auth_user(
    user: Annotated[Optional[AuthUser], Depends(get_auth_user)]
) -> AuthUser:
    """Dependency for endpoints that need an identity; 401 otherwise"""
    if user is None:
        raise UnauthorizedException()
    return user
