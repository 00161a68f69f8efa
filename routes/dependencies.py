"""
Shared route dependencies.
"""

from typing import Optional
import structlog

from fastapi import Depends
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import get_supabase_client
from exceptions import AppError, UnauthorizedError

logger = structlog.get_logger(__name__)

# auto_error=False so a missing header ends up as our own 401 error body
security = HTTPBearer(auto_error=False)


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Resolve the caller from a Supabase access token.

    Raises:
        UnauthorizedError: If the token is missing or not accepted by Supabase
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")

    try:
        response = get_supabase_client().auth.get_user(credentials.credentials)
    except Exception as e:
        logger.info("token_rejected", error=str(e))
        raise UnauthorizedError("Invalid token") from e

    user = getattr(response, "user", None)
    if user is None:
        raise UnauthorizedError("Invalid token")

    return user.id
