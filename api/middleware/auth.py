"""
Authentication for the dealership squad admin endpoints.

API key in the X-API-Key header (or api_key query parameter). Tool-call
and webhook endpoints stay open for the voice platform.
"""

import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader, APIKeyQuery

from config.settings import get_settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
API_KEY_QUERY = "api_key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
api_key_query = APIKeyQuery(name=API_KEY_QUERY, auto_error=False)


def get_api_key(request: Request) -> str:
    """Get the API key configured for this app."""
    settings = getattr(request.app.state, "settings", None) or get_settings()
    return settings.api_key or ""


async def api_key_auth(
    request: Request,
    header_key: Optional[str] = Security(api_key_header),
    query_key: Optional[str] = Security(api_key_query),
) -> str:
    """Validate API key from header or query parameter."""
    api_key = header_key or query_key
    expected_key = get_api_key(request)

    # Skip auth if no key configured (development mode)
    if not expected_key:
        logger.debug("API key authentication disabled - no key configured")
        return ""

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not secrets.compare_digest(api_key, expected_key):
        logger.warning(f"Invalid API key attempt on {request.url.path}")
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key
