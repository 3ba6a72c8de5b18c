"""API-key authentication and per-caller rate limits."""

import hashlib
import secrets
import logging

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_api_key

logger = logging.getLogger(__name__)

security = HTTPBearer()

ORDER_PROCESS_RATE_LIMIT = "30/minute"
RECONCILIATION_RATE_LIMIT = "10/minute"


def rate_limit_key(request: Request) -> str:
    """Bucket requests by bearer key fingerprint, or by client address without one."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return "key:" + hashlib.sha256(token.strip().encode()).hexdigest()[:16]
    return get_remote_address(request)


limiter = Limiter(key_func=rate_limit_key)


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    """
    Check the bearer token against API_KEY.

    Raises:
        HTTPException: 500 when API_KEY is unset, 401 when the token does not match.
    """
    expected_key = get_api_key()
    if not expected_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not secrets.compare_digest(credentials.credentials.encode(), expected_key.encode()):
        logger.warning("Rejected request with an invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
