"""Authentication for the deploy endpoint.

A single shared bearer token guards POST /deploy. An empty token disables
the check (development mode).
"""

import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Authentication error with error code and HTTP status."""

    def __init__(self, code: str, message: str, http_status: int):
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(f"{code}: {message}")


def extract_bearer_token(auth_header: str) -> Optional[str]:
    """Extract Bearer token from Authorization header.

    Args:
        auth_header: Authorization header value

    Returns:
        Token string, or None if not a Bearer token
    """
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def validate_deploy_token(
    auth_header: str,
    expected_token: str,
) -> Optional[AuthError]:
    """Validate Bearer token for deploy requests.

    Args:
        auth_header: Authorization header from request
        expected_token: Configured server token

    Returns:
        None if auth is valid, or AuthError on failure
    """
    if not expected_token:
        # Token auth disabled (dev mode)
        return None

    token = extract_bearer_token(auth_header)
    if not token:
        return AuthError("E600", "Authorization required", 401)
    if not hmac.compare_digest(token.encode(), expected_token.encode()):
        logger.warning("Rejected deploy request with invalid token")
        return AuthError("E601", "Invalid token", 403)

    return None
