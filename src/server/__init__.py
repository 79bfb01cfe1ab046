"""Server package for the deploy HTTP endpoint.

The server accepts POST /deploy requests (optionally bearer-token
protected) and runs one deployment pipeline per request.
"""

from server.httpd import (
    Server,
    create_server,
    DEFAULT_PORT,
    DEFAULT_BIND,
)
from server.auth import (
    AuthError,
    validate_deploy_token,
)
from server.handlers import handle_deploy_request

__all__ = [
    # Server
    "Server",
    "create_server",
    "DEFAULT_PORT",
    "DEFAULT_BIND",
    # Auth
    "AuthError",
    "validate_deploy_token",
    # Handlers
    "handle_deploy_request",
]
