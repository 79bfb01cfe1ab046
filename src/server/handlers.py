"""Deploy endpoint handler for the server.

Decodes the request body, runs the pipeline and returns the response
body and status. Transport details stay in httpd.py.
"""

import json
import logging
from typing import Optional, Tuple

from common import new_activation_id
from pipeline.orchestrator import DeploymentRequest, Orchestrator
from server.auth import validate_deploy_token

logger = logging.getLogger(__name__)


def error_body(code: str, message: str, activation_id: Optional[str] = None) -> dict:
    """Error response in the same shape as a pipeline failure."""
    return {
        "error": message,
        "code": code,
        "activationId": activation_id or new_activation_id(),
    }


def decode_body(raw: bytes) -> dict:
    """Decode a JSON object body; anything else decodes to {}."""
    if not raw:
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Undecodable request body: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def handle_deploy_request(
    raw_body: bytes,
    auth_header: str,
    orchestrator: Orchestrator,
    token: str = "",
    request_id: Optional[str] = None,
) -> Tuple[dict, int]:
    """Handle a deploy request.

    Args:
        raw_body: Request body bytes (JSON object)
        auth_header: Authorization header from request
        orchestrator: Pipeline orchestrator
        token: Expected bearer token ("" disables auth)
        request_id: Correlation id from the transport (X-Request-ID), if any

    Returns:
        Tuple of (response_dict, http_status); the body always has activationId
    """
    activation_id = request_id or new_activation_id()

    auth_error = validate_deploy_token(auth_header, token)
    if auth_error:
        return error_body(auth_error.code, auth_error.message, activation_id), auth_error.http_status

    request = DeploymentRequest.from_body(decode_body(raw_body), activation_id=activation_id)
    result = orchestrator.deploy(request)
    return result.to_dict(), result.http_status
