"""REST client for the target serverless platform.

Speaks the OpenWhisk entity API: one PUT per package or action, with the
caller's `uuid:key` credential as basic auth. A client is created per
request and never shared.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import requests
import urllib3

logger = logging.getLogger(__name__)

API_PATH = "/api/v1/namespaces/_"
REQUEST_ID_HEADER = "X-Request-ID"


class WhiskError(Exception):
    """Platform API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)


def normalize_host(api_host: str) -> str:
    """Return the API base URL for a host ('host:443' -> 'https://host:443')."""
    api_host = api_host.strip().rstrip("/")
    if "://" not in api_host:
        api_host = f"https://{api_host}"
    return api_host


def parse_auth(auth: str) -> tuple[str, str]:
    """Split a `uuid:key` credential.

    Raises:
        WhiskError: If the credential is malformed
    """
    user, sep, key = auth.strip().partition(":")
    if not sep or not user or not key:
        raise WhiskError("Credential must have the form <uuid>:<key>")
    return user, key


def to_key_values(params: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert name -> value into the API's [{key, value}] list."""
    return [{"key": k, "value": v} for k, v in params.items()]


class WhiskClient:
    """Minimal entity API client."""

    def __init__(self, api_host: str, auth: str, timeout: int = 60, verify: bool = True):
        """Initialize client.

        Args:
            api_host: Platform host, with or without scheme
            auth: `uuid:key` credential
            timeout: Seconds per API call
            verify: Verify the platform's TLS certificate
        """
        self.base_url = normalize_host(api_host) + API_PATH
        self.timeout = timeout
        self.verify = verify
        credential = parse_auth(auth)
        self.session = requests.Session()
        self.session.auth = credential
        self.session.headers.update({"Accept": "application/json"})
        if not verify:
            # Self-signed platform certs (local deployments)
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "WhiskClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def put_package(self, name: str, parameters: dict[str, Any], annotations: Optional[list] = None) -> Optional[str]:
        """Create or update a package. Returns the platform request id."""
        body = {
            "parameters": to_key_values(parameters),
            "annotations": annotations or [],
            "publish": False,
        }
        return self._put(f"packages/{quote(name, safe='')}", body)

    def put_action(self, qualified_name: str, exec_body: dict, parameters: dict[str, Any],
                   annotations: Optional[list] = None, limits: Optional[dict] = None) -> Optional[str]:
        """Create or update an action (`pkg/name` or bare `name`). Returns the platform request id."""
        body: dict[str, Any] = {
            "exec": exec_body,
            "parameters": to_key_values(parameters),
            "annotations": annotations or [],
        }
        if limits:
            body["limits"] = limits
        path = "/".join(quote(part, safe="") for part in qualified_name.split("/"))
        return self._put(f"actions/{path}", body)

    def _put(self, path: str, body: dict) -> Optional[str]:
        url = f"{self.base_url}/{path}"
        logger.debug("PUT %s", url)
        try:
            resp = self.session.put(
                url,
                params={"overwrite": "true"},
                json=body,
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.exceptions.Timeout:
            raise WhiskError(f"Timeout after {self.timeout}s calling {url}")
        except requests.exceptions.ConnectionError as e:
            raise WhiskError(f"Cannot connect to {url}: {e}")
        except requests.exceptions.RequestException as e:
            raise WhiskError(f"Request to {url} failed: {e}")

        if resp.status_code >= 400:
            raise WhiskError(_error_text(resp), resp.status_code)

        return resp.headers.get(REQUEST_ID_HEADER)


def _error_text(resp) -> str:
    """Extract the platform's error message from a failed response."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return f"{data['error']} (HTTP {resp.status_code})"
    text = (resp.text or "").strip()
    return f"HTTP {resp.status_code}: {text[:200]}" if text else f"HTTP {resp.status_code}"
