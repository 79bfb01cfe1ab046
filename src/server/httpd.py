"""Main HTTP server.

Serves the deploy endpoint and a health check. Each request is handled on
its own thread with its own pipeline run; handlers share only read-only
state.
"""

import json
import logging
import re
import signal
import ssl
import sys
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pipeline.orchestrator import Orchestrator
from common import new_activation_id
from server.handlers import error_body, handle_deploy_request

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_PORT = 8080
DEFAULT_BIND = "0.0.0.0"

# Refuse bodies larger than this (bytes)
MAX_BODY_SIZE = 1024 * 1024

DEPLOY_PATHS = ("/deploy", "/wskdeploy", "/wskdeploy.http", "/wskdeploy.json")

_REQUEST_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_deploy_path(path: str) -> bool:
    """True for /deploy and any path ending in a wskdeploy web action name."""
    return path == "/deploy" or path.endswith(DEPLOY_PATHS[1:])


class ServerHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the deploy server."""

    # Class-level state (read-only, shared across request threads)
    orchestrator: Optional[Orchestrator] = None
    token: str = ""

    def log_message(self, format: str, *args):
        """Override to use Python logging."""
        logger.info("%s - %s", self.address_string(), format % args)

    def send_json(self, data: dict, status: int = 200):
        """Send JSON response."""
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        """Handle GET requests."""
        path = urlparse(self.path).path.rstrip("/")

        if path == "/health":
            self.send_json({"status": "ok"})
            return

        self.send_json(error_body("E404", f"Unknown endpoint: {path}"), 404)

    def request_id(self) -> str:
        """Transport correlation id if well-formed, else a fresh activation id."""
        request_id = self.headers.get("X-Request-ID", "")
        return request_id if _REQUEST_ID.match(request_id) else new_activation_id()

    def do_POST(self):
        """Handle POST requests."""
        path = urlparse(self.path).path.rstrip("/")
        activation_id = self.request_id()

        if not is_deploy_path(path):
            self.send_json(error_body("E404", f"Unknown endpoint: {path}", activation_id), 404)
            return

        if not self.orchestrator:
            self.send_json(error_body("E500", "Orchestrator not initialized", activation_id), 500)
            return

        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = -1
        if length < 0 or length > MAX_BODY_SIZE:
            self.send_json(error_body("E101", "Invalid request body size", activation_id), 413)
            return

        raw = self.rfile.read(length) if length else b""
        response, status = handle_deploy_request(
            raw,
            self.headers.get("Authorization", ""),
            self.orchestrator,
            token=self.token,
            request_id=activation_id,
        )
        self.send_json(response, status)


class Server:
    """HTTP(S) server for the deploy endpoint."""

    def __init__(
        self,
        bind: str = DEFAULT_BIND,
        port: int = DEFAULT_PORT,
        orchestrator: Optional[Orchestrator] = None,
        token: str = "",
        cert: Optional[Path] = None,
        key: Optional[Path] = None,
    ):
        """Initialize server.

        Args:
            bind: Address to bind to
            port: Port to listen on (0 = ephemeral)
            orchestrator: Pipeline orchestrator (default config if None)
            token: Bearer token for /deploy ("" disables auth)
            cert: TLS certificate (plain HTTP if None)
            key: TLS private key
        """
        self.bind = bind
        self.port = port
        self.orchestrator = orchestrator
        self.token = token
        self.cert = cert
        self.key = key
        self.server: Optional[ThreadingHTTPServer] = None

    @property
    def scheme(self) -> str:
        return "https" if self.cert else "http"

    def start(self, install_signal_handlers: bool = True):
        """Bind the server socket.

        Raises:
            RuntimeError: If server cannot be started
        """
        if self.orchestrator is None:
            self.orchestrator = Orchestrator()

        # Set handler class attributes
        ServerHandler.orchestrator = self.orchestrator
        ServerHandler.token = self.token

        try:
            self.server = ThreadingHTTPServer((self.bind, self.port), ServerHandler)
        except OSError as e:
            raise RuntimeError(f"Cannot bind {self.bind}:{self.port}: {e}") from e
        self.server.daemon_threads = True
        # Port 0 binds an ephemeral port
        self.port = self.server.server_address[1]

        if self.cert:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            try:
                context.load_cert_chain(certfile=str(self.cert), keyfile=str(self.key))
            except (OSError, ssl.SSLError) as e:
                self.server.server_close()
                raise RuntimeError(f"TLS init failed: {e}") from e
            self.server.socket = context.wrap_socket(self.server.socket, server_side=True)

        logger.info("Server starting on %s://%s:%d", self.scheme, self.bind, self.port)
        if not self.token:
            logger.warning("No server token configured - /deploy is unauthenticated")

        if install_signal_handlers:
            self._setup_signal_handlers()

    def serve_forever(self):
        """Start serving requests."""
        if not self.server:
            raise RuntimeError("Server not started")

        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutdown requested")
        finally:
            self.shutdown()

    def shutdown(self):
        """Stop the server and close its socket."""
        server, self.server = self.server, None
        if server:
            logger.info("Shutting down server")
            server.shutdown()
            server.server_close()

    def _setup_signal_handlers(self):
        """Setup signal handler for graceful shutdown."""

        def handle_sigterm(signum, frame):
            """Handle SIGTERM for graceful shutdown."""
            logger.info("Received SIGTERM")
            # Unwinds serve_forever, whose finally block shuts down
            sys.exit(0)

        signal.signal(signal.SIGTERM, handle_sigterm)


def create_server(
    bind: str = DEFAULT_BIND,
    port: int = DEFAULT_PORT,
    orchestrator: Optional[Orchestrator] = None,
    token: str = "",
    cert: Optional[Path] = None,
    key: Optional[Path] = None,
) -> Server:
    """Create a server instance.

    Convenience function for creating a server.

    Returns:
        Server instance (not yet started)
    """
    return Server(
        bind=bind,
        port=port,
        orchestrator=orchestrator,
        token=token,
        cert=cert,
        key=key,
    )
