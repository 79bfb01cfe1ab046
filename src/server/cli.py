"""CLI for the server command.

Provides the `server` verb: `server start` runs the deploy endpoint in the
foreground (process supervision is left to systemd or the container runtime).
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from config import ConfigError, load_config
from pipeline.orchestrator import Orchestrator
from server.httpd import Server

logger = logging.getLogger(__name__)


def _create_server(args) -> Server:
    """Create a Server instance from parsed arguments.

    Command-line options override the config file's server section.

    Raises:
        SystemExit: On configuration errors.
    """
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    server_config = config.server
    cert = args.cert or server_config.cert
    key = args.key or server_config.key
    if cert and not key:
        logger.error("--key is required when --cert is provided")
        sys.exit(1)

    return Server(
        bind=args.bind or server_config.bind,
        port=args.port if args.port is not None else server_config.port,
        orchestrator=Orchestrator(config),
        token=args.token if args.token is not None else server_config.token,
        cert=cert,
        key=key,
    )


def _handle_start(argv):
    """Handle 'server start': run the server in the foreground."""
    parser = argparse.ArgumentParser(
        prog="deployweb server start",
        description="Start the deploy server (foreground)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on (default: from config, else 8080)",
    )
    parser.add_argument(
        "--bind", "-b",
        help="Address to bind to (default: from config, else 0.0.0.0)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Config file (default: $DEPLOYWEB_CONFIG or /usr/local/etc/deployweb/config.yaml)",
    )
    parser.add_argument(
        "--token",
        help="Bearer token required on /deploy (empty disables auth)",
    )
    parser.add_argument(
        "--cert",
        type=Path,
        help="Path to TLS certificate (plain HTTP if not provided)",
    )
    parser.add_argument(
        "--key",
        type=Path,
        help="Path to TLS private key (required if --cert is provided)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output startup info as JSON",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    server = _create_server(args)

    try:
        server.start()
    except RuntimeError as e:
        logger.error("Failed to start server: %s", e)
        return 1

    url = f"{server.scheme}://{server.bind}:{server.port}"
    if args.json:
        print(json.dumps({"url": url, "port": server.port, "auth": bool(server.token)}, indent=2))
    else:
        print(f"\nServer running at {url}")
        print(f"Deploy endpoint: {url}/deploy")
        print("\nPress Ctrl+C to stop...")
    sys.stdout.flush()

    server.serve_forever()
    return 0


def main(argv=None):
    """CLI entry point for server command.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    subcommands = {
        "start": _handle_start,
    }

    if not argv or argv[0] in ("-h", "--help"):
        print("Usage: deployweb server <command> [options]")
        print()
        print("Commands:")
        print("  start    Start the deploy server")
        print()
        print("Run 'deployweb server <command> --help' for command-specific options.")
        return 0

    subcmd = argv[0]
    if subcmd not in subcommands:
        print(f"Error: Unknown server command '{subcmd}'")
        print(f"Available commands: {', '.join(subcommands)}")
        return 1

    return subcommands[subcmd](argv[1:])


if __name__ == "__main__":
    sys.exit(main())
