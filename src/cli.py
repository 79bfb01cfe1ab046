#!/usr/bin/env python3
"""CLI entry point for deployweb.

Noun commands:
- server: Run the deploy HTTP endpoint (start)
- deploy: Run one deployment pipeline locally

Examples:
    deployweb server start --port 8080
    deployweb deploy --git-url https://github.com/org/repo \\
        --manifest-path examples/hello --api-host openwhisk.example.com \\
        --auth "$WSK_AUTH" --env PACKAGE_NAME=myPackage
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from config import ConfigError, load_config
from pipeline.orchestrator import DeploymentRequest, Orchestrator

# Noun commands (noun-action subcommands)
NOUN_COMMANDS = {
    "server": "Deploy server management (start)",
    "deploy": "Run one deployment from a git repository",
}

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool, to_stderr: bool = False):
    """Configure root logging; --json keeps stdout clean by logging to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr if to_stderr else None,
    )


def _parse_env_overrides(values: list[str]) -> dict[str, Any]:
    """Parse repeated KEY=VALUE options. Values are JSON when they parse as JSON.

    Raises:
        ValueError: If an item has no '='
    """
    overrides: dict[str, Any] = {}
    for item in values or []:
        if '=' not in item:
            raise ValueError(f"Invalid --env '{item}', expected KEY=VALUE")
        key, value = item.split('=', 1)
        try:
            overrides[key] = json.loads(value)
        except json.JSONDecodeError:
            overrides[key] = value
    return overrides


def dispatch_deploy(argv: list) -> int:
    """Handle the 'deploy' noun.

    Returns:
        Exit code (0 on success, 1 on any failure)
    """
    parser = argparse.ArgumentParser(
        prog='deployweb deploy',
        description='Clone a repository and deploy the manifest found at --manifest-path',
    )
    parser.add_argument('--git-url', '-g', help='Repository to clone')
    parser.add_argument('--manifest-path', '-m', help='Directory holding manifest.yaml, relative to the repository')
    parser.add_argument(
        '--api-host',
        default=os.environ.get('WSK_APIHOST'),
        help='Target platform API host (default: $WSK_APIHOST)'
    )
    parser.add_argument(
        '--auth',
        default=os.environ.get('WSK_AUTH'),
        help='Target platform credential uuid:key (default: $WSK_AUTH)'
    )
    parser.add_argument(
        '--env', '-e',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Override a manifest parameter (repeatable): --env PACKAGE_NAME=myPackage'
    )
    parser.add_argument('--config', '-c', type=Path, help='Config file')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Clone, parse and resolve the manifest, then list entities without deploying'
    )
    parser.add_argument('--json', action='store_true', help='Print the result as JSON (logs go to stderr)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)
    _configure_logging(args.verbose, to_stderr=args.json)

    try:
        overrides = _parse_env_overrides(args.env)
    except ValueError as e:
        parser.error(str(e))

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    request = DeploymentRequest(
        repository_url=args.git_url,
        manifest_path=args.manifest_path,
        api_host=args.api_host,
        auth=args.auth,
        environment_overrides=overrides,
    )
    orchestrator = Orchestrator(config)

    if args.dry_run:
        # The target is not contacted; placeholders satisfy validation
        request = DeploymentRequest(
            repository_url=request.repository_url,
            manifest_path=request.manifest_path,
            api_host=request.api_host or 'dry-run',
            auth=request.auth or 'dry-run',
            environment_overrides=overrides,
        )
        planned, result = orchestrator.preview(request)
        if args.json:
            body = result.to_dict()
            if planned is not None:
                body['planned'] = [p.to_dict() for p in planned]
            print(json.dumps(body, indent=2))
        elif planned is None:
            print(f"Error: {result.error_message}")
            if result.detail and result.detail not in (result.error_message or ''):
                print(f"  {result.detail}")
        else:
            print("Entities to deploy:")
            for entity in planned:
                print(f"  {entity.kind:8} {entity.name}")
                for key, value in entity.parameters.items():
                    print(f"           {key} = {json.dumps(value)}")
        return 0 if planned is not None else 1

    result = orchestrator.deploy(request)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.succeeded:
        print(f"Deployed {len(result.outcomes)} entities (activation {result.activation_id})")
        for outcome in result.outcomes:
            print(f"  {outcome.entity_name}")
    else:
        print(f"Error: {result.error_message}")
        if result.detail and result.detail not in (result.error_message or ''):
            print(f"  {result.detail}")
    return 0 if result.succeeded else 1


def print_usage():
    """Print top-level usage."""
    print("Usage: deployweb <noun> [options]")
    print()
    print("Commands:")
    for name, description in NOUN_COMMANDS.items():
        print(f"  {name:8}  {description}")
    print()
    print("Run 'deployweb <noun> --help' for command-specific options.")


def main(argv=None) -> int:
    """Main entry point."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0 if argv else 1

    noun, rest = argv[0], argv[1:]
    if noun == 'server':
        from server.cli import main as server_main
        return server_main(rest)
    if noun == 'deploy':
        return dispatch_deploy(rest)

    print(f"Error: Unknown command '{noun}'")
    print(f"Available commands: {', '.join(NOUN_COMMANDS)}")
    return 1


if __name__ == '__main__':
    sys.exit(main())
