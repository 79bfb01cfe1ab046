"""Deployment executor.

Turns an (overlaid) manifest into platform API calls, one per entity, in
manifest order: each named package first, then its actions. The first
failing entity stops the run; entities deployed before it stay deployed.
"""

import base64
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from common import DeploymentOutcome
from manifest import ActionSpec, Manifest, PackageSpec, UnresolvedReferenceError, interpolate
from pipeline.errors import DeploymentFailure
from whisk.client import WhiskClient, WhiskError

logger = logging.getLogger(__name__)

# Runtime kind by source extension when the manifest names none
RUNTIME_BY_EXTENSION = {
    '.js': 'nodejs:default',
    '.py': 'python:default',
    '.swift': 'swift:default',
    '.php': 'php:default',
    '.go': 'go:default',
    '.rb': 'ruby:default',
    '.jar': 'java:default',
}

BINARY_EXTENSIONS = {'.zip', '.jar'}

# Manifest limit keys -> API limit keys
LIMIT_KEYS = {'timeout': 'timeout', 'memorySize': 'memory', 'logSize': 'logs', 'concurrentActivations': 'concurrency'}

ClientFactory = Callable[[str, str], WhiskClient]


class ActionSourceError(Exception):
    """Action source is missing, unreadable or has no known runtime."""


@dataclass
class PlannedEntity:
    """One API call the executor will make."""
    kind: str  # 'package' or 'action'
    name: str  # fully qualified: pkg, pkg/action or action
    parameters: dict[str, Any] = field(default_factory=dict)
    action: Optional[ActionSpec] = None
    package: Optional[PackageSpec] = None

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'name': self.name, 'parameters': self.parameters}


class DeploymentExecutor:
    """Deploys manifest entities through the platform API."""

    def __init__(self, timeout: int = 60, verify_tls: bool = True,
                 client_factory: Optional[ClientFactory] = None):
        """Initialize executor.

        Args:
            timeout: Seconds per API call
            verify_tls: Verify the platform's TLS certificate
            client_factory: Builds a client from (api_host, auth); for tests
        """
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.client_factory = client_factory or self._default_client

    def _default_client(self, api_host: str, auth: str) -> WhiskClient:
        return WhiskClient(api_host, auth, timeout=self.timeout, verify=self.verify_tls)

    def plan(self, manifest: Manifest) -> list[PlannedEntity]:
        """Resolve entity names and list the calls in deployment order.

        Raises:
            DeploymentFailure: If a name references an undeclared parameter
        """
        planned: list[PlannedEntity] = []
        for package in manifest.packages:
            scope = package.scope()
            try:
                package_name = interpolate(package.name, scope) if package.name is not None else None
                if package_name is not None:
                    planned.append(PlannedEntity('package', package_name, dict(package.parameters),
                                                 package=package))
                for action in package.actions:
                    action_name = interpolate(action.name, package.scope(action))
                    qualified = f"{package_name}/{action_name}" if package_name else action_name
                    planned.append(PlannedEntity('action', qualified, dict(action.parameters),
                                                 action=action, package=package))
            except UnresolvedReferenceError as e:
                raise DeploymentFailure(str(e), entity=e.text)
        return planned

    def execute(self, manifest: Manifest, api_host: str, auth: str,
                source_root: Optional[Path] = None) -> list[DeploymentOutcome]:
        """Deploy every entity of the manifest.

        Args:
            manifest: Manifest with overrides already applied
            api_host: Platform host
            auth: `uuid:key` credential
            source_root: Action sources must live under this directory
                         (defaults to the manifest's directory)

        Returns:
            Outcomes in manifest order, all succeeded

        Raises:
            DeploymentFailure: On the first failing entity, with outcomes so far
        """
        planned = self.plan(manifest)
        base_dir = manifest.base_dir or Path.cwd()
        source_root = (source_root or base_dir).resolve()

        try:
            client = self.client_factory(api_host, auth)
        except WhiskError as e:
            raise DeploymentFailure(e.message)

        outcomes: list[DeploymentOutcome] = []
        with client:
            for entity in planned:
                logger.info("Deploying %s %s", entity.kind, entity.name)
                try:
                    if entity.kind == 'package':
                        request_id = client.put_package(
                            entity.name, entity.parameters,
                            annotations=_annotations(entity.package.metadata),
                        )
                    else:
                        exec_body = build_exec(entity.action, base_dir, source_root)
                        request_id = client.put_action(
                            entity.name, exec_body, entity.parameters,
                            annotations=_annotations(entity.action.metadata),
                            limits=_limits(entity.action.metadata),
                        )
                except (WhiskError, ActionSourceError) as e:
                    logger.error("Deploying %s failed: %s", entity.name, e)
                    outcomes.append(DeploymentOutcome(entity.name, False, error_detail=str(e)))
                    raise DeploymentFailure(str(e), entity=entity.name, outcomes=outcomes)

                outcomes.append(DeploymentOutcome(entity.name, True, activation_id=request_id))

        logger.info("Deployed %d entities", len(outcomes))
        return outcomes


def build_exec(action: ActionSpec, base_dir: Path, source_root: Path) -> dict:
    """Build the `exec` body for an action from its source file."""
    if not action.function:
        raise ActionSourceError(f"Action '{action.name}' has no function")

    path = (base_dir / action.function).resolve()
    if path != source_root and source_root not in path.parents:
        raise ActionSourceError(f"Function path leaves the repository: {action.function}")
    if not path.is_file():
        raise ActionSourceError(f"Function file not found: {action.function}")

    suffix = path.suffix.lower()
    kind = action.runtime or RUNTIME_BY_EXTENSION.get(suffix)
    if not kind:
        raise ActionSourceError(f"Cannot infer runtime for {action.function}; set 'runtime'")

    try:
        if suffix in BINARY_EXTENSIONS:
            code = base64.b64encode(path.read_bytes()).decode('ascii')
            binary = True
        else:
            code = path.read_text(encoding='utf-8')
            binary = False
    except (OSError, UnicodeDecodeError) as e:
        raise ActionSourceError(f"Cannot read {action.function}: {e}")

    exec_body: dict[str, Any] = {'kind': kind, 'code': code, 'binary': binary}
    if action.main:
        exec_body['main'] = action.main
    return exec_body


def _annotations(metadata: dict) -> list[dict]:
    """Annotations list from manifest metadata (explicit plus web-export)."""
    raw = metadata.get('annotations')
    annotations = dict(raw) if isinstance(raw, dict) else {}
    web = metadata.get('web-export', metadata.get('web'))
    if web in (True, 'true', 'yes', 'raw'):
        annotations.setdefault('web-export', True)
        annotations.setdefault('final', True)
        if web == 'raw':
            annotations.setdefault('raw-http', True)
    return [{'key': k, 'value': v} for k, v in annotations.items()]


def _limits(metadata: dict) -> dict:
    limits = metadata.get('limits')
    if not isinstance(limits, dict):
        return {}
    return {LIMIT_KEYS[k]: v for k, v in limits.items() if k in LIMIT_KEYS}
