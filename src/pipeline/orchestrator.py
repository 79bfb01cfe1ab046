"""Request orchestration.

Runs one deployment request through its stages in strict order:

    validate -> workspace -> fetch -> locate -> parse -> overlay -> execute -> report

The first failing stage ends the run. Exactly one DeploymentResult is
produced per request, always with an activation id, and the workspace is
released on every exit path.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from common import DeploymentResult, new_activation_id
from config import DeployConfig
from manifest import Manifest, ManifestLoader, locate_manifest
from pipeline.errors import (
    DeployError,
    DeploymentFailure,
    ManifestParseFailure,
    ManifestPathNotFound,
    MissingRepositoryURL,
    RepositoryUnavailable,
)
from pipeline.fetcher import RepositoryFetcher, redact_url
from pipeline.overlay import apply_overrides
from pipeline.reporter import report_failure, report_success
from pipeline.workspace import Workspace, WorkspaceManager
from whisk.executor import DeploymentExecutor, PlannedEntity

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class DeploymentRequest:
    """Inbound deployment request (one per HTTP exchange).

    Attributes:
        repository_url: gitUrl
        manifest_path: Directory holding the manifest, relative to the repo root
        environment_overrides: envData
        api_host: wskApiHost
        auth: wskAuth
        activation_id: Correlation id supplied by the transport, if any
    """
    repository_url: Optional[str]
    manifest_path: Optional[str]
    api_host: Optional[str] = None
    auth: Optional[str] = field(default=None, repr=False)
    environment_overrides: dict[str, Any] = field(default_factory=dict)
    activation_id: Optional[str] = None

    @classmethod
    def from_body(cls, body: Any, activation_id: Optional[str] = None) -> 'DeploymentRequest':
        """Create a request from a decoded JSON body.

        Wrong-typed fields are treated as absent; a non-object envData is
        dropped.
        """
        if not isinstance(body, dict):
            body = {}

        def _str(key: str) -> Optional[str]:
            value = body.get(key)
            return value if isinstance(value, str) else None

        env_data = body.get('envData')
        if env_data is not None and not isinstance(env_data, dict):
            logger.warning("Ignoring envData of type %s", type(env_data).__name__)
            env_data = None

        return cls(
            repository_url=_str('gitUrl'),
            manifest_path=_str('manifestPath'),
            api_host=_str('wskApiHost'),
            auth=_str('wskAuth'),
            environment_overrides=dict(env_data or {}),
            activation_id=activation_id,
        )


class Orchestrator:
    """Sequences the pipeline stages for each request.

    Holds only read-only collaborators, so one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        config: Optional[DeployConfig] = None,
        workspaces: Optional[WorkspaceManager] = None,
        fetcher: Optional[RepositoryFetcher] = None,
        loader: Optional[ManifestLoader] = None,
        executor: Optional[DeploymentExecutor] = None,
    ):
        self.config = config or DeployConfig()
        self.workspaces = workspaces or WorkspaceManager(self.config.workspace_root)
        self.fetcher = fetcher or RepositoryFetcher(
            git_binary=self.config.git_binary,
            timeout=self.config.clone_timeout,
            depth=self.config.clone_depth,
            allowed_schemes=self.config.allowed_schemes,
        )
        self.loader = loader or ManifestLoader()
        self.executor = executor or DeploymentExecutor(
            timeout=self.config.deploy_timeout,
            verify_tls=self.config.verify_tls,
        )

    def validate(self, request: DeploymentRequest) -> None:
        """Check the request before any side effect.

        Raises:
            MissingRepositoryURL: No gitUrl
            ManifestPathNotFound: No manifestPath
            DeploymentFailure: No wskApiHost or wskAuth
        """
        if not request.repository_url or not request.repository_url.strip():
            raise MissingRepositoryURL()
        if not request.manifest_path or not request.manifest_path.strip():
            raise ManifestPathNotFound("No manifestPath given")
        missing = [name for name, value in (('wskApiHost', request.api_host), ('wskAuth', request.auth))
                   if not value or not value.strip()]
        if missing:
            raise DeploymentFailure(f"Missing {' and '.join(missing)} in params")

    def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        """Run the full pipeline for one request."""
        activation_id = request.activation_id or new_activation_id()
        try:
            self.validate(request)
        except DeployError as e:
            logger.warning("[%s] Rejected request: %s", activation_id, e.message)
            return report_failure(e, activation_id)

        logger.info("[%s] Deploying %s (%s)", activation_id,
                    redact_url(request.repository_url), request.manifest_path)
        start = time.time()
        try:
            with self.workspaces.scoped() as workspace:
                manifest, repo_dir = self._prepare(request, workspace, activation_id)
                outcomes = self._stage(
                    activation_id, 'execute', DeploymentFailure,
                    self.executor.execute, manifest, request.api_host, request.auth,
                    source_root=repo_dir,
                )
        except DeployError as e:
            logger.error("[%s] Deployment failed after %.1fs: %s", activation_id, time.time() - start, e)
            return report_failure(e, activation_id)
        except OSError as e:
            # Stages wrap their own errors; this is workspace creation
            logger.exception("[%s] Cannot create workspace", activation_id)
            return report_failure(RepositoryUnavailable(f"Cannot create workspace: {e}"), activation_id)

        logger.info("[%s] Deployment succeeded in %.1fs", activation_id, time.time() - start)
        return report_success(outcomes, activation_id)

    def preview(self, request: DeploymentRequest) -> tuple[Optional[list[PlannedEntity]], DeploymentResult]:
        """Run every stage except execute and return the planned entities.

        Returns:
            (planned entities or None on failure, result)
        """
        activation_id = request.activation_id or new_activation_id()
        try:
            self.validate(request)
            with self.workspaces.scoped() as workspace:
                manifest, _ = self._prepare(request, workspace, activation_id)
                planned = self._stage(activation_id, 'plan', DeploymentFailure,
                                      self.executor.plan, manifest)
        except DeployError as e:
            return None, report_failure(e, activation_id)
        except OSError as e:
            logger.exception("[%s] Cannot create workspace", activation_id)
            return None, report_failure(RepositoryUnavailable(f"Cannot create workspace: {e}"), activation_id)
        return planned, report_success([], activation_id)

    def _prepare(self, request: DeploymentRequest, workspace: Workspace,
                 activation_id: str) -> tuple[Manifest, Path]:
        """fetch -> locate -> parse -> overlay."""
        repo_dir = self._stage(activation_id, 'fetch', RepositoryUnavailable,
                               self.fetcher.fetch, request.repository_url, workspace)
        manifest_file = self._stage(activation_id, 'locate', ManifestPathNotFound,
                                    locate_manifest, repo_dir, request.manifest_path,
                                    self.config.manifest_names)
        manifest = self._stage(activation_id, 'parse', ManifestParseFailure,
                               self.loader.load_file, manifest_file)
        overlaid = self._stage(activation_id, 'overlay', ManifestParseFailure,
                               apply_overrides, manifest, request.environment_overrides)
        return overlaid, repo_dir

    def _stage(self, activation_id: str, name: str, kind: type[DeployError],
               fn: Callable[..., T], *args, **kwargs) -> T:
        """Run one stage; unexpected exceptions become the stage's error kind."""
        logger.debug("[%s] Running stage: %s", activation_id, name)
        start = time.time()
        try:
            result = fn(*args, **kwargs)
        except DeployError:
            raise
        except Exception as e:
            logger.exception("[%s] Stage %s raised exception", activation_id, name)
            raise kind(f"Unexpected error in {name}: {e}")
        logger.debug("[%s] Stage %s done in %.2fs", activation_id, name, time.time() - start)
        return result
