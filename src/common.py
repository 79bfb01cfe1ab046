"""Common utilities and types for the deployment pipeline."""

import logging
import os
import subprocess
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DeploymentOutcome:
    """Result of deploying a single entity (package or action)."""
    entity_name: str
    succeeded: bool
    activation_id: Optional[str] = None
    error_detail: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'name': self.entity_name,
            'succeeded': self.succeeded,
        }
        if self.activation_id is not None:
            d['activationId'] = self.activation_id
        if self.error_detail is not None:
            d['error'] = self.error_detail
        return d


@dataclass
class DeploymentResult:
    """Externally observable result of one deployment request."""
    status: str  # 'success' or 'error'
    activation_id: str
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None
    http_status: int = 200
    outcomes: list[DeploymentOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'

    def to_dict(self) -> dict:
        """Convert to the response body shape."""
        if self.succeeded:
            body: dict[str, Any] = {
                'status': 'success',
                'activationId': self.activation_id,
            }
        else:
            body = {
                'error': self.error_message,
                'code': self.error_code,
                'activationId': self.activation_id,
            }
            if self.detail and self.detail not in (self.error_message or ''):
                body['detail'] = self.detail
        if self.outcomes:
            body['entities'] = [o.to_dict() for o in self.outcomes]
        return body


def new_activation_id() -> str:
    """Generate an activation id (32 hex chars, same shape as the platform's)."""
    return uuid.uuid4().hex


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    display: Optional[str] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    display replaces the command line in the debug log (e.g. to hide credentials).
    """
    logger.debug(f"Running: {display or ' '.join(cmd)}")
    if env is not None:
        env = {**os.environ, **env}
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except Exception as e:
        return -1, '', str(e)
