"""Result reporting: maps stage outcomes to the response shape."""

import logging
from typing import Optional

from common import DeploymentOutcome, DeploymentResult
from pipeline.errors import DeployError, DeploymentFailure

logger = logging.getLogger(__name__)


def report_success(outcomes: list[DeploymentOutcome], activation_id: str) -> DeploymentResult:
    """Build the result for a completed deployment."""
    return DeploymentResult(
        status='success',
        activation_id=activation_id,
        http_status=200,
        outcomes=list(outcomes),
    )


def report_failure(error: DeployError, activation_id: str,
                   outcomes: Optional[list[DeploymentOutcome]] = None) -> DeploymentResult:
    """Build the result for a classified failure."""
    if outcomes is None and isinstance(error, DeploymentFailure):
        outcomes = error.outcomes
    return DeploymentResult(
        status='error',
        activation_id=activation_id,
        error_message=error.message,
        error_code=error.code,
        detail=error.detail,
        http_status=error.http_status,
        outcomes=list(outcomes or []),
    )
