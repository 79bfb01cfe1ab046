"""Target platform access: REST client and deployment executor."""

from whisk.client import WhiskClient, WhiskError, normalize_host
from whisk.executor import DeploymentExecutor, PlannedEntity

__all__ = [
    "WhiskClient",
    "WhiskError",
    "normalize_host",
    "DeploymentExecutor",
    "PlannedEntity",
]
