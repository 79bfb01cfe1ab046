"""Error taxonomy for the deployment pipeline.

Every failure a request can end with is one of the classes below. Each
carries a stable code, the fixed user-facing message, and an optional
diagnostic detail (logged, and returned alongside the message).
"""

from typing import Optional

MSG_MISSING_REPOSITORY_URL = "Please enter the GitHub repo url in params"
MSG_REPOSITORY_UNAVAILABLE = (
    "There was a problem cloning from github.  "
    "Does that github repo exist?  Does it begin with http?"
)
MSG_MANIFEST_NOT_FOUND = "Error loading manifest file. Does a manifest file exist?"


class DeployError(Exception):
    """Base exception for classified pipeline failures."""

    code = "E500"
    http_status = 400

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(f"{self.code}: {message}")


class MissingRepositoryURL(DeployError):
    """No gitUrl supplied."""

    code = "E100"

    def __init__(self):
        super().__init__(MSG_MISSING_REPOSITORY_URL)


class RepositoryUnavailable(DeployError):
    """Clone failed: bad URL, unreachable host, missing repo, auth failure."""

    code = "E200"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(MSG_REPOSITORY_UNAVAILABLE, detail)


class ManifestPathNotFound(DeployError):
    """manifestPath is missing, not a directory, or holds no manifest file."""

    code = "E201"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(MSG_MANIFEST_NOT_FOUND, detail)


class ManifestParseFailure(DeployError):
    """Manifest exists but is not valid."""

    code = "E300"

    def __init__(self, detail: str):
        super().__init__(f"Error parsing manifest file: {detail}", detail)


class DeploymentFailure(DeployError):
    """An entity deployment failed, or the deploy target is unusable.

    Attributes:
        outcomes: Per-entity outcomes gathered before (and including) the failure
    """

    code = "E400"

    def __init__(self, detail: str, entity: Optional[str] = None, outcomes: Optional[list] = None):
        self.entity = entity
        self.outcomes = list(outcomes or [])
        if entity:
            message = f"Error deploying {entity}: {detail}"
        else:
            message = f"Error deploying manifest: {detail}"
        super().__init__(message, detail)
