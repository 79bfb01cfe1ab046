"""Repository fetcher.

Clones the caller's repository into the request workspace with `git clone`.
Every failure is reported as RepositoryUnavailable; the git output is kept
as the diagnostic detail. Partial clones are left for the workspace release
to remove.
"""

import logging
import re
from pathlib import Path
from urllib.parse import urlparse

from common import run_command
from config import DEFAULT_ALLOWED_SCHEMES
from pipeline.errors import RepositoryUnavailable
from pipeline.workspace import Workspace

logger = logging.getLogger(__name__)

# Never prompt for credentials: a missing GitHub repo asks for them
GIT_ENV = {
    'GIT_TERMINAL_PROMPT': '0',
    'GIT_ASKPASS': 'true',
    'GCM_INTERACTIVE': 'never',
}

# user:password@ in URLs, masked before logging
_CREDENTIALS = re.compile(r'(//)[^/@\s]+@')


def redact_url(url: str) -> str:
    """Mask credentials embedded in a URL."""
    return _CREDENTIALS.sub(r'\1***@', url)


class RepositoryFetcher:
    """Clones remote repositories into workspaces."""

    def __init__(
        self,
        git_binary: str = 'git',
        timeout: int = 120,
        depth: int = 1,
        allowed_schemes: tuple[str, ...] = DEFAULT_ALLOWED_SCHEMES,
    ):
        """Initialize fetcher.

        Args:
            git_binary: git executable
            timeout: Seconds allowed for the clone
            depth: Clone depth (0 = full history)
            allowed_schemes: URL schemes accepted for repository URLs
        """
        self.git_binary = git_binary
        self.timeout = timeout
        self.depth = depth
        self.allowed_schemes = tuple(allowed_schemes)

    def validate_url(self, url: str) -> None:
        """Reject URLs git should never be handed (ext::, local paths, options)."""
        parsed = urlparse(url)
        if parsed.scheme.lower() not in self.allowed_schemes:
            raise RepositoryUnavailable(
                f"Unsupported repository URL scheme '{parsed.scheme}' "
                f"(allowed: {', '.join(self.allowed_schemes)})"
            )
        if parsed.scheme.lower() != 'file' and not parsed.netloc:
            raise RepositoryUnavailable(f"Repository URL has no host: {redact_url(url)}")

    def fetch(self, url: str, workspace: Workspace) -> Path:
        """Clone url into the workspace.

        Returns:
            Path to the cloned tree

        Raises:
            RepositoryUnavailable: On any clone failure
        """
        url = url.strip()
        self.validate_url(url)

        dest = workspace.repo_dir
        cmd = [self.git_binary, 'clone', '--quiet']
        if self.depth > 0:
            cmd += ['--depth', str(self.depth)]
        cmd += ['--', url, str(dest)]

        logger.info("Cloning %s", redact_url(url))
        rc, _, err = run_command(cmd, cwd=workspace.path, timeout=self.timeout, env=GIT_ENV,
                                 display=redact_url(' '.join(cmd)))
        if rc != 0:
            detail = redact_url(err.strip()) or f"git clone exited with {rc}"
            logger.error("Clone of %s failed: %s", redact_url(url), detail)
            raise RepositoryUnavailable(detail)

        if not dest.is_dir():
            raise RepositoryUnavailable(f"git clone produced no checkout at {dest}")

        logger.debug("Cloned into %s", dest)
        return dest
