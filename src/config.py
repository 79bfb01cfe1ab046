"""Service configuration management.

Configuration is loaded from an optional YAML file:
- $DEPLOYWEB_CONFIG, if set
- /usr/local/etc/deployweb/config.yaml (FHS install)

Environment variables override file values; built-in defaults apply
otherwise. The target platform host and credential are never configured
here: they arrive with every request.

Example config.yaml:

    workspace_root: /var/tmp/deployweb
    clone:
      timeout: 120
      depth: 1
    deploy:
      timeout: 60
      verify_tls: false
    server:
      port: 8080
      token: s3cret
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

FHS_CONFIG_PATH = Path('/usr/local/etc/deployweb/config.yaml')

DEFAULT_MANIFEST_NAMES = ('manifest.yaml', 'manifest.yml')
DEFAULT_ALLOWED_SCHEMES = ('https', 'http')


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class ServerConfig:
    """Settings for the HTTP front end."""
    bind: str = '0.0.0.0'
    port: int = 8080
    token: str = ''
    cert: Optional[Path] = None
    key: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'ServerConfig':
        """Create ServerConfig from dictionary."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"server must be a mapping, got: {data!r}")
        cert = data.get('cert')
        key = data.get('key')
        if bool(cert) != bool(key):
            raise ConfigError("server.cert and server.key must be set together")
        return cls(
            bind=str(data.get('bind', '0.0.0.0')),
            port=_as_int(data.get('port', 8080), 'server.port'),
            token=str(data.get('token', '') or ''),
            cert=Path(cert) if cert else None,
            key=Path(key) if key else None,
        )


@dataclass
class DeployConfig:
    """Pipeline configuration shared by all requests (read-only at runtime).

    Attributes:
        workspace_root: Parent directory for per-request workspaces (None = system temp)
        clone_timeout: Seconds allowed for `git clone`
        clone_depth: History depth for clones (0 = full clone)
        git_binary: git executable
        allowed_schemes: URL schemes accepted for gitUrl
        manifest_names: Manifest filenames recognized by the locator, in order
        deploy_timeout: Seconds allowed per platform API call
        verify_tls: Verify the platform's TLS certificate
        server: HTTP front-end settings
    """
    workspace_root: Optional[Path] = None
    clone_timeout: int = 120
    clone_depth: int = 1
    git_binary: str = 'git'
    allowed_schemes: tuple[str, ...] = DEFAULT_ALLOWED_SCHEMES
    manifest_names: tuple[str, ...] = DEFAULT_MANIFEST_NAMES
    deploy_timeout: int = 60
    verify_tls: bool = True
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'DeployConfig':
        """Create DeployConfig from a parsed config file.

        Raises:
            ConfigError: If a value has the wrong type
        """
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("Config must be a YAML object (dict)")

        clone = _section(data, 'clone')
        deploy = _section(data, 'deploy')
        root = data.get('workspace_root')

        config = cls(
            workspace_root=Path(root) if root else None,
            clone_timeout=_as_int(clone.get('timeout', 120), 'clone.timeout'),
            clone_depth=_as_int(clone.get('depth', 1), 'clone.depth'),
            git_binary=str(clone.get('git', 'git')),
            allowed_schemes=_as_names(clone.get('allowed_schemes', DEFAULT_ALLOWED_SCHEMES), 'clone.allowed_schemes'),
            manifest_names=_as_names(data.get('manifest_names', DEFAULT_MANIFEST_NAMES), 'manifest_names'),
            deploy_timeout=_as_int(deploy.get('timeout', 60), 'deploy.timeout'),
            verify_tls=_as_bool(deploy.get('verify_tls', True), 'deploy.verify_tls'),
            server=ServerConfig.from_dict(data.get('server')),
        )
        if not config.manifest_names:
            raise ConfigError("manifest_names must not be empty")
        return config

    def apply_env(self, environ: Optional[dict] = None) -> 'DeployConfig':
        """Apply DEPLOYWEB_* environment overrides in place and return self."""
        environ = os.environ if environ is None else environ

        if root := environ.get('DEPLOYWEB_WORKSPACE_ROOT'):
            self.workspace_root = Path(root)
        if timeout := environ.get('DEPLOYWEB_CLONE_TIMEOUT'):
            self.clone_timeout = _as_int(timeout, 'DEPLOYWEB_CLONE_TIMEOUT')
        if timeout := environ.get('DEPLOYWEB_DEPLOY_TIMEOUT'):
            self.deploy_timeout = _as_int(timeout, 'DEPLOYWEB_DEPLOY_TIMEOUT')
        if verify := environ.get('DEPLOYWEB_VERIFY_TLS'):
            self.verify_tls = _as_bool(verify, 'DEPLOYWEB_VERIFY_TLS')
        return self


def _as_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got: {value!r}")


_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off')


def _as_bool(value, name: str) -> bool:
    """Accept a YAML boolean or a true/false/yes/no/on/off/1/0 string."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got: {value!r}")


def _as_names(value, name: str) -> tuple[str, ...]:
    """Accept a list of strings; a bare string is an error, not a list of characters."""
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{name} must be a list of strings, got: {value!r}")
    return tuple(value)


def _section(data: dict, name: str) -> dict:
    """Return a nested mapping; an empty or absent section is {}."""
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping, got: {section!r}")
    return section


def get_config_path() -> Optional[Path]:
    """Discover the config file path.

    Resolution order:
    1. DEPLOYWEB_CONFIG environment variable
    2. /usr/local/etc/deployweb/config.yaml

    Returns:
        Path to config file, or None if no file exists
    """
    if env_path := os.environ.get('DEPLOYWEB_CONFIG'):
        path = Path(env_path)
        if not path.is_file():
            raise ConfigError(f"DEPLOYWEB_CONFIG points to a missing file: {path}")
        return path

    if FHS_CONFIG_PATH.is_file():
        return FHS_CONFIG_PATH

    return None


def _parse_yaml(path: Path) -> dict:
    """Parse YAML file and return dict."""
    try:
        with open(path, encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")


def load_config(path: Optional[Path] = None) -> DeployConfig:
    """Load configuration from file (explicit or discovered) plus environment.

    Args:
        path: Explicit config file path (skips discovery)

    Returns:
        DeployConfig instance

    Raises:
        ConfigError: If the file is missing or invalid
    """
    if path is None:
        path = get_config_path()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    if path is None:
        logger.debug("No config file found, using defaults")
        config = DeployConfig()
    else:
        logger.debug("Loading config from %s", path)
        config = DeployConfig.from_dict(_parse_yaml(path))

    return config.apply_env()
