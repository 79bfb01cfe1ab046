"""Shared pytest fixtures for deployweb tests."""

import shutil
import subprocess
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import DeployConfig  # noqa: E402

HELLO_JS = """\
function main(params) {
    return {payload: 'Hello, ' + params.name + ' from ' + params.place + '!'};
}
"""

HELLO_WORLD_MANIFEST = """\
packages:
  openwhisk-helloworld:
    actions:
      helloworld:
        function: src/hello.js
        runtime: nodejs:default
        inputs:
          name: Amy
          place: Paris
"""

HELLO_WORLD_PACKAGE_PARAM_MANIFEST = """\
packages:
  ${PACKAGE_NAME}:
    inputs:
      PACKAGE_NAME: openwhisk-helloworld
    actions:
      helloworld:
        function: src/hello.js
        runtime: nodejs:default
        inputs:
          name: Amy
          place: Paris
"""

# Manifest fixture directories, relative to the repository root
HELLO_WORLD_PATH = 'tests/testFixtures/helloWorld'
HELLO_WORLD_PACKAGE_PARAM_PATH = 'tests/testFixtures/helloWorldPackageParam'
HELLO_WORLD_NO_MANIFEST_PATH = 'tests/testFixtures/helloWorldNoManifest'


def pytest_collection_modifyitems(config, items):
    """Skip tests marked with requires_git when git is not installed."""
    if shutil.which('git'):
        return
    skip_marker = pytest.mark.skip(reason="requires git")
    for item in items:
        if "requires_git" in item.keywords:
            item.add_marker(skip_marker)


def pytest_configure(config):
    config.addinivalue_line("markers", "requires_git: test clones a local git repository")


def write_fixture_tree(root: Path) -> Path:
    """Write the manifest fixtures into root and return it.

    Creates:
    - helloWorld (manifest + src/hello.js)
    - helloWorldPackageParam (package name from ${PACKAGE_NAME})
    - helloWorldNoManifest (source only)
    """
    for rel, manifest in (
        (HELLO_WORLD_PATH, HELLO_WORLD_MANIFEST),
        (HELLO_WORLD_PACKAGE_PARAM_PATH, HELLO_WORLD_PACKAGE_PARAM_MANIFEST),
        (HELLO_WORLD_NO_MANIFEST_PATH, None),
    ):
        directory = root / rel
        (directory / 'src').mkdir(parents=True, exist_ok=True)
        (directory / 'src' / 'hello.js').write_text(HELLO_JS)
        if manifest:
            (directory / 'manifest.yaml').write_text(manifest)
    return root


@pytest.fixture
def fixture_tree(tmp_path):
    """Plain directory (not a git repository) holding the manifest fixtures."""
    return write_fixture_tree(tmp_path / 'tree')


@pytest.fixture
def git_repo(tmp_path):
    """Local git repository holding the manifest fixtures.

    Returns:
        file:// URL of the repository
    """
    repo = write_fixture_tree(tmp_path / 'origin')
    git = ['git', '-c', 'user.name=Test', '-c', 'user.email=test@example.com',
           '-c', 'init.defaultBranch=main']
    for cmd in (['init', '--quiet'], ['add', '.'], ['commit', '--quiet', '-m', 'fixtures']):
        subprocess.run(git + cmd, cwd=repo, check=True, capture_output=True)
    return repo.as_uri()


@pytest.fixture
def deploy_config(tmp_path):
    """DeployConfig with a private workspace root that accepts file:// URLs."""
    return DeployConfig(
        workspace_root=tmp_path / 'workspaces',
        allowed_schemes=('https', 'http', 'file'),
        clone_timeout=30,
    )


class FakeWhiskClient:
    """In-memory stand-in for WhiskClient; records every PUT.

    Args:
        fail_on: Entity name whose PUT raises WhiskError
    """

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []
        self.factory_args = []
        self.closed = False

    # Used as the executor's client_factory
    def __call__(self, api_host, auth):
        self.factory_args.append((api_host, auth))
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def _record(self, kind, name, **kwargs):
        from whisk.client import WhiskError
        self.calls.append((kind, name, kwargs))
        if name == self.fail_on:
            raise WhiskError(f"The requested resource conflicts with {name} (HTTP 409)", 409)
        return f"req-{len(self.calls)}"

    def put_package(self, name, parameters, annotations=None):
        return self._record('package', name, parameters=parameters, annotations=annotations)

    def put_action(self, qualified_name, exec_body, parameters, annotations=None, limits=None):
        return self._record('action', qualified_name, exec=exec_body, parameters=parameters,
                            annotations=annotations, limits=limits)

    @property
    def names(self):
        return [name for _, name, _ in self.calls]


@pytest.fixture
def fake_whisk():
    """Recording client factory for DeploymentExecutor."""
    return FakeWhiskClient()
