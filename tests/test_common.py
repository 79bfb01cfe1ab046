"""Tests for common.py, pipeline/errors.py and pipeline/reporter.py."""

import re

from common import DeploymentOutcome, DeploymentResult, new_activation_id, run_command
from pipeline.errors import (
    MSG_REPOSITORY_UNAVAILABLE,
    DeploymentFailure,
    ManifestParseFailure,
    ManifestPathNotFound,
    MissingRepositoryURL,
    RepositoryUnavailable,
)
from pipeline.reporter import report_failure, report_success


class TestRunCommand:
    """Test run_command utility."""

    def test_returns_success_tuple(self):
        """Should return (returncode, stdout, stderr) on success."""
        rc, stdout, stderr = run_command(['echo', 'hello'])
        assert rc == 0
        assert 'hello' in stdout
        assert stderr == ''

    def test_returns_failure_tuple(self):
        """Should return non-zero returncode on failure."""
        rc, stdout, stderr = run_command(['false'])
        assert rc != 0

    def test_respects_cwd(self, tmp_path):
        """Should run command in specified directory."""
        (tmp_path / 'marker.txt').write_text('found')
        rc, stdout, stderr = run_command(['cat', 'marker.txt'], cwd=tmp_path)
        assert rc == 0
        assert 'found' in stdout

    def test_timeout_returns_error(self):
        """Should return error on timeout."""
        rc, stdout, stderr = run_command(['sleep', '10'], timeout=1)
        assert rc == -1
        assert 'timed out' in stderr.lower()

    def test_env_merges_with_environment(self):
        """Extra env vars are added to the inherited environment."""
        rc, stdout, stderr = run_command(['sh', '-c', 'echo $TEST_VAR:$PATH'], env={'TEST_VAR': 'test_value'})
        assert rc == 0
        value, path = stdout.strip().split(':', 1)
        assert value == 'test_value'
        assert path

    def test_missing_binary(self):
        """A missing executable is a failure tuple, not an exception."""
        rc, stdout, stderr = run_command(['definitely-not-a-real-binary-xyz'])
        assert rc == -1
        assert stderr


class TestActivationId:
    """Tests for new_activation_id()."""

    def test_shape(self):
        """32 lowercase hex chars."""
        assert re.fullmatch(r'[0-9a-f]{32}', new_activation_id())

    def test_unique(self):
        """Ids do not repeat."""
        assert len({new_activation_id() for _ in range(100)}) == 100


class TestErrors:
    """Tests for the error taxonomy."""

    def test_codes(self):
        """Each kind has its own code and HTTP 400."""
        errors = [
            MissingRepositoryURL(),
            RepositoryUnavailable("x"),
            ManifestPathNotFound("x"),
            ManifestParseFailure("x"),
            DeploymentFailure("x"),
        ]
        assert [e.code for e in errors] == ['E100', 'E200', 'E201', 'E300', 'E400']
        assert {e.http_status for e in errors} == {400}

    def test_deployment_failure_message(self):
        """The message names the entity when known."""
        assert DeploymentFailure("conflict", entity="pkg/a").message == "Error deploying pkg/a: conflict"
        assert DeploymentFailure("bad auth").message == "Error deploying manifest: bad auth"


class TestDeploymentResult:
    """Tests for DeploymentResult.to_dict and the reporter."""

    def test_success_body(self):
        """Success carries status, activationId and entity outcomes."""
        result = report_success([DeploymentOutcome('pkg', True, activation_id='r1')], 'a1')
        assert result.http_status == 200
        assert result.to_dict() == {
            'status': 'success',
            'activationId': 'a1',
            'entities': [{'name': 'pkg', 'succeeded': True, 'activationId': 'r1'}],
        }

    def test_failure_body(self):
        """Failure carries error, code, detail and activationId."""
        result = report_failure(RepositoryUnavailable("fatal: not found"), 'a1')
        body = result.to_dict()
        assert body['error'] == MSG_REPOSITORY_UNAVAILABLE
        assert body['code'] == 'E200'
        assert body['detail'] == 'fatal: not found'
        assert body['activationId'] == 'a1'
        assert 'status' not in body

    def test_detail_not_repeated(self):
        """A detail already in the message is not duplicated."""
        body = report_failure(ManifestParseFailure("bad indent"), 'a1').to_dict()
        assert body['error'] == 'Error parsing manifest file: bad indent'
        assert 'detail' not in body

    def test_failure_outcomes_from_error(self):
        """Outcomes carried by a DeploymentFailure are reported."""
        outcomes = [DeploymentOutcome('pkg', True), DeploymentOutcome('pkg/a', False, error_detail='409')]
        result = report_failure(DeploymentFailure('409', entity='pkg/a', outcomes=outcomes), 'a1')
        assert [e['succeeded'] for e in result.to_dict()['entities']] == [True, False]
        assert not result.succeeded

    def test_result_default_status(self):
        """A bare result is HTTP 200."""
        assert DeploymentResult(status='success', activation_id='a').http_status == 200
