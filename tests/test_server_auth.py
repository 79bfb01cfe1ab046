"""Tests for server/auth.py - deploy endpoint authentication."""

from server.auth import AuthError, extract_bearer_token, validate_deploy_token


class TestAuthError:
    """Tests for AuthError."""

    def test_auth_error_fields(self):
        """AuthError has correct fields."""
        error = AuthError(code="E600", message="Authorization required", http_status=401)
        assert error.code == "E600"
        assert error.message == "Authorization required"
        assert error.http_status == 401
        assert str(error) == "E600: Authorization required"


class TestExtractBearerToken:
    """Tests for extract_bearer_token function."""

    def test_valid_bearer_token(self):
        """Extracts token from valid Bearer header."""
        assert extract_bearer_token("Bearer my-secret-token") == "my-secret-token"

    def test_empty_header(self):
        """Returns None for empty header."""
        assert extract_bearer_token("") is None

    def test_none_header(self):
        """Returns None for None header."""
        assert extract_bearer_token(None) is None

    def test_basic_auth_header(self):
        """Returns None for Basic auth header."""
        assert extract_bearer_token("Basic dXNlcjpwYXNz") is None


class TestValidateDeployToken:
    """Tests for validate_deploy_token function."""

    def test_no_token_configured(self):
        """Any request passes when no token is configured."""
        assert validate_deploy_token("", "") is None
        assert validate_deploy_token("Bearer whatever", "") is None

    def test_valid_token(self):
        """Matching token passes."""
        assert validate_deploy_token("Bearer s3cret", "s3cret") is None

    def test_missing_token(self):
        """Missing token is 401."""
        error = validate_deploy_token("", "s3cret")
        assert error.code == "E600"
        assert error.http_status == 401

    def test_wrong_token(self):
        """Wrong token is 403."""
        error = validate_deploy_token("Bearer nope", "s3cret")
        assert error.code == "E601"
        assert error.http_status == 403
