"""Unit tests for API key authentication module."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi import HTTPException

from app.adapters.key_store.in_memory import InMemoryKeyStore
from app.core.auth import (
    authenticate,
    extract_credential,
    get_admission_controller,
    parse_api_keys,
    raise_for_validation,
    verify_admin_key,
)
from app.core.errors import AuthenticationAppError, BackendUnavailableAppError
from app.services.admission_service import (
    AdmissionReason,
    AuthMode,
    ValidationResult,
)
from tests.factories import make_record


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_single_key(self) -> None:
        """Test parsing a single API key."""
        result = parse_api_keys("my-secret-key")
        assert result == {"my-secret-key"}

    def test_parse_multiple_keys(self) -> None:
        """Test parsing multiple comma-separated keys."""
        result = parse_api_keys("key1,key2,key3")
        assert result == {"key1", "key2", "key3"}

    def test_parse_keys_with_whitespace(self) -> None:
        """Test that whitespace is trimmed from keys."""
        result = parse_api_keys("key1 , key2  ,  key3")
        assert result == {"key1", "key2", "key3"}

    def test_parse_none_returns_empty_set(self) -> None:
        """Test that None input returns empty set."""
        assert parse_api_keys(None) == set()

    def test_parse_whitespace_only_returns_empty_set(self) -> None:
        """Test that whitespace-only string returns empty set."""
        assert parse_api_keys("   ,  ,  ") == set()


class TestExtractCredential:
    """Test Authorization header parsing."""

    def test_bearer_prefix_stripped(self) -> None:
        assert extract_credential("Bearer abc") == "abc"

    def test_raw_secret_accepted(self) -> None:
        assert extract_credential(" abc ") == "abc"

    def test_missing_header(self) -> None:
        assert extract_credential(None) is None

    def test_bare_prefix_yields_empty_secret(self) -> None:
        """A header with only the prefix carries no credential."""
        assert extract_credential("Bearer ") == ""


class TestRaiseForValidation:
    """Test mapping of validation results to application errors."""

    def test_valid_result_passes(self) -> None:
        raise_for_validation(ValidationResult(valid=True, key_id="k1"))

    def test_credential_required(self) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            raise_for_validation(
                ValidationResult(valid=False, error=AdmissionReason.CREDENTIAL_REQUIRED)
            )

        assert exc_info.value.code == "credential_required"
        assert "Authorization: Bearer" in exc_info.value.message

    def test_invalid_credential(self) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            raise_for_validation(
                ValidationResult(valid=False, error=AdmissionReason.INVALID_CREDENTIAL)
            )

        assert exc_info.value.code == "invalid_credential"

    def test_backend_unavailable_is_distinct(self) -> None:
        with pytest.raises(BackendUnavailableAppError) as exc_info:
            raise_for_validation(
                ValidationResult(
                    valid=False,
                    error=AdmissionReason.BACKEND_UNAVAILABLE,
                    detail="timeout",
                )
            )

        assert exc_info.value.details == {"hint": "timeout"}


class TestAuthenticateDependency:
    """Test the per-mode credential dependency."""

    def test_factory_is_cached_per_mode(self) -> None:
        assert authenticate(AuthMode.STRICT) is authenticate(AuthMode.STRICT)
        assert authenticate(AuthMode.STRICT) is not authenticate(AuthMode.PUBLIC)

    @pytest.mark.asyncio
    async def test_strict_accepts_known_key(self) -> None:
        controller = get_admission_controller(InMemoryKeyStore(records=[make_record(id="k1")]))

        result = await authenticate(AuthMode.STRICT)(controller, authorization="Bearer abc")

        assert result.key_id == "k1"

    @pytest.mark.asyncio
    async def test_strict_rejects_missing_header(self) -> None:
        controller = get_admission_controller(InMemoryKeyStore())

        with pytest.raises(AuthenticationAppError):
            await authenticate(AuthMode.STRICT)(controller, authorization=None)

    @pytest.mark.asyncio
    async def test_public_admits_anonymous(self) -> None:
        controller = get_admission_controller(InMemoryKeyStore())

        result = await authenticate(AuthMode.PUBLIC)(controller, authorization=None)

        assert result == ValidationResult(valid=True, key_id=None)

    @pytest.mark.asyncio
    async def test_mode_is_forwarded_to_controller(self) -> None:
        controller = Mock()
        controller.avalidate = AsyncMock(return_value=ValidationResult(valid=True))

        await authenticate(AuthMode.PUBLIC)(controller, authorization=None)

        controller.avalidate.assert_awaited_once_with(None, mode=AuthMode.PUBLIC)


class TestVerifyAdminKeyDependency:
    """Test FastAPI dependency for admin key verification."""

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_bypassed_when_auth_disabled(self, mock_settings) -> None:
        """Test that dependency allows requests when admin auth is disabled."""
        mock_settings.app.admin_auth_required = False

        # Should not raise even without header
        await verify_admin_key(x_admin_key=None)

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_raises_403_when_header_missing(self, mock_settings) -> None:
        """Test that missing X-Admin-Key header returns 403."""
        mock_settings.app.admin_auth_required = True
        mock_settings.app.admin_api_keys = "valid-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_admin_key(x_admin_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing admin key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_raises_403_when_key_invalid(self, mock_settings) -> None:
        """Test that invalid admin key returns 403."""
        mock_settings.app.admin_auth_required = True
        mock_settings.app.admin_api_keys = "valid-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_admin_key(x_admin_key="wrong-key")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Invalid admin key"

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_accepts_valid_key(self, mock_settings) -> None:
        """Test that valid admin key passes verification."""
        mock_settings.app.admin_auth_required = True
        mock_settings.app.admin_api_keys = "my-valid-key,another-key"

        # Should not raise
        await verify_admin_key(x_admin_key="my-valid-key")
        await verify_admin_key(x_admin_key="another-key")

    @pytest.mark.asyncio
    @patch("app.core.auth.settings")
    async def test_verify_raises_403_when_keys_not_configured(self, mock_settings) -> None:
        """Test that dependency returns 403 when no admin keys are configured."""
        mock_settings.app.admin_auth_required = True
        mock_settings.app.admin_api_keys = None

        with pytest.raises(HTTPException) as exc_info:
            await verify_admin_key(x_admin_key="some-key")

        assert exc_info.value.status_code == 403
        assert "no admin keys are configured" in exc_info.value.detail
