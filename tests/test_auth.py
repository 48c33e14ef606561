"""Unit tests for API key authentication and principals."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException

from ratekeeper.core.auth import (
    ANONYMOUS,
    Principal,
    parse_api_keys,
    require_group,
    validate_api_key,
    verify_api_key,
)
from ratekeeper.core.errors import AuthenticationAppError, PermissionDeniedAppError


class TestParseAPIKeys:
    """Test parsing of ``key:uid[:group+group]`` entries."""

    def test_parse_full_entry(self) -> None:
        result = parse_api_keys("k1:alice:maintenanceAdmin+ops")

        assert result == {
            "k1": Principal(uid="alice", groups=frozenset({"maintenanceAdmin", "ops"}))
        }

    def test_parse_multiple_entries_with_whitespace(self) -> None:
        result = parse_api_keys(" k1 : alice , k2:bob ")

        assert set(result) == {"k1", "k2"}
        assert result["k1"].uid == "alice"
        assert result["k2"].groups == frozenset()

    def test_bare_key_gets_derived_uid(self) -> None:
        """A key without uid authenticates as a stable hash-derived principal."""
        first = parse_api_keys("my-secret-key")["my-secret-key"]
        second = parse_api_keys("my-secret-key")["my-secret-key"]

        assert first.uid.startswith("key_")
        assert first.uid == second.uid
        assert "my-secret-key" not in first.uid

    @pytest.mark.parametrize("value", [None, "", "   ,  ,  "])
    def test_parse_empty_inputs(self, value) -> None:
        assert parse_api_keys(value) == {}

    def test_later_duplicate_wins(self) -> None:
        result = parse_api_keys("k1:alice,k1:bob")

        assert result["k1"].uid == "bob"


class TestValidateAPIKey:
    """Test core API key validation logic."""

    @patch("ratekeeper.core.auth.settings")
    def test_validate_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        assert validate_api_key("any-random-key") is ANONYMOUS

    @patch("ratekeeper.core.auth.settings")
    @pytest.mark.parametrize("configured", [None, ""])
    def test_validate_raises_when_no_keys_configured(self, mock_settings, configured) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = configured

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"
        assert "no valid keys are configured" in exc_info.value.message

    @patch("ratekeeper.core.auth.settings")
    def test_validate_returns_principal(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key-1:alice:maintenanceAdmin,valid-key-2:bob"

        assert validate_api_key("valid-key-1").is_member("maintenanceAdmin")
        assert validate_api_key("valid-key-2").uid == "bob"

    @patch("ratekeeper.core.auth.settings")
    @pytest.mark.parametrize("provided", ["invalid-key", "", " valid-key "])
    def test_validate_rejects_unknown_key(self, mock_settings, provided) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key:alice"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key(provided)

        assert exc_info.value.code == "invalid_api_key"


class TestRequireGroup:
    def test_member_passes(self) -> None:
        require_group(Principal(uid="alice", groups=frozenset({"admins"})), "admins")

    def test_non_member_denied(self) -> None:
        with pytest.raises(PermissionDeniedAppError) as exc_info:
            require_group(Principal(uid="bob"), "admins")

        assert exc_info.value.code == "permission_denied"
        assert "Only administrators" in exc_info.value.message


class TestVerifyAPIKeyDependency:
    """Test FastAPI dependency for API key verification."""

    @pytest.mark.asyncio
    @patch("ratekeeper.core.auth.settings")
    async def test_verify_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False

        assert await verify_api_key(x_api_key=None) is ANONYMOUS

    @pytest.mark.asyncio
    @patch("ratekeeper.core.auth.settings")
    async def test_verify_raises_401_when_header_missing(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key:alice"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=None)

        assert exc_info.value.status_code == 401
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("ratekeeper.core.auth.settings")
    async def test_verify_raises_401_when_key_invalid(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key:alice"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="wrong-key")

        assert exc_info.value.status_code == 401
        assert "Invalid or missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("ratekeeper.core.auth.settings")
    async def test_verify_raises_401_when_keys_not_configured(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = None

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="some-key")

        assert exc_info.value.status_code == 401
        assert "no valid keys are configured" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("ratekeeper.core.auth.settings")
    async def test_verify_returns_principal(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "my-valid-key:alice,another-key:bob"

        assert (await verify_api_key(x_api_key="my-valid-key")).uid == "alice"
        assert (await verify_api_key(x_api_key="another-key")).uid == "bob"
