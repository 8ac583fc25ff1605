"""Tests for the keyless credential policy."""

from __future__ import annotations

import os
from unittest import mock

import pytest

from l4firewall.security import (
    COMPUTE_SCOPES,
    FORBIDDEN_CREDENTIAL_ENV_VARS,
    KeyFileCredentialError,
    enforce_keyless_credentials,
    get_keyless_credentials,
)


class TestKeylessEnforcement:
    """Tests for key file rejection."""

    def test_clean_environment_passes(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            enforce_keyless_credentials()

    @pytest.mark.parametrize("env_var", FORBIDDEN_CREDENTIAL_ENV_VARS)
    def test_forbidden_env_var_raises(self, env_var: str) -> None:
        with mock.patch.dict(os.environ, {env_var: "/var/run/key.json"}, clear=True):
            with pytest.raises(KeyFileCredentialError) as exc_info:
                enforce_keyless_credentials()

            assert env_var in str(exc_info.value)

    def test_empty_value_is_ignored(self) -> None:
        with mock.patch.dict(os.environ, {"GOOGLE_APPLICATION_CREDENTIALS": ""}, clear=True):
            enforce_keyless_credentials()


class TestGetKeylessCredentials:
    def test_rejects_key_file(self) -> None:
        with mock.patch.dict(os.environ, {"GOOGLE_APPLICATION_CREDENTIALS": "key.json"}, clear=True):
            with mock.patch("l4firewall.security.google.auth.default") as default:
                with pytest.raises(KeyFileCredentialError):
                    get_keyless_credentials()

            default.assert_not_called()

    def test_uses_application_default_credentials(self) -> None:
        credentials = mock.Mock()
        with mock.patch.dict(os.environ, {}, clear=True):
            with mock.patch(
                "l4firewall.security.google.auth.default",
                return_value=(credentials, "my-project"),
            ) as default:
                result = get_keyless_credentials()

        assert result == (credentials, "my-project")
        default.assert_called_once_with(scopes=list(COMPUTE_SCOPES))
