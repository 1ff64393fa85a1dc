"""Tests for settings loading and OAuth config resolution."""

import dataclasses
import os
from unittest.mock import patch

import pytest

from vault_storage.config import (
    DEFAULT_API_VERSION,
    DeploymentContext,
    OAuthSettings,
    load_settings,
    resolve_oauth_config,
    settings_from_dict,
    substitute_env_vars,
)
from vault_storage.exceptions import ConfigurationError


@pytest.mark.unit
class TestSettings:
    """Test suite for StorageSettings validation."""

    def test_defaults(self):
        """Test defaults applied to a minimal config."""
        settings = settings_from_dict({"blob_container_url": "https://acct.blob.core.windows.net/v"})

        assert settings.path_style == "container"
        assert settings.api_version == DEFAULT_API_VERSION
        assert settings.gate_remove is True
        assert settings.create_if_absent is False
        assert settings.oauth is None

    def test_rejects_unknown_path_style(self):
        """Test that path_style is validated."""
        with pytest.raises(ConfigurationError, match="path_style"):
            settings_from_dict(
                {"blob_container_url": "https://acct.blob.core.windows.net", "path_style": "bucket"}
            )

    def test_rejects_relative_url(self):
        """Test that the base location must be absolute."""
        with pytest.raises(ConfigurationError):
            settings_from_dict({"blob_container_url": "vaults/"})

    def test_rejects_non_mapping(self):
        """Test that a YAML list is rejected."""
        with pytest.raises(ConfigurationError):
            settings_from_dict(["not", "a", "mapping"])


@pytest.mark.unit
class TestLoadSettings:
    """Test suite for YAML loading."""

    def test_loads_yaml_with_env_substitution(self, tmp_path):
        """Test that ${VAR} values are resolved from the environment."""
        config_path = tmp_path / "vault-storage.yaml"
        config_path.write_text(
            """
storage:
  blob_container_url: https://${ACCOUNT}.blob.core.windows.net/vaults
  timeout: 30
  oauth:
    tenant_id: ${TENANT_ID}
    client_id: app-id
"""
        )

        with patch.dict(os.environ, {"ACCOUNT": "vaultacct", "TENANT_ID": "tenant-1"}):
            settings = load_settings(str(config_path))

        assert settings.blob_container_url == "https://vaultacct.blob.core.windows.net/vaults"
        assert settings.timeout == 30
        assert settings.oauth.tenant_id == "tenant-1"

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        """Test that YAML syntax errors become ConfigurationError."""
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("storage: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_settings(str(config_path))


@pytest.mark.unit
class TestEnvVarSubstitution:
    """Test suite for ${VAR} substitution."""

    def test_default_used_when_unset_or_empty(self):
        """Test that ${VAR:-default} falls back for unset and empty vars."""
        with patch.dict(os.environ, {"EMPTY": ""}, clear=True):
            assert substitute_env_vars("${UNSET:-a}/${EMPTY:-b}") == "a/b"

    def test_required_var_missing(self):
        """Test that ${VAR} without default must be set."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError, match="MISSING"):
                substitute_env_vars({"key": ["${MISSING}"]})

    def test_escaped_dollar(self):
        """Test that $$ yields a literal dollar sign."""
        assert substitute_env_vars("$${NOT_A_VAR}") == "${NOT_A_VAR}"

    def test_non_strings_unchanged(self):
        """Test that numbers and booleans pass through."""
        assert substitute_env_vars({"a": 1, "b": True, "c": None}) == {"a": 1, "b": True, "c": None}


@pytest.mark.unit
class TestResolveOAuthConfig:
    """Test suite for OAuth config selection by deployment context."""

    @pytest.fixture
    def oauth(self):
        return OAuthSettings(
            tenant_id="tenant-1",
            client_id="hosted-app",
            client_secret="s3cret",
            desktop_client_id="desktop-app",
            hosted_redirect_uri="https://app.example.com/oauth-result",
        )

    def test_endpoints_and_scope(self, oauth):
        """Test authorize/token URLs and default scope."""
        config = resolve_oauth_config(oauth, DeploymentContext.DESKTOP)

        assert config.url == "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/authorize"
        assert config.token_url == "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"
        assert config.authority == "https://login.microsoftonline.com/tenant-1"
        assert config.scope == "https://storage.azure.com/user_impersonation"
        assert (config.width, config.height) == (600, 500)

    def test_desktop_is_public_pkce_client(self, oauth):
        """Test that desktop never uses the client secret."""
        config = resolve_oauth_config(oauth, DeploymentContext.DESKTOP)

        assert config.client_id == "desktop-app"
        assert config.client_secret is None
        assert config.pkce is True

    def test_local_falls_back_to_main_client_id(self, oauth):
        """Test that local uses the main client id and local redirect."""
        config = resolve_oauth_config(oauth, DeploymentContext.LOCAL)

        assert config.client_id == "hosted-app"
        assert config.client_secret is None
        assert config.redirect_uri == "http://localhost:8085/oauth-result"

    def test_hosted_uses_secret(self, oauth):
        """Test that hosted is a confidential client when a secret exists."""
        config = resolve_oauth_config(oauth, DeploymentContext.HOSTED)

        assert config.client_secret == "s3cret"
        assert config.pkce is False
        assert config.redirect_uri == "https://app.example.com/oauth-result"

    def test_accepts_context_value_string(self, oauth):
        """Test that the plain string value is accepted."""
        assert resolve_oauth_config(oauth, "hosted").client_id == "hosted-app"

    def test_unknown_context(self, oauth):
        """Test that unknown contexts are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown deployment context"):
            resolve_oauth_config(oauth, "mobile")

    def test_config_is_immutable(self, oauth):
        """Test that the resolved config cannot be changed."""
        config = resolve_oauth_config(oauth, DeploymentContext.DESKTOP)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.client_id = "other"
