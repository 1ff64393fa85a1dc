"""Settings for the blob storage adapter.

Settings come from a YAML file (or a plain dict), go through environment
variable substitution, and are validated with Pydantic. The OAuth
descriptor for the running deployment is resolved once from the validated
settings and never changes afterwards.
"""

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

DEFAULT_API_VERSION = "2020-06-12"
DEFAULT_SCOPE = "https://storage.azure.com/user_impersonation"
LOGIN_HOST = "https://login.microsoftonline.com"


class DeploymentContext(str, Enum):
    """Where the application runs; selects the OAuth client registration."""

    DESKTOP = "desktop"
    LOCAL = "local"
    HOSTED = "hosted"


class OAuthSettings(BaseModel):
    """OAuth application registration for the blob store."""

    tenant_id: str = Field(..., description="Directory (tenant) ID")
    client_id: str = Field(..., description="Application (client) ID used when hosted")
    client_secret: Optional[str] = Field(None, description="Secret for confidential hosted clients")
    desktop_client_id: Optional[str] = Field(None, description="Client ID for the desktop app")
    local_client_id: Optional[str] = Field(None, description="Client ID for local development")
    local_redirect_uri: str = Field("http://localhost:8085/oauth-result", description="Local redirect")
    hosted_redirect_uri: Optional[str] = Field(None, description="Redirect URI of the hosted app")
    scope: str = Field(DEFAULT_SCOPE, description="OAuth scope requested for storage access")
    width: int = Field(600, description="Authorization popup width")
    height: int = Field(500, description="Authorization popup height")


class StorageSettings(BaseModel):
    """Root settings model."""

    blob_container_url: str = Field(..., description="Container URL or bare host")
    path_style: str = Field("container", description="How paths join the base location")
    api_version: str = Field(DEFAULT_API_VERSION, description="x-ms-version header value")
    gate_remove: bool = Field(True, description="Require authorization before deletes")
    create_if_absent: bool = Field(False, description="Send If-None-Match: * on blind creates")
    timeout: Optional[float] = Field(None, description="Per-request timeout in seconds")
    oauth: Optional[OAuthSettings] = Field(None, description="OAuth registration")

    @field_validator("path_style")
    @classmethod
    def validate_path_style(cls, v: str) -> str:
        """Validate path style is one of the allowed values."""
        allowed = ["container", "host"]
        if v not in allowed:
            raise ValueError(f"path_style must be one of {allowed}, got '{v}'")
        return v

    @field_validator("blob_container_url")
    @classmethod
    def validate_blob_container_url(cls, v: str) -> str:
        """Require an absolute http(s) URL."""
        if not re.match(r"^https?://[^/]+", v):
            raise ValueError(f"blob_container_url must be an absolute http(s) URL, got '{v}'")
        return v


@dataclass(frozen=True)
class OAuthConfig:
    """Static OAuth descriptor for one backend instance."""

    url: str
    token_url: str
    scope: str
    client_id: str
    client_secret: Optional[str] = None
    pkce: bool = True
    width: int = 600
    height: int = 500
    redirect_uri: Optional[str] = None

    @property
    def authority(self) -> str:
        """Authority URL (the authorize URL without its endpoint suffix)."""
        return self.url.rsplit("/oauth2/", 1)[0]


def resolve_oauth_config(oauth: OAuthSettings, context: DeploymentContext) -> OAuthConfig:
    """
    Select the OAuth descriptor for a deployment context.

    Desktop and local builds are public clients and always use PKCE without
    a secret. Hosted builds use the client secret when one is configured.

    Args:
        oauth: Validated OAuth settings
        context: Deployment context of this backend instance

    Returns:
        Immutable OAuthConfig

    Raises:
        ConfigurationError: If the context is unknown
    """
    try:
        context = DeploymentContext(context)
    except ValueError as e:
        raise ConfigurationError(f"Unknown deployment context: {context}") from e

    base = f"{LOGIN_HOST}/{oauth.tenant_id}/oauth2/v2.0"
    common = dict(
        url=f"{base}/authorize",
        token_url=f"{base}/token",
        scope=oauth.scope,
        width=oauth.width,
        height=oauth.height,
    )

    if context is DeploymentContext.DESKTOP:
        return OAuthConfig(client_id=oauth.desktop_client_id or oauth.client_id, pkce=True, **common)
    if context is DeploymentContext.LOCAL:
        return OAuthConfig(
            client_id=oauth.local_client_id or oauth.client_id,
            pkce=True,
            redirect_uri=oauth.local_redirect_uri,
            **common,
        )
    return OAuthConfig(
        client_id=oauth.client_id,
        client_secret=oauth.client_secret,
        pkce=not oauth.client_secret,
        redirect_uri=oauth.hosted_redirect_uri,
        **common,
    )


def substitute_env_vars(value: Any) -> Any:
    """
    Recursively substitute environment variables in configuration values.

    Supports patterns:
    - ${VAR} - Replace with environment variable value (raises error if not set)
    - ${VAR:-default} - Replace with VAR or use default if not set
    - $$ - Escape sequence for literal $

    Args:
        value: Configuration value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ConfigurationError: If required environment variable is not set
    """
    if isinstance(value, str):
        result = value.replace("$$", "\x00")

        def replace_var(match: re.Match[str]) -> str:
            var_with_default = match.group(1)

            if ":-" in var_with_default:
                var_name, default_value = var_with_default.split(":-", 1)
                env_value = os.environ.get(var_name)
                # Empty counts as unset
                if env_value is None or env_value == "":
                    return default_value
                return env_value

            env_value = os.environ.get(var_with_default)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable '{var_with_default}' is not set"
                )
            return env_value

        result = re.sub(r"\$\{([^}]+)\}", replace_var, result)
        return result.replace("\x00", "$")

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(item) for item in value]

    return value


def settings_from_dict(data: Dict[str, Any]) -> StorageSettings:
    """
    Build validated settings from a raw mapping.

    Raises:
        ConfigurationError: If substitution or validation fails
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    substituted = substitute_env_vars(data)
    try:
        return StorageSettings(**substituted)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def load_settings(file_path: str) -> StorageSettings:
    """
    Load settings from a YAML file.

    The file may either hold the settings at top level or under a
    ``storage:`` key.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If YAML parsing or validation fails
    """
    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

    if isinstance(raw_config, dict) and "storage" in raw_config:
        raw_config = raw_config["storage"]

    return settings_from_dict(raw_config)
