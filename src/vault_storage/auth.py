"""Access-token acquisition for the blob store.

``TokenGate`` is the single place operations pass through before touching
the network. Token acquisition itself is delegated to an ``AuthProvider``;
the provider keeps the token, and the HTTP transport reads it from the
provider when attaching the ``Authorization`` header.
"""

import os
from typing import Any, Callable, Optional, Protocol, TypeVar
from urllib.parse import urlparse

import msal

from .config import OAuthConfig
from .exceptions import AuthError
from .logging_config import get_logger

logger = get_logger("auth")

T = TypeVar("T")

TOKEN_ENV_VAR = "VAULT_STORAGE_TOKEN"


class AuthProvider(Protocol):
    """Obtains, caches and revokes access tokens."""

    @property
    def access_token(self) -> Optional[str]:
        """Current bearer token, None when not authorized."""
        ...

    def authorize(self) -> None:
        """Make sure a usable access token is available; raise on failure."""
        ...

    def revoke_token(self) -> None:
        """Forget the current token."""
        ...


class StaticTokenAuthProvider:
    """Auth provider backed by a pre-issued bearer token."""

    def __init__(self, token: Optional[str] = None):
        """
        Initialize with a bearer token.

        Args:
            token: Access token (e.g. from `az account get-access-token`)
        """
        self._token = token

    @classmethod
    def from_environment(cls) -> "StaticTokenAuthProvider":
        """
        Create a provider from the VAULT_STORAGE_TOKEN environment variable.

        Returns:
            StaticTokenAuthProvider with the token loaded from the environment
        """
        return cls(token=os.environ.get(TOKEN_ENV_VAR))

    @property
    def access_token(self) -> Optional[str]:
        return self._token

    def authorize(self) -> None:
        if not self._token:
            raise AuthError(f"No access token configured (set {TOKEN_ENV_VAR})")

    def revoke_token(self) -> None:
        self._token = None


class MsalAuthProvider:
    """Auth provider using the Microsoft identity platform via MSAL.

    Public clients (desktop, local) try the MSAL token cache first and fall
    back to the interactive browser flow, which uses PKCE. Confidential
    clients (hosted with a secret) use the client-credentials grant.
    """

    def __init__(self, config: OAuthConfig, app: Any = None):
        """
        Initialize MSAL provider.

        Args:
            config: Resolved OAuth descriptor
            app: Optional pre-built MSAL application (for testing)
        """
        self.config = config
        self.app = app if app is not None else self._build_app()
        self._access_token: Optional[str] = None

    @property
    def confidential(self) -> bool:
        return bool(self.config.client_secret)

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _build_app(self) -> Any:
        if self.confidential:
            return msal.ConfidentialClientApplication(
                self.config.client_id,
                authority=self.config.authority,
                client_credential=self.config.client_secret,
            )
        return msal.PublicClientApplication(
            self.config.client_id,
            authority=self.config.authority,
        )

    def _client_scope(self) -> str:
        # Client-credentials grants only accept the resource's .default scope
        resource = self.config.scope.rsplit("/", 1)[0]
        return f"{resource}/.default"

    def _redirect_port(self) -> Optional[int]:
        if not self.config.redirect_uri:
            return None
        return urlparse(self.config.redirect_uri).port

    def authorize(self) -> None:
        """
        Acquire an access token, silently when possible.

        Raises:
            AuthError: If MSAL returns no token
        """
        if self.confidential:
            result = self.app.acquire_token_for_client(scopes=[self._client_scope()])
        else:
            result = None
            scopes = [self.config.scope]
            accounts = self.app.get_accounts()
            if accounts:
                result = self.app.acquire_token_silent(scopes, account=accounts[0])
            if not result:
                logger.debug("No cached token, starting interactive authorization")
                result = self.app.acquire_token_interactive(
                    scopes, port=self._redirect_port()
                )

        if not result or "access_token" not in result:
            details = (result or {}).get("error_description") or (result or {}).get("error")
            raise AuthError(f"Token acquisition failed: {details or 'no token returned'}")

        self._access_token = result["access_token"]

    def revoke_token(self) -> None:
        self._access_token = None
        if not self.confidential:
            for account in self.app.get_accounts():
                self.app.remove_account(account)


class TokenGate:
    """Runs operations only after the auth provider confirmed a valid token."""

    def __init__(self, auth_provider: AuthProvider):
        self.auth_provider = auth_provider

    def ensure_token(self) -> None:
        """
        Ask the provider for a valid token.

        Every call asks again; caching and refresh are the provider's job.

        Raises:
            AuthError: If acquisition fails (wrapping the underlying cause)
        """
        try:
            self.auth_provider.authorize()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Authorization failed: {e}") from e

    def with_valid_token(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``operation`` once a token is confirmed valid.

        Raises:
            AuthError: If acquisition fails; ``operation`` is not called
        """
        self.ensure_token()
        return operation(*args, **kwargs)

    def revoke(self) -> None:
        """Revoke the token; failures are logged and not surfaced."""
        try:
            self.auth_provider.revoke_token()
        except Exception as e:
            logger.warning(f"Token revocation failed: {e}", exc_info=True)
