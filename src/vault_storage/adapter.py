"""Blob storage adapter: load, stat, save, list and remove remote files.

The remote store is the only source of truth; nothing is cached between
calls. Concurrent writers are serialized by the backend's If-Match
compare-and-swap: of two saves racing on the same base revision at most one
succeeds and the other gets RevisionConflictError.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .auth import AuthProvider, MsalAuthProvider, TokenGate
from .config import DeploymentContext, OAuthConfig, StorageSettings, resolve_oauth_config
from .exceptions import (
    ConfigurationError,
    NotFoundError,
    ProtocolError,
    RevisionConflictError,
    TransportError,
)
from .listing import ListEntry, parse_listing
from .logging_config import elapsed_ms, get_logger, log_context, ts
from .request_builder import RequestBuilder, RequestSpec
from .revisions import classify_read_error, classify_write, require_revision
from .transport import HttpTransport

logger = get_logger("adapter")

OPERATIONS = ("load", "stat", "save", "list", "remove")


@dataclass
class RevisionInfo:
    """Revision of a remote file after stat or save."""

    revision: str


@dataclass
class LoadResult:
    """Content of a remote file and the revision it was read at."""

    content: bytes
    revision: str


class StorageAdapter:
    """Storage backend for an ETag-addressable blob store."""

    name = "azure"
    icon = "cube"
    enabled = True
    uipos = 50

    def __init__(
        self,
        settings: StorageSettings,
        auth_provider: AuthProvider,
        transport: Optional[HttpTransport] = None,
        oauth_config: Optional[OAuthConfig] = None,
    ):
        """
        Initialize the adapter.

        Args:
            settings: Validated storage settings
            auth_provider: Provider that obtains and holds access tokens
            transport: Optional HTTP transport (defaults to one reading the
                provider's token)
            oauth_config: OAuth descriptor the provider was built from, if any
        """
        self.settings = settings
        self.oauth_config = oauth_config
        self.auth_provider = auth_provider
        self.token_gate = TokenGate(auth_provider)
        self.transport = transport or HttpTransport(
            token_source=lambda: auth_provider.access_token,
            timeout=settings.timeout,
        )
        self.request_builder = RequestBuilder(
            settings.blob_container_url,
            path_style=settings.path_style,
            api_version=settings.api_version,
            create_if_absent=settings.create_if_absent,
        )

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        context: DeploymentContext = DeploymentContext.DESKTOP,
        auth_provider: Optional[AuthProvider] = None,
    ) -> "StorageAdapter":
        """
        Build an adapter, resolving the OAuth descriptor for ``context`` once.

        Raises:
            ConfigurationError: If no auth provider is given and the settings
                have no oauth section
        """
        oauth_config = None
        if settings.oauth is not None:
            oauth_config = resolve_oauth_config(settings.oauth, context)
        if auth_provider is None:
            if oauth_config is None:
                raise ConfigurationError("oauth settings required when no auth provider is given")
            auth_provider = MsalAuthProvider(oauth_config)
        return cls(settings, auth_provider, oauth_config=oauth_config)

    def get_path_for_name(self, file_name: str) -> str:
        return "/" + file_name + ".kdbx"

    def _send(self, spec: RequestSpec) -> Any:
        return self.transport.request(
            spec.url,
            method=spec.method,
            headers=spec.headers,
            data=spec.data,
            accepted_statuses=spec.accepted_statuses,
        )

    def _read_failure(self, action: str, path: str, error: TransportError, start: float) -> Exception:
        classified = classify_read_error(error, path)
        if isinstance(classified, NotFoundError):
            logger.debug(f"{action} not found", extra={"elapsed_ms": elapsed_ms(start)})
        else:
            logger.error(f"{action} error: {error}", extra={"elapsed_ms": elapsed_ms(start)})
        return classified

    def load(self, path: str) -> LoadResult:
        """
        Download a file.

        Raises:
            AuthError, NotFoundError, ProtocolError, TransportError
        """
        with log_context(operation="load", path=path):
            return self.token_gate.with_valid_token(self._load, path)

    def _load(self, path: str) -> LoadResult:
        logger.debug("Load")
        start = ts()
        try:
            response = self._send(self.request_builder.load(path))
        except TransportError as e:
            raise self._read_failure("Load", path, e, start)

        try:
            revision = require_revision(response, path)
        except ProtocolError:
            logger.error("Load error: no revision", extra={"elapsed_ms": elapsed_ms(start)})
            raise

        logger.debug("Loaded", extra={"revision": revision, "elapsed_ms": elapsed_ms(start)})
        return LoadResult(content=response.content, revision=revision)

    def stat(self, path: str) -> RevisionInfo:
        """
        Return the current revision of a file.

        Raises:
            AuthError, NotFoundError, ProtocolError, TransportError
        """
        with log_context(operation="stat", path=path):
            return self.token_gate.with_valid_token(self._stat, path)

    def _stat(self, path: str) -> RevisionInfo:
        logger.debug("Stat")
        start = ts()
        try:
            response = self._send(self.request_builder.stat(path))
        except TransportError as e:
            raise self._read_failure("Stat", path, e, start)

        try:
            revision = require_revision(response, path)
        except ProtocolError:
            logger.error("Stat error: no revision", extra={"elapsed_ms": elapsed_ms(start)})
            raise

        logger.debug("Stated", extra={"revision": revision, "elapsed_ms": elapsed_ms(start)})
        return RevisionInfo(revision=revision)

    def save(self, path: str, data: bytes, revision: Optional[str] = None) -> RevisionInfo:
        """
        Upload a file, conditioned on the revision the caller last saw.

        Args:
            path: Logical path
            data: Full file content
            revision: Expected current revision; None to create

        Returns:
            RevisionInfo with the new revision (the base for the next save)

        Raises:
            AuthError, TransportError, ProtocolError
            RevisionConflictError: If the remote file moved past ``revision``
        """
        with log_context(operation="save", path=path):
            return self.token_gate.with_valid_token(self._save, path, data, revision)

    def _save(self, path: str, data: bytes, revision: Optional[str]) -> RevisionInfo:
        logger.debug("Save", extra={"expected_revision": revision})
        start = ts()
        try:
            response = self._send(self.request_builder.save(path, data, revision))
        except TransportError as e:
            logger.error(f"Save error: {e}", extra={"elapsed_ms": elapsed_ms(start)})
            raise

        try:
            new_revision = classify_write(response, path, revision)
        except RevisionConflictError as e:
            logger.debug(
                "Save conflict",
                extra={
                    "revision": e.revision,
                    "status_code": e.status_code,
                    "elapsed_ms": elapsed_ms(start),
                },
            )
            raise
        except ProtocolError as e:
            logger.error(f"Save error: {e}", extra={"elapsed_ms": elapsed_ms(start)})
            raise

        logger.debug("Saved", extra={"revision": new_revision, "elapsed_ms": elapsed_ms(start)})
        return RevisionInfo(revision=new_revision)

    def list(self, directory: Optional[str] = None) -> List[ListEntry]:
        """
        List a directory; the root lists containers and/or root-level blobs.

        Follows continuation markers until the listing is complete.

        Raises:
            AuthError, TransportError
            ProtocolError: If any page is empty or malformed
        """
        with log_context(operation="list", path=directory or ""):
            return self.token_gate.with_valid_token(self._list, directory)

    def _list(self, directory: Optional[str]) -> List[ListEntry]:
        logger.debug("List")
        start = ts()
        entries: List[ListEntry] = []
        seen_markers = set()
        marker = None
        while True:
            try:
                response = self._send(self.request_builder.list(directory, marker))
                page = parse_listing(
                    response.content,
                    directory,
                    prefixed=self.request_builder.lists_by_prefix(directory),
                )
            except (TransportError, ProtocolError) as e:
                logger.error(f"List error: {e}", extra={"elapsed_ms": elapsed_ms(start)})
                raise

            entries.extend(page.entries)
            if not page.next_marker:
                break
            if page.next_marker in seen_markers:
                logger.error("List error: repeated marker", extra={"marker": page.next_marker})
                raise ProtocolError(f"listing marker repeated: {page.next_marker}", path=directory)
            seen_markers.add(page.next_marker)
            marker = page.next_marker

        logger.debug("Listed", extra={"count": len(entries), "elapsed_ms": elapsed_ms(start)})
        return entries

    def remove(self, path: str) -> None:
        """
        Delete a file.

        Raises:
            AuthError: Only when ``gate_remove`` is enabled
            NotFoundError: If the file is already gone
            TransportError
        """
        with log_context(operation="remove", path=path):
            if self.settings.gate_remove:
                return self.token_gate.with_valid_token(self._remove, path)
            return self._remove(path)

    def _remove(self, path: str) -> None:
        logger.debug("Remove")
        start = ts()
        try:
            self._send(self.request_builder.remove(path))
        except TransportError as e:
            raise self._read_failure("Remove", path, e, start)
        logger.debug("Removed", extra={"elapsed_ms": elapsed_ms(start)})

    def logout(self) -> None:
        """Revoke the access token (best effort)."""
        self.token_gate.revoke()

    def invoke(
        self,
        operation: str,
        *args: Any,
        callback: Callable[[Any, Any, Optional[Dict[str, Any]]], None],
    ) -> None:
        """
        Run one operation and report through ``callback(error, result, meta)``.

        ``error`` is None on success, ``{"notFound": True}`` or
        ``{"revConflict": True}`` for the expected outcomes, or the raised
        exception otherwise. For a conflict ``result`` is ``{"rev": <current>}``.

        Raises:
            ValueError: If ``operation`` is not a storage operation
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")

        try:
            result = getattr(self, operation)(*args)
        except NotFoundError as e:
            callback(dict(e.sentinel), None, None)
            return
        except RevisionConflictError as e:
            callback(dict(e.sentinel), {"rev": e.revision}, None)
            return
        except Exception as e:
            callback(e, None, None)
            return

        if isinstance(result, LoadResult):
            callback(None, result.content, {"rev": result.revision})
        elif isinstance(result, RevisionInfo):
            callback(None, {"rev": result.revision}, None)
        elif isinstance(result, list):
            callback(None, [entry.to_dict() for entry in result], None)
        else:
            callback(None, None, None)
