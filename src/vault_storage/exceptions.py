"""Exception hierarchy for vault-storage.

Every failure an operation can produce is classified exactly once into one
of the exceptions below and propagated immediately; nothing in this package
retries.

Two of them are expected outcomes rather than failures:
- NotFoundError: the remote object does not exist
- RevisionConflictError: the caller's base revision is stale

Both carry a ``sentinel`` dict understood by callers of the callback-style
API ({"notFound": True} / {"revConflict": True}).
"""

from typing import Any, Dict, Optional


class VaultStorageError(Exception):
    """Base exception for all vault-storage errors.

    Attributes:
        message: Human-readable error message
        **kwargs: Additional context stored as attributes
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        """Initialize exception with message and optional context.

        Args:
            message: Human-readable error description
            **kwargs: Additional context (e.g., path, status_code, revision)
        """
        super().__init__(message)
        self.message = message

        for key, value in kwargs.items():
            setattr(self, key, value)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class AuthError(VaultStorageError):
    """Raised when an access token could not be obtained.

    Fatal for the call that triggered it. The wrapped cause is available
    via ``__cause__``.
    """

    pass


class ConfigurationError(VaultStorageError):
    """Raised when settings are invalid or missing.

    Common scenarios:
    - Invalid YAML syntax or schema
    - Unset environment variable referenced as ${VAR}
    - Unknown deployment context
    """

    pass


class TransportError(VaultStorageError):
    """Raised when an HTTP exchange fails outside the recognized status set.

    Attributes:
        status_code: HTTP status of the response, None for connection failures
        response: The raw response object, if one was received
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, status_code=status_code, response=response, **kwargs)


class NotFoundError(VaultStorageError):
    """The remote object does not exist (HTTP 404)."""

    sentinel: Dict[str, bool] = {"notFound": True}

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)


class RevisionConflictError(VaultStorageError):
    """A conditional write was rejected because the base revision is stale.

    HTTP 409 and 412 both map here; the raw status is kept in
    ``status_code`` for diagnostics only.

    Attributes:
        path: Logical path of the object
        revision: Current remote revision reported by the conflicting
            response, or None when the backend did not send one
        status_code: Raw HTTP status (409 or 412)
    """

    sentinel: Dict[str, bool] = {"revConflict": True}

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        revision: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message, path=path, revision=revision, status_code=status_code, **kwargs
        )


class ProtocolError(VaultStorageError):
    """A success status arrived with a response that breaks the backend contract.

    Examples: no ETag on a stat/load/save response, or a listing document
    with no root element.
    """

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)
