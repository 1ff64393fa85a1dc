"""Revision (ETag) tracking for optimistic concurrency.

Responses are classified into exactly one of four outcomes:

    2xx with an ETag          -> the revision string
    2xx without an ETag       -> ProtocolError
    404 on a read             -> NotFoundError
    409 / 412 on a write      -> RevisionConflictError(revision=<current>)

Revisions are opaque: they are compared for equality only and returned
exactly as the backend sent them. Conflicts are detected, never resolved
here; the caller holds the content and decides whether to re-fetch, merge
or retry against the new revision.
"""

from typing import Any, Optional

from .exceptions import (
    NotFoundError,
    ProtocolError,
    RevisionConflictError,
    TransportError,
    VaultStorageError,
)

REVISION_HEADER = "ETag"
NOT_FOUND_STATUS = 404
CONFLICT_STATUSES = (409, 412)


def read_revision(response: Any) -> Optional[str]:
    """Return the response's revision tag, or None when absent or empty."""
    if response is None:
        return None
    return response.headers.get(REVISION_HEADER) or None


def require_revision(response: Any, path: str) -> str:
    """
    Return the revision of a successful response.

    Raises:
        ProtocolError: If the response carries no revision
    """
    revision = read_revision(response)
    if not revision:
        raise ProtocolError(f"no revision in response for {path}", path=path)
    return revision


def classify_write(response: Any, path: str, expected_revision: Optional[str] = None) -> str:
    """
    Interpret the response to a conditional write.

    Args:
        response: Response with one of the accepted write statuses
        path: Logical path written
        expected_revision: Revision the write was conditioned on, if any

    Returns:
        The new revision, to be used as the base of the next write

    Raises:
        RevisionConflictError: On 409/412, carrying the current remote
            revision when the response includes one
        ProtocolError: If a successful write returns no revision, or returns
            the revision it was conditioned on
    """
    if response.status_code in CONFLICT_STATUSES:
        raise RevisionConflictError(
            f"revision conflict for {path}",
            path=path,
            revision=read_revision(response),
            status_code=response.status_code,
        )

    revision = require_revision(response, path)
    if expected_revision and revision == expected_revision:
        raise ProtocolError(f"revision not advanced for {path}", path=path)
    return revision


def classify_read_error(error: TransportError, path: str) -> VaultStorageError:
    """Map a failed read/stat/delete to NotFoundError on 404, else keep it."""
    if error.status_code == NOT_FOUND_STATUS:
        not_found = NotFoundError(f"not found: {path}", path=path)
        not_found.__cause__ = error
        return not_found
    return error
