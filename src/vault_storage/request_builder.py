"""Request construction for the blob store REST dialect."""

from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import quote

from .config import DEFAULT_API_VERSION

# Statuses each operation hands back as a response instead of an error
READ_STATUSES: Tuple[int, ...] = (200,)
WRITE_STATUSES: Tuple[int, ...] = (200, 201, 409, 412)
DELETE_STATUSES: Tuple[int, ...] = (202, 204)

BLOB_LISTING_QUERY = "restype=container&comp=list"
CONTAINER_LISTING_QUERY = "comp=list"


@dataclass
class RequestSpec:
    """Everything the transport needs to send one request."""

    url: str
    method: str
    headers: Dict[str, str]
    data: Optional[bytes] = None
    accepted_statuses: Tuple[int, ...] = field(default=READ_STATUSES)


class RequestBuilder:
    """Builds URLs, headers and methods for each storage operation.

    Two URL strategies are supported:
    - "container": the base location is a full container URL and logical
      paths are blobs inside it
    - "host": the base location is a bare account host and the first path
      segment names the container
    """

    def __init__(
        self,
        base_url: str,
        path_style: str = "container",
        api_version: str = DEFAULT_API_VERSION,
        create_if_absent: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize request builder.

        Args:
            base_url: Container URL or bare host, depending on path_style
            path_style: "container" or "host"
            api_version: Value of the x-ms-version header
            create_if_absent: Send If-None-Match: * when saving without a revision
            clock: Optional time source returning epoch seconds (for testing)
        """
        if path_style not in ("container", "host"):
            raise ValueError(f"Unsupported path style: {path_style}")
        self.base_url = base_url.rstrip("/")
        self.path_style = path_style
        self.api_version = api_version
        self.create_if_absent = create_if_absent
        self.clock = clock

    def resolve_path(self, path: str) -> str:
        """Return the absolute URL of a logical path."""
        relative = quote(path.lstrip("/"), safe="/")
        if not relative:
            return self.base_url
        return f"{self.base_url}/{relative}"

    def common_headers(self) -> Dict[str, str]:
        """Date and protocol-version headers sent with every request."""
        now = self.clock() if self.clock else None
        return {
            "x-ms-date": formatdate(now, usegmt=True),
            "x-ms-version": self.api_version,
        }

    def load(self, path: str) -> RequestSpec:
        return RequestSpec(url=self.resolve_path(path), method="GET", headers=self.common_headers())

    def stat(self, path: str) -> RequestSpec:
        return RequestSpec(url=self.resolve_path(path), method="HEAD", headers=self.common_headers())

    def save(self, path: str, data: bytes, revision: Optional[str] = None) -> RequestSpec:
        """
        Build a conditional block-blob upload.

        With a known revision the write carries If-Match so the backend only
        accepts it when the blob is still at that revision. Without one no
        If-Match is sent.
        """
        headers = self.common_headers()
        headers["x-ms-blob-type"] = "BlockBlob"
        if revision:
            headers["If-Match"] = revision
        elif self.create_if_absent:
            headers["If-None-Match"] = "*"
        return RequestSpec(
            url=self.resolve_path(path),
            method="PUT",
            headers=headers,
            data=data,
            accepted_statuses=WRITE_STATUSES,
        )

    def remove(self, path: str) -> RequestSpec:
        return RequestSpec(
            url=self.resolve_path(path),
            method="DELETE",
            headers=self.common_headers(),
            accepted_statuses=DELETE_STATUSES,
        )

    def list(self, directory: Optional[str] = None, marker: Optional[str] = None) -> RequestSpec:
        """
        Build a listing request.

        The root of a host-style location lists containers; the root of a
        container-style location lists its blobs. A named directory is a
        container in host style and a name prefix in container style.
        """
        if is_root(directory):
            query = CONTAINER_LISTING_QUERY if self.path_style == "host" else BLOB_LISTING_QUERY
            url = f"{self.base_url}/?{query}" if self.path_style == "host" else f"{self.base_url}?{query}"
        elif self.lists_by_prefix(directory):
            prefix = quote(directory.strip("/") + "/", safe="")
            url = f"{self.base_url}?{BLOB_LISTING_QUERY}&prefix={prefix}"
        else:
            url = f"{self.resolve_path(directory)}?{BLOB_LISTING_QUERY}"
        if marker:
            url = f"{url}&marker={quote(marker, safe='')}"
        return RequestSpec(url=url, method="GET", headers=self.common_headers())

    def lists_by_prefix(self, directory: Optional[str]) -> bool:
        """True when listed blob names already carry the directory prefix."""
        return self.path_style == "container" and not is_root(directory)


def is_root(directory: Optional[str]) -> bool:
    """True for the root listing ("", "/" or None)."""
    return not directory or not directory.strip("/")
