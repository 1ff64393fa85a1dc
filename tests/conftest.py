"""Shared fixtures: an in-memory blob service behind a requests-like session."""

import logging
import threading
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit
from xml.sax.saxutils import escape

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from vault_storage.adapter import StorageAdapter
from vault_storage.auth import StaticTokenAuthProvider
from vault_storage.config import StorageSettings
from vault_storage.logging_config import ROOT_LOGGER_NAME
from vault_storage.transport import HttpTransport

CONTAINER_URL = "https://vaultacct.blob.core.windows.net/vaults"


def make_response(status_code: int, content: bytes = b"", headers: Optional[Dict] = None):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    response._content = content
    response.headers = CaseInsensitiveDict(headers or {})
    return response


class FakeBlobSession:
    """Session double serving one container from memory.

    Writes honour If-Match / If-None-Match atomically, so racing writers
    behave like they do against the real service.
    """

    def __init__(self, base_url: str = CONTAINER_URL, page_size: Optional[int] = None):
        self.base_path = urlsplit(base_url).path.rstrip("/")
        self.page_size = page_size
        self.blobs: Dict[str, Tuple[bytes, str]] = {}
        self.requests: List[Dict] = []
        self.omit_etag = False
        self._counter = 0
        self._lock = threading.Lock()

    def _next_etag(self) -> str:
        self._counter += 1
        return f'"0x8DC{self._counter:08X}"'

    def put_blob(self, name: str, content: bytes) -> str:
        with self._lock:
            etag = self._next_etag()
            self.blobs[name] = (content, etag)
            return etag

    def request(self, method, url, headers=None, data=None, timeout=None):
        headers = CaseInsensitiveDict(headers or {})
        self.requests.append({"method": method, "url": url, "headers": headers, "data": data})
        parts = urlsplit(url)
        query = parse_qs(parts.query)
        name = unquote(parts.path[len(self.base_path):]).lstrip("/")

        if query.get("comp") == ["list"]:
            if name:
                return make_response(400, b"<Error><Code>InvalidQueryParameterValue</Code></Error>")
            return self._list(query)

        with self._lock:
            current = self.blobs.get(name)
            if method in ("GET", "HEAD"):
                if current is None:
                    return make_response(404)
                etag_headers = {} if self.omit_etag else {"ETag": current[1]}
                body = current[0] if method == "GET" else b""
                return make_response(200, body, etag_headers)

            if method == "PUT":
                if_match = headers.get("If-Match")
                if if_match is not None and (current is None or current[1] != if_match):
                    conflict_headers = {"ETag": current[1]} if current else {}
                    return make_response(412, b"", conflict_headers)
                if headers.get("If-None-Match") == "*" and current is not None:
                    return make_response(409, b"", {"ETag": current[1]})
                etag = self._next_etag()
                self.blobs[name] = (data or b"", etag)
                return make_response(201, b"", {} if self.omit_etag else {"ETag": etag})

            if method == "DELETE":
                if current is None:
                    return make_response(404)
                del self.blobs[name]
                return make_response(202)

        return make_response(405)

    def _list(self, query) -> requests.Response:
        with self._lock:
            names = list(self.blobs)
            items = [(n, self.blobs[n][1]) for n in names]
        prefix = query.get("prefix", [""])[0]
        items = [(n, e) for n, e in items if n.startswith(prefix)]
        marker = query.get("marker", [None])[0]
        if marker:
            items = items[[n for n, _ in items].index(marker):]
        next_marker = ""
        if self.page_size is not None and len(items) > self.page_size:
            next_marker = items[self.page_size][0]
            items = items[: self.page_size]
        blobs = "".join(
            f"<Blob><Name>{escape(n)}</Name><Properties><Etag>{escape(e)}</Etag>"
            f"</Properties></Blob>"
            for n, e in items
        )
        body = (
            '<?xml version="1.0" encoding="utf-8"?>'
            f'<EnumerationResults ContainerName="{CONTAINER_URL}">'
            f"<Blobs>{blobs}</Blobs><NextMarker>{escape(next_marker)}</NextMarker>"
            "</EnumerationResults>"
        )
        return make_response(200, body.encode("utf-8"))


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo configure_logging() so later tests see default propagation."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings():
    return StorageSettings(blob_container_url=CONTAINER_URL)


@pytest.fixture
def auth_provider():
    return StaticTokenAuthProvider("test-token")


@pytest.fixture
def blob_session():
    return FakeBlobSession()


@pytest.fixture
def adapter(settings, auth_provider, blob_session):
    transport = HttpTransport(
        token_source=lambda: auth_provider.access_token, session=blob_session
    )
    return StorageAdapter(settings, auth_provider, transport=transport)
