"""HTTP transport for the blob store REST API."""

from typing import Callable, Dict, Iterable, Optional

import requests

from .exceptions import TransportError


class HttpTransport:
    """Issues single HTTP requests and filters them by accepted status.

    The bearer token is injected from ``token_source`` on every request, so
    a token refreshed between calls is picked up without rebuilding the
    session.
    """

    def __init__(
        self,
        token_source: Optional[Callable[[], Optional[str]]] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize transport.

        Args:
            token_source: Callable returning the current access token or None
            timeout: Per-request timeout in seconds (None waits indefinitely)
            session: Optional pre-configured session (for testing)
        """
        self.token_source = token_source
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        data: Optional[bytes] = None,
        accepted_statuses: Iterable[int] = (200,),
    ) -> requests.Response:
        """Send one request.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Request headers
            data: Request body
            accepted_statuses: Statuses returned to the caller as responses

        Returns:
            The response, whose status is one of ``accepted_statuses``

        Raises:
            TransportError: On connection failure or any other status
        """
        send_headers = dict(headers or {})
        token = self.token_source() if self.token_source else None
        if token:
            send_headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.request(
                method, url, headers=send_headers, data=data, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error: {e}") from e

        if response.status_code not in tuple(accepted_statuses):
            raise TransportError(
                f"HTTP {response.status_code} for {method} {url}",
                status_code=response.status_code,
                response=response,
            )

        return response
