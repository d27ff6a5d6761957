"""Remote transport: the five operations the sync engine needs.

``Transport`` is the interface; ``WebDAVTransport`` implements it over HTTP
with ``requests``.  Each worker thread gets its own ``requests.Session`` so
calls made through ``run_sync_limited()`` never share connection state.

Status mapping:

* 401 -> ``AuthenticationError`` (fatal)
* 403 -> ``RemotePermissionError``
* 404 -> ``NotFoundError``
* 507 -> ``QuotaExceededError``
* other 4xx/5xx -> ``TransportError``
* timeouts / connection failures -> ``TransportTimeoutError`` /
  ``TransportConnectionError``
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol
from urllib.parse import quote

import requests

from ..errors import (
    AuthenticationError,
    NotFoundError,
    QuotaExceededError,
    RemotePermissionError,
    ServerUnreachableError,
    TransportConnectionError,
    TransportError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class Transport(Protocol):
    """Remote file operations.  Paths are absolute (``/journal_app/...``)."""

    def ping(self) -> None: ...

    def mkdir(self, path: str) -> None: ...

    def read(self, path: str) -> bytes: ...

    def write(self, path: str, data: bytes) -> None: ...

    def remove(self, path: str) -> None: ...


class WebDAVTransport:
    """WebDAV client for one server and account.

    Args:
        base_url: Server URL; remote paths are appended to it.
        username: Basic auth user.
        password: Basic auth password.
        timeout: Read timeout in seconds for every request.
        verify: Verify TLS certificates.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._timeout = timeout
        self._verify = verify
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self._username, self._password)
        session.verify = self._verify
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{quote('/' + path.lstrip('/'))}"

    def _request(
        self, method: str, path: str, **kwargs
    ) -> requests.Response:
        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            return self._get_session().request(
                method,
                url,
                timeout=(10, self._timeout),
                **kwargs,
            )
        except requests.Timeout as exc:
            raise TransportTimeoutError(
                f"{method} {path} timed out: {exc}", path=path
            ) from exc
        except requests.ConnectionError as exc:
            raise TransportConnectionError(
                f"{method} {path} failed to connect: {exc}", path=path
            ) from exc

    @staticmethod
    def _check(response: requests.Response, method: str, path: str) -> None:
        status = response.status_code
        if status < 400:
            return
        message = f"{method} {path} returned HTTP {status}"
        if status == 401:
            raise AuthenticationError(
                f"{message}: check username and password"
            )
        if status == 403:
            raise RemotePermissionError(message, path=path, status_code=status)
        if status == 404:
            raise NotFoundError(message, path=path, status_code=status)
        if status == 507:
            raise QuotaExceededError(message, path=path, status_code=status)
        raise TransportError(message, path=path, status_code=status)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def ping(self) -> None:
        """Confirm the server answers and accepts the credentials.

        Raises:
            AuthenticationError: Credentials were rejected.
            ServerUnreachableError: Anything else went wrong.
        """
        try:
            response = self._request("PROPFIND", "/", headers={"Depth": "0"})
            self._check(response, "PROPFIND", "/")
        except AuthenticationError:
            raise
        except TransportError as exc:
            raise ServerUnreachableError(
                f"WebDAV server {self.base_url} is unreachable: {exc}"
            ) from exc

    def mkdir(self, path: str) -> None:
        """Create the collection *path* and any missing parents.

        Existing collections are not an error.
        """
        current = ""
        for segment in [s for s in path.split("/") if s]:
            current = f"{current}/{segment}"
            response = self._request("MKCOL", current + "/")
            # 405 Method Not Allowed: collection already exists
            if response.status_code in (201, 301, 405):
                continue
            self._check(response, "MKCOL", current)

    def read(self, path: str) -> bytes:
        response = self._request("GET", path)
        self._check(response, "GET", path)
        return response.content

    def write(self, path: str, data: bytes) -> None:
        """PUT *data* at *path*, creating parent collections on 409."""
        response = self._request("PUT", path, data=data)
        if response.status_code == 409:
            parent = path.rsplit("/", 1)[0]
            self.mkdir(parent)
            response = self._request("PUT", path, data=data)
        self._check(response, "PUT", path)

    def remove(self, path: str) -> None:
        """DELETE *path*.  A missing path is not an error."""
        response = self._request("DELETE", path)
        if response.status_code == 404:
            return
        self._check(response, "DELETE", path)


def create_transport(
    server_url: str,
    username: str,
    password: str,
    timeout: float = DEFAULT_TIMEOUT,
    insecure: bool = False,
) -> WebDAVTransport:
    """Build a ``WebDAVTransport``, warning when TLS checks are off."""
    if insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )
    return WebDAVTransport(
        server_url, username, password, timeout=timeout, verify=not insecure
    )
