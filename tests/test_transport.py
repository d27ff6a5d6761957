from unittest.mock import Mock, call, patch

import pytest
import requests

from journal_sync.core.transport import WebDAVTransport, create_transport
from journal_sync.errors import (
    AuthenticationError,
    NotFoundError,
    QuotaExceededError,
    RemotePermissionError,
    ServerUnreachableError,
    TransportConnectionError,
    TransportError,
    TransportTimeoutError,
)

SESSION_REQUEST = "journal_sync.core.transport.requests.Session.request"


def _response(status: int, content: bytes = b"") -> Mock:
    response = Mock()
    response.status_code = status
    response.content = content
    return response


@pytest.fixture
def transport():
    return WebDAVTransport("https://dav.example.com/remote.php/dav/", "alice", "pw")


def test_url_joins_base_and_quoted_path(transport):
    """Paths are appended to the base URL with spaces quoted."""
    assert (
        transport._url("/journal_app/My Notes.json")
        == "https://dav.example.com/remote.php/dav/journal_app/My%20Notes.json"
    )


def test_session_is_configured():
    """Sessions carry basic auth and the TLS setting."""
    transport = create_transport("https://dav", "u", "p", insecure=True)
    session = transport._get_session()
    assert session.auth == ("u", "p")
    assert session.verify is False
    assert transport._get_session() is session


@patch(SESSION_REQUEST)
def test_read_returns_body(mock_request, transport):
    """GET returns the response body."""
    mock_request.return_value = _response(200, b"data")
    assert transport.read("/journal_app/manifest.json") == b"data"
    method, url = mock_request.call_args.args
    assert method == "GET"
    assert url.endswith("/journal_app/manifest.json")


@pytest.mark.parametrize(
    "status, error",
    [
        (401, AuthenticationError),
        (403, RemotePermissionError),
        (404, NotFoundError),
        (507, QuotaExceededError),
        (500, TransportError),
    ],
)
@patch(SESSION_REQUEST)
def test_status_mapping(mock_request, transport, status, error):
    """HTTP failures map to the matching error type."""
    mock_request.return_value = _response(status)
    with pytest.raises(error):
        transport.read("/x")


@patch(SESSION_REQUEST)
def test_timeout_and_connection_errors(mock_request, transport):
    """requests exceptions become transport errors."""
    mock_request.side_effect = requests.Timeout("slow")
    with pytest.raises(TransportTimeoutError):
        transport.read("/x")
    mock_request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TransportConnectionError):
        transport.read("/x")


@patch(SESSION_REQUEST)
def test_write_creates_parents_on_conflict(mock_request, transport):
    """A 409 on PUT triggers MKCOL for each parent and one retry."""
    mock_request.side_effect = [
        _response(409),
        _response(405),  # /journal_app exists
        _response(201),  # /journal_app/entries created
        _response(201),
    ]
    transport.write("/journal_app/entries/doc.json", b"{}")
    methods = [c.args[0] for c in mock_request.call_args_list]
    assert methods == ["PUT", "MKCOL", "MKCOL", "PUT"]


@patch(SESSION_REQUEST)
def test_mkdir_propagates_real_errors(mock_request, transport):
    """MKCOL errors other than already-exists are raised."""
    mock_request.return_value = _response(403)
    with pytest.raises(RemotePermissionError):
        transport.mkdir("/journal_app")


@patch(SESSION_REQUEST)
def test_remove_ignores_missing(mock_request, transport):
    """DELETE of a missing path succeeds."""
    mock_request.return_value = _response(404)
    transport.remove("/journal_app/connection_test.txt")
    assert mock_request.call_count == 1


@patch(SESSION_REQUEST)
def test_ping_sends_depth_zero_propfind(mock_request, transport):
    mock_request.return_value = _response(207)
    transport.ping()
    assert mock_request.call_args == call(
        "PROPFIND",
        "https://dav.example.com/remote.php/dav/",
        timeout=(10, 30.0),
        headers={"Depth": "0"},
    )


@patch(SESSION_REQUEST)
def test_ping_keeps_auth_errors(mock_request, transport):
    """Rejected credentials stay AuthenticationError."""
    mock_request.return_value = _response(401)
    with pytest.raises(AuthenticationError):
        transport.ping()


@patch(SESSION_REQUEST)
def test_ping_wraps_other_failures(mock_request, transport):
    """Anything else during ping means the server is unreachable."""
    mock_request.side_effect = requests.ConnectionError("no route")
    with pytest.raises(ServerUnreachableError):
        transport.ping()
