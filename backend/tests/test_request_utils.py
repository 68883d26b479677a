"""Tests for request utility functions."""

from unittest.mock import MagicMock

from authcore.core.request_utils import (
    DeviceContext,
    _is_valid_ip,
    get_bearer_token,
    get_client_ip,
    get_device_context,
)


def _create_mock_request(headers: dict[str, str] | None = None, client_host: str | None = None):
    """Create a mock FastAPI request."""
    request = MagicMock()
    headers = headers or {}
    request.headers.get = lambda key, default=None: headers.get(key, default)

    if client_host:
        request.client = MagicMock()
        request.client.host = client_host
    else:
        request.client = None

    return request


class TestIsValidIP:
    """Tests for _is_valid_ip function."""

    def test_valid_addresses(self):
        assert _is_valid_ip("192.168.1.1") is True
        assert _is_valid_ip("::1") is True
        assert _is_valid_ip("2001:db8::1") is True

    def test_invalid_addresses(self):
        assert _is_valid_ip("") is False
        assert _is_valid_ip("not-an-ip") is False
        assert _is_valid_ip("256.1.1.1") is False
        assert _is_valid_ip("192.168.1.1:8080") is False


class TestGetClientIP:
    """Tests for get_client_ip function."""

    def test_x_real_ip_from_localhost(self):
        """X-Real-IP is used when the request comes from a local proxy."""
        request = _create_mock_request({"X-Real-IP": "5.6.7.8"}, client_host="127.0.0.1")
        assert get_client_ip(request) == "5.6.7.8"

    def test_x_real_ip_not_trusted_from_external(self):
        """X-Real-IP from a remote peer is ignored."""
        request = _create_mock_request({"X-Real-IP": "5.6.7.8"}, client_host="9.10.11.12")
        assert get_client_ip(request) == "9.10.11.12"

    def test_x_forwarded_for_ignored(self):
        request = _create_mock_request(
            {"X-Forwarded-For": "1.2.3.4, 5.6.7.8"}, client_host="9.10.11.12"
        )
        assert get_client_ip(request) == "9.10.11.12"

    def test_invalid_x_real_ip_skipped(self):
        request = _create_mock_request({"X-Real-IP": "invalid"}, client_host="127.0.0.1")
        assert get_client_ip(request) == "127.0.0.1"

    def test_no_ip_available(self):
        assert get_client_ip(_create_mock_request()) is None


class TestGetBearerToken:
    """Tests for get_bearer_token function."""

    def test_extracts_token(self):
        request = _create_mock_request({"Authorization": "Bearer abc.def.ghi"})
        assert get_bearer_token(request) == "abc.def.ghi"

    def test_missing_header(self):
        assert get_bearer_token(_create_mock_request()) is None

    def test_other_scheme_rejected(self):
        request = _create_mock_request({"Authorization": "Basic dXNlcjpwYXNz"})
        assert get_bearer_token(request) is None

    def test_empty_and_null_tokens_rejected(self):
        assert get_bearer_token(_create_mock_request({"Authorization": "Bearer "})) is None
        assert get_bearer_token(_create_mock_request({"Authorization": "Bearer null"})) is None


class TestGetDeviceContext:
    """Tests for get_device_context function."""

    def test_reads_device_headers(self):
        request = _create_mock_request(
            {
                "X-Device-Id": "  device-1  ",
                "User-Agent": "okhttp/4.12",
                "X-Device-Type": "mobile",
                "X-Platform": "android",
                "X-Browser": "webview",
                "X-Country": "ID",
                "X-City": "Bandung",
                "X-Latitude": "-6.9175",
                "X-Longitude": "107.6191",
            },
            client_host="10.0.0.5",
        )

        device = get_device_context(request)

        assert device == DeviceContext(
            device_id="device-1",
            ip="10.0.0.5",
            user_agent="okhttp/4.12",
            device_type="mobile",
            platform="android",
            browser="webview",
            country="ID",
            city="Bandung",
            latitude=-6.9175,
            longitude=107.6191,
        )

    def test_missing_headers_are_none(self):
        device = get_device_context(_create_mock_request(client_host="10.0.0.5"))
        assert device.device_id is None
        assert device.latitude is None
        assert device.ip == "10.0.0.5"

    def test_blank_device_id_is_none(self):
        device = get_device_context(_create_mock_request({"X-Device-Id": "   "}))
        assert device.device_id is None

    def test_unparseable_coordinates_dropped(self):
        device = get_device_context(
            _create_mock_request({"X-Latitude": "north", "X-Longitude": "1e400x"})
        )
        assert device.latitude is None
        assert device.longitude is None
