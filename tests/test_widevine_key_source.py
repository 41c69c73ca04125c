"""Tests for the Widevine key source."""

import base64
import json
from unittest.mock import MagicMock

import httpx
import pytest

from keyresolver.core.keys.base import KeyFetchError, KeySourceType, TrackType
from keyresolver.core.keys.pssh import COMMON_SYSTEM_ID, WIDEVINE_SYSTEM_ID
from keyresolver.core.keys.widevine import WidevineKeySource, widevine_pssh_data

SERVER_URL = "https://license.example.com/cenc/getcontentkey/widevine_test"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _track(track_type: str, key_id: bytes, key: bytes) -> dict:
    return {
        "type": track_type,
        "key_id": _b64(key_id),
        "key": _b64(key),
        "pssh": [{"drm_type": "WIDEVINE", "data": _b64(b"pssh-" + key_id[:1])}],
    }


def _license_response(status: str = "OK", tracks: list | None = None) -> dict:
    if tracks is None:
        tracks = [
            _track("SD", b"\x01" * 16, b"\xa1" * 16),
            _track("HD", b"\x02" * 16, b"\xa2" * 16),
            _track("AUDIO", b"\x03" * 16, b"\xa3" * 16),
        ]
    inner = json.dumps({"status": status, "tracks": tracks}).encode()
    return {"response": _b64(inner)}


class FakeKeyServer:
    """Records requests and answers with a canned license response."""

    def __init__(self, body=None, status_code: int = 200):
        self.body = _license_response() if body is None else body
        self.status_code = status_code
        self.messages: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.messages.append(json.loads(request.content))
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_request(self) -> dict:
        return json.loads(base64.b64decode(self.messages[-1]["request"]))


def _source(server: FakeKeyServer, add_common_pssh: bool = False) -> WidevineKeySource:
    client = httpx.Client(transport=httpx.MockTransport(server))
    return WidevineKeySource(SERVER_URL, add_common_pssh, client=client)


class TestFetchKeys:
    """Tests for fetching keys by content id."""

    def test_fetch_keys(self):
        server = FakeKeyServer()
        source = _source(server)

        source.fetch_keys(b"content-1", "gold")

        assert source.source_type == KeySourceType.WIDEVINE
        hd = source.get_key(TrackType.HD)
        assert hd.key_id == b"\x02" * 16
        assert hd.key == b"\xa2" * 16
        assert hd.key_system_info[0].system_id == WIDEVINE_SYSTEM_ID
        assert hd.key_system_info[0].data == b"pssh-\x02"

    def test_request_format(self):
        server = FakeKeyServer()

        _source(server).fetch_keys(b"content-1", "gold")

        request = server.last_request
        assert base64.b64decode(request["content_id"]) == b"content-1"
        assert request["policy"] == "gold"
        assert request["drm_types"] == ["WIDEVINE"]
        assert {t["type"] for t in request["tracks"]} == {"SD", "HD", "UHD1", "UHD2", "AUDIO"}
        assert "signature" not in server.messages[-1]

    def test_signed_request(self):
        server = FakeKeyServer()
        signer = MagicMock()
        signer.signer_name = "widevine_test"
        signer.generate_signature.return_value = b"sig"
        source = _source(server)
        source.set_signer(signer)

        source.fetch_keys(b"content-1", "")

        message = server.messages[-1]
        assert message["signer"] == "widevine_test"
        assert base64.b64decode(message["signature"]) == b"sig"
        signer.generate_signature.assert_called_once_with(base64.b64decode(message["request"]))

    def test_signer_attached_once(self):
        source = _source(FakeKeyServer())
        source.set_signer(MagicMock())

        with pytest.raises(ValueError):
            source.set_signer(MagicMock())

    def test_common_pssh_added(self):
        source = _source(FakeKeyServer(), add_common_pssh=True)

        source.fetch_keys(b"content-1", "")

        common = source.get_key(TrackType.SD).key_system_info[-1]
        assert common.system_id == COMMON_SYSTEM_ID
        assert common.key_ids == [b"\x01" * 16, b"\x02" * 16, b"\x03" * 16]

    def test_missing_track_type(self):
        source = _source(FakeKeyServer())
        source.fetch_keys(b"content-1", "")

        with pytest.raises(KeyFetchError, match="UHD1"):
            source.get_key(TrackType.UHD1)

    def test_get_key_before_fetch(self):
        with pytest.raises(KeyFetchError, match="not been fetched"):
            _source(FakeKeyServer()).get_key(TrackType.SD)


class TestFetchFailures:
    """Tests for key server failures."""

    def test_license_status_not_ok(self):
        source = _source(FakeKeyServer(body=_license_response(status="ACCESS_DENIED")))

        with pytest.raises(KeyFetchError, match="ACCESS_DENIED"):
            source.fetch_keys(b"content-1", "")

    def test_http_error_status(self):
        source = _source(FakeKeyServer(body={"error": "boom"}, status_code=500))

        with pytest.raises(KeyFetchError, match="HTTP 500"):
            source.fetch_keys(b"content-1", "")

    def test_malformed_response(self):
        source = _source(FakeKeyServer(body={"unexpected": True}))

        with pytest.raises(KeyFetchError, match="Malformed"):
            source.fetch_keys(b"content-1", "")

    def test_no_tracks(self):
        source = _source(FakeKeyServer(body=_license_response(tracks=[])))

        with pytest.raises(KeyFetchError, match="no tracks"):
            source.fetch_keys(b"content-1", "")

    def test_transport_error(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(unreachable))
        source = WidevineKeySource(SERVER_URL, client=client)

        with pytest.raises(KeyFetchError, match="connection refused"):
            source.fetch_keys(b"content-1", "")


class TestGetKeyById:
    """Tests for decryption key lookup."""

    def test_fetches_by_pssh_data(self):
        key_id = b"\x02" * 16
        server = FakeKeyServer()
        source = _source(server)

        key = source.get_key_by_id(key_id)

        assert key.key == b"\xa2" * 16
        request = server.last_request
        assert base64.b64decode(request["pssh_data"]) == widevine_pssh_data([key_id])
        assert "content_id" not in request

    def test_cached_after_first_fetch(self):
        server = FakeKeyServer()
        source = _source(server)

        source.get_key_by_id(b"\x01" * 16)
        source.get_key_by_id(b"\x03" * 16)

        assert len(server.messages) == 1

    def test_key_id_not_returned(self):
        source = _source(FakeKeyServer())

        with pytest.raises(KeyFetchError, match="did not return"):
            source.get_key_by_id(b"\x09" * 16)


def test_widevine_pssh_data_encoding():
    assert widevine_pssh_data([b"\x05" * 16]) == b"\x12\x10" + b"\x05" * 16
