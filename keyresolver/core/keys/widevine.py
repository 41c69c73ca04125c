"""Widevine key source.

Fetches content keys from a Widevine key server over HTTPS.

Wire format:
    POST {"request": b64(request_json), "signature": b64, "signer": name}
    200  {"response": b64(response_json)}

request_json carries either a content_id (encryption) or Widevine pssh data
listing key ids (decryption), plus the policy and the requested tracks.
response_json has a status and one entry per track with key_id, key and
pssh data, all base64 encoded.
"""

import base64
import binascii
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from .base import (
    EncryptionKey,
    KeyFetchError,
    KeySource,
    KeySourceType,
    TrackType,
)
from .pssh import WIDEVINE_SYSTEM_ID, ProtectionSystemInfo, common_system_info

if TYPE_CHECKING:
    from keyresolver.core.request_signer import RequestSigner

logger = logging.getLogger(__name__)

LICENSE_STATUS_OK = "OK"
REQUESTED_TRACKS = (TrackType.SD, TrackType.HD, TrackType.UHD1, TrackType.UHD2, TrackType.AUDIO)

# WidevinePsshData.key_id is field 2, wire type 2
_PSSH_DATA_KEY_ID_TAG = b"\x12"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def widevine_pssh_data(key_ids: list[bytes]) -> bytes:
    """Encode WidevinePsshData listing key ids."""
    return b"".join(
        _PSSH_DATA_KEY_ID_TAG + bytes([len(key_id)]) + key_id for key_id in key_ids
    )


class WidevineKeySource(KeySource):
    """Key source backed by a Widevine key server."""

    source_type = KeySourceType.WIDEVINE

    def __init__(
        self,
        server_url: str,
        add_common_pssh: bool = False,
        *,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.server_url = server_url
        self.add_common_pssh = add_common_pssh
        self._timeout = timeout
        self._client = client
        self._signer: "RequestSigner | None" = None
        self._keys: dict[TrackType, EncryptionKey] = {}

    @property
    def signer(self) -> "RequestSigner | None":
        return self._signer

    def set_signer(self, signer: "RequestSigner") -> None:
        """Attach the signer used for every request of this source."""
        if self._signer is not None:
            raise ValueError("A signer is already attached to this key source")
        self._signer = signer

    def fetch_keys(self, content_id: bytes, policy: str) -> None:
        """Fetch the keys for a piece of content.

        Raises:
            KeyFetchError: If the server cannot be reached or does not return keys
        """
        request = {"content_id": _b64(content_id), "policy": policy}
        self._keys = self._fetch(request)
        logger.info(f"Fetched {len(self._keys)} Widevine track key(s)")

    def get_key(self, track_type: TrackType) -> EncryptionKey:
        if not self._keys:
            raise KeyFetchError("Widevine keys have not been fetched")
        if track_type not in self._keys:
            raise KeyFetchError(f"Cannot find key for track type {track_type.value}")
        return self._keys[track_type]

    def get_key_by_id(self, key_id: bytes) -> EncryptionKey:
        for encryption_key in self._keys.values():
            if encryption_key.key_id == key_id:
                return encryption_key

        request = {"pssh_data": _b64(widevine_pssh_data([key_id])), "policy": ""}
        fetched = self._fetch(request)
        self._keys.update(fetched)
        for encryption_key in fetched.values():
            if encryption_key.key_id == key_id:
                return encryption_key
        raise KeyFetchError(f"Key server did not return key_id={key_id.hex()}")

    def _fetch(self, request: dict[str, Any]) -> dict[TrackType, EncryptionKey]:
        request["tracks"] = [{"type": t.value} for t in REQUESTED_TRACKS]
        request["drm_types"] = ["WIDEVINE"]
        request_json = json.dumps(request).encode()

        message = {"request": _b64(request_json)}
        if self._signer is not None:
            message["signature"] = _b64(self._signer.generate_signature(request_json))
            message["signer"] = self._signer.signer_name

        try:
            response = self._post(message)
        except httpx.HTTPError as e:
            raise KeyFetchError(f"Widevine key server request failed: {e}")

        if response.status_code != 200:
            raise KeyFetchError(
                f"Widevine key server returned HTTP {response.status_code}: {response.text}"
            )

        try:
            response_json = json.loads(base64.b64decode(response.json()["response"]))
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise KeyFetchError(f"Malformed Widevine key server response: {e}")

        status = response_json.get("status")
        if status != LICENSE_STATUS_OK:
            raise KeyFetchError(f"Widevine key server returned status {status}")

        return self._extract_keys(response_json.get("tracks", []))

    def _post(self, message: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(self.server_url, json=message)
        with httpx.Client(timeout=self._timeout) as client:
            return client.post(self.server_url, json=message)

    def _extract_keys(self, tracks: list[dict[str, Any]]) -> dict[TrackType, EncryptionKey]:
        keys: dict[TrackType, EncryptionKey] = {}
        for track in tracks:
            try:
                track_type = TrackType(track["type"])
                encryption_key = EncryptionKey(
                    key_id=base64.b64decode(track["key_id"]),
                    key=base64.b64decode(track["key"]),
                )
                for pssh in track.get("pssh", []):
                    if pssh.get("drm_type") != "WIDEVINE":
                        continue
                    encryption_key.key_system_info.append(
                        ProtectionSystemInfo(
                            system_id=WIDEVINE_SYSTEM_ID,
                            data=base64.b64decode(pssh["data"]),
                        )
                    )
            except (KeyError, ValueError, TypeError, binascii.Error) as e:
                raise KeyFetchError(f"Malformed track in Widevine key server response: {e}")
            keys[track_type] = encryption_key

        if not keys:
            raise KeyFetchError("Widevine key server response contains no tracks")

        if self.add_common_pssh:
            key_ids = [k.key_id for k in keys.values()]
            for encryption_key in keys.values():
                encryption_key.key_system_info.append(common_system_info(key_ids))

        return keys
