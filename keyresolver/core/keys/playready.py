"""PlayReady key source.

Two ways to obtain the content key:
- Direct: key id and key are configured; the PlayReady header is generated
  locally.
- Packaging server: a SOAP AcquirePackagingData request keyed by a program
  identifier, optionally over mutual TLS with a client certificate.
"""

import base64
import binascii
import logging
import ssl
import struct
import uuid
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import httpx
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .base import (
    EncryptionKey,
    KeyFetchError,
    KeySource,
    KeySourceType,
    MalformedInputError,
    TrackType,
    hex_to_bytes,
)
from .pssh import PLAYREADY_SYSTEM_ID, ProtectionSystemInfo

logger = logging.getLogger(__name__)

KEY_SIZE = 16
RIGHTS_MANAGEMENT_HEADER_RECORD = 1

SOAP_ACTION = "http://tempuri.org/IPackagingKeyManagementService/AcquirePackagingData"

ACQUIRE_PACKAGING_DATA_REQUEST = (
    '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
    'xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
    "<soap:Body>"
    '<AcquirePackagingData xmlns="http://tempuri.org/">'
    '<challenge xmlns="http://schemas.microsoft.com/DRM/2007/03/protocols">'
    "<ProtectionSystems>"
    "<ProtectionSystemId>9A04F079-9840-4286-AB92-E65BE0885F95</ProtectionSystemId>"
    "</ProtectionSystems>"
    "<StreamProtectionRequests>"
    "<StreamInformation>"
    "<ProgramIdentifier>{program_identifier}</ProgramIdentifier>"
    "<OffsetFromProgramStart>P0DT0H0M0S</OffsetFromProgramStart>"
    "</StreamInformation>"
    "</StreamProtectionRequests>"
    "</challenge>"
    "</AcquirePackagingData>"
    "</soap:Body>"
    "</soap:Envelope>"
)

WRM_HEADER = (
    '<WRMHEADER xmlns="http://schemas.microsoft.com/DRM/2007/03/PlayReadyHeader" '
    'version="4.0.0.0">'
    "<DATA>"
    "<PROTECTINFO><KEYLEN>16</KEYLEN><ALGID>AESCTR</ALGID></PROTECTINFO>"
    "<KID>{kid}</KID>"
    "<CHECKSUM>{checksum}</CHECKSUM>"
    "</DATA>"
    "</WRMHEADER>"
)


def playready_header_object(key_id: bytes, key: bytes) -> bytes:
    """Build a PlayReady Object holding a v4.0.0.0 WRM header for one key."""
    kid = uuid.UUID(bytes=key_id).bytes_le
    encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
    checksum = (encryptor.update(kid) + encryptor.finalize())[:8]

    header = WRM_HEADER.format(
        kid=base64.b64encode(kid).decode("ascii"),
        checksum=base64.b64encode(checksum).decode("ascii"),
    ).encode("utf-16-le")

    record = struct.pack("<HH", RIGHTS_MANAGEMENT_HEADER_RECORD, len(header)) + header
    return struct.pack("<IH", 4 + 2 + len(record), 1) + record


def _playready_encryption_key(key_id: bytes, key: bytes) -> EncryptionKey:
    return EncryptionKey(
        key_id=key_id,
        key=key,
        key_system_info=[
            ProtectionSystemInfo(
                system_id=PLAYREADY_SYSTEM_ID,
                data=playready_header_object(key_id, key),
            )
        ],
    )


class PlayReadyKeySource(KeySource):
    """Key source for PlayReady protected content."""

    source_type = KeySourceType.PLAYREADY

    def __init__(
        self,
        server_url: str = "",
        *,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.server_url = server_url
        self.client_cert_file = ""
        self.client_cert_private_key_file = ""
        self.client_cert_private_key_password = ""
        self.ca_file = ""
        self._timeout = timeout
        self._client = client
        self._encryption_key: EncryptionKey | None = None

    @classmethod
    def with_client_certificate(
        cls,
        server_url: str,
        client_cert_file: str,
        client_cert_private_key_file: str,
        client_cert_private_key_password: str,
        *,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> "PlayReadyKeySource":
        """Create a packaging server source that authenticates with mutual TLS."""
        source = cls(server_url, timeout=timeout, client=client)
        source.client_cert_file = client_cert_file
        source.client_cert_private_key_file = client_cert_private_key_file
        source.client_cert_private_key_password = client_cert_private_key_password
        return source

    @classmethod
    def create_from_key_and_key_id(cls, key_id_hex: str, key_hex: str) -> "PlayReadyKeySource":
        """Create a source from a configured key; no server is contacted.

        Raises:
            MalformedInputError: If key id or key is not 16 bytes of hex
        """
        key_id = hex_to_bytes(key_id_hex, "playready_key_id")
        key = hex_to_bytes(key_hex, "playready_key")
        if len(key_id) != KEY_SIZE or len(key) != KEY_SIZE:
            raise MalformedInputError(
                f"PlayReady key id and key must be {KEY_SIZE} bytes each"
            )

        source = cls()
        source._encryption_key = _playready_encryption_key(key_id, key)
        return source

    @property
    def uses_client_certificate(self) -> bool:
        return bool(self.client_cert_file)

    def set_ca_file(self, ca_file: str) -> None:
        """Verify the packaging server against this CA bundle."""
        self.ca_file = ca_file

    def fetch_keys_with_program_identifier(self, program_identifier: str) -> None:
        """Fetch the content key for a program from the packaging server.

        Raises:
            KeyFetchError: If the request fails or the response carries no key
        """
        body = ACQUIRE_PACKAGING_DATA_REQUEST.format(
            program_identifier=escape(program_identifier)
        )
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": SOAP_ACTION,
        }

        try:
            response = self._post(body.encode("utf-8"), headers)
        except (httpx.HTTPError, ssl.SSLError, OSError) as e:
            raise KeyFetchError(f"PlayReady packaging server request failed: {e}")

        if response.status_code != 200:
            raise KeyFetchError(
                f"PlayReady packaging server returned HTTP {response.status_code}: "
                f"{response.text}"
            )

        key_id, key = self._parse_response(response.content)
        self._encryption_key = _playready_encryption_key(key_id, key)
        logger.info(f"Fetched PlayReady key for program {program_identifier}")

    def get_key(self, track_type: TrackType) -> EncryptionKey:
        if self._encryption_key is None:
            raise KeyFetchError("PlayReady key has not been fetched")
        return self._encryption_key

    def get_key_by_id(self, key_id: bytes) -> EncryptionKey:
        if self._encryption_key is None or self._encryption_key.key_id != key_id:
            raise KeyFetchError(f"PlayReady key for key_id={key_id.hex()} is not available")
        return self._encryption_key

    def _ssl_context(self) -> ssl.SSLContext | None:
        if not self.ca_file and not self.uses_client_certificate:
            return None
        context = ssl.create_default_context(cafile=self.ca_file or None)
        if self.uses_client_certificate:
            context.load_cert_chain(
                self.client_cert_file,
                keyfile=self.client_cert_private_key_file,
                password=self.client_cert_private_key_password,
            )
        return context

    def _post(self, body: bytes, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(self.server_url, content=body, headers=headers)

        context = self._ssl_context()
        verify = context if context is not None else True
        with httpx.Client(timeout=self._timeout, verify=verify) as client:
            return client.post(self.server_url, content=body, headers=headers)

    @staticmethod
    def _parse_response(content: bytes) -> tuple[bytes, bytes]:
        try:
            root = ElementTree.fromstring(content)
        except ElementTree.ParseError as e:
            raise KeyFetchError(f"Malformed PlayReady packaging server response: {e}")

        values = {}
        for element in root.iter():
            name = element.tag.rsplit("}", 1)[-1]
            if name in ("KeyId", "Key") and name not in values and element.text:
                values[name] = element.text.strip()

        if "KeyId" not in values or "Key" not in values:
            raise KeyFetchError("PlayReady packaging server response has no KeyId/Key")

        try:
            key_id = _decode_key_id(values["KeyId"])
            key = base64.b64decode(values["Key"], validate=True)
        except (ValueError, binascii.Error) as e:
            raise KeyFetchError(f"Malformed key in PlayReady packaging server response: {e}")

        if len(key_id) != KEY_SIZE or len(key) != KEY_SIZE:
            raise KeyFetchError("PlayReady packaging server returned a key of the wrong size")
        return key_id, key


def _decode_key_id(text: str) -> bytes:
    """Key ids come back either as a GUID string or base64."""
    try:
        return uuid.UUID(text).bytes
    except ValueError:
        return base64.b64decode(text, validate=True)
