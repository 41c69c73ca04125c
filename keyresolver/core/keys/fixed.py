"""Fixed key source.

Key material comes straight from configuration; there is no key server and
no network traffic. Every track is encrypted with the same key.
"""

import logging

from .base import (
    EncryptionKey,
    KeyFetchError,
    KeySource,
    KeySourceType,
    MalformedInputError,
    TrackType,
    hex_to_bytes,
)
from .pssh import ProtectionSystemInfo, common_system_info

logger = logging.getLogger(__name__)

KEY_SIZE = 16
VALID_IV_SIZES = (8, 16)


class FixedKeySource(KeySource):
    """Key source holding a single configured key."""

    source_type = KeySourceType.FIXED

    def __init__(self, encryption_key: EncryptionKey):
        self._encryption_key = encryption_key

    @classmethod
    def create_from_hex_strings(
        cls,
        key_id_hex: str,
        key_hex: str,
        pssh_boxes_hex: str,
        iv_hex: str,
    ) -> "FixedKeySource":
        """Create a fixed key source from hex encoded options.

        Args:
            key_id_hex: 16-byte key id
            key_hex: 16-byte content key
            pssh_boxes_hex: Concatenated pssh boxes; when empty a Common-system
                box carrying the key id is generated
            iv_hex: 8 or 16 byte IV; empty lets the muxer pick one

        Raises:
            MalformedInputError: If any field cannot be decoded or has the wrong size
        """
        key_id = hex_to_bytes(key_id_hex, "key_id")
        if len(key_id) != KEY_SIZE:
            raise MalformedInputError(
                f"key_id must be {KEY_SIZE} bytes, got {len(key_id)}"
            )

        key = hex_to_bytes(key_hex, "key")
        if len(key) != KEY_SIZE:
            raise MalformedInputError(f"key must be {KEY_SIZE} bytes, got {len(key)}")

        pssh_boxes = hex_to_bytes(pssh_boxes_hex, "pssh")
        if pssh_boxes:
            key_system_info = ProtectionSystemInfo.parse_boxes(pssh_boxes)
        else:
            key_system_info = [common_system_info([key_id])]

        iv = hex_to_bytes(iv_hex, "iv")
        if iv and len(iv) not in VALID_IV_SIZES:
            raise MalformedInputError(f"iv must be 8 or 16 bytes, got {len(iv)}")

        logger.debug(f"Fixed key source created with {len(key_system_info)} pssh box(es)")
        return cls(
            EncryptionKey(
                key_id=key_id,
                key=key,
                iv=iv,
                key_system_info=key_system_info,
            )
        )

    def get_key(self, track_type: TrackType) -> EncryptionKey:
        return self._encryption_key

    def get_key_by_id(self, key_id: bytes) -> EncryptionKey:
        if key_id != self._encryption_key.key_id:
            raise KeyFetchError(
                f"Key for key_id={key_id.hex()} was not found in the fixed key source"
            )
        return self._encryption_key
