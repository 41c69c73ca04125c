"""Base key source interface.

All key source backends implement this interface so the muxer can obtain
content keys the same way whichever DRM system supplied them.
"""

import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .pssh import ProtectionSystemInfo


class KeySourceType(str, Enum):
    """Supported key source backends."""
    WIDEVINE = "widevine"     # Widevine license server
    FIXED = "fixed"           # Key material supplied in configuration
    PLAYREADY = "playready"   # PlayReady packaging server or direct key


class TrackType(str, Enum):
    """Track categories a key server hands out separate keys for."""
    SD = "SD"
    HD = "HD"
    UHD1 = "UHD1"
    UHD2 = "UHD2"
    AUDIO = "AUDIO"
    UNKNOWN = "UNKNOWN"


@dataclass
class EncryptionKey:
    """A content key plus the protection system boxes that announce it."""
    key_id: bytes
    key: bytes
    iv: bytes = b""
    key_system_info: list["ProtectionSystemInfo"] = field(default_factory=list)


class KeySource(ABC):
    """Abstract base class for key sources."""

    source_type: KeySourceType

    @abstractmethod
    def get_key(self, track_type: TrackType) -> EncryptionKey:
        """Get the content key for a track type.

        Raises:
            KeyFetchError: If no key is available for the track type
        """
        pass

    @abstractmethod
    def get_key_by_id(self, key_id: bytes) -> EncryptionKey:
        """Get the content key with the given key id (used when decrypting).

        Raises:
            KeyFetchError: If the key cannot be found or fetched
        """
        pass


class KeySourceError(Exception):
    """Base exception for key source resolution."""
    pass


class KeySourceConfigurationError(KeySourceError):
    """Required options missing or combined in an unsupported way."""
    pass


class MalformedInputError(KeySourceError):
    """An option or server field could not be decoded."""
    pass


class KeyMaterialReadError(KeySourceError):
    """A key material file could not be read."""
    pass


class BackendConstructionError(KeySourceError):
    """A backend rejected its construction parameters."""
    pass


class KeyFetchError(KeySourceError):
    """Key acquisition from a key server did not succeed."""
    pass


def hex_to_bytes(text: str, field_name: str) -> bytes:
    """Decode a hex option value.

    Args:
        text: Hex text; empty text decodes to b""
        field_name: Option name used in the error message

    Raises:
        MalformedInputError: If text is not an even-length hex string
    """
    try:
        return binascii.unhexlify(text)
    except (binascii.Error, ValueError) as e:
        raise MalformedInputError(f"Invalid {field_name} hex string specified: {e}")
