"""Content key sources.

Supported backends:
- Widevine: keys fetched from a Widevine key server, optionally signed
- Fixed: key id, key, pssh and IV supplied in configuration
- PlayReady: configured key, or keys fetched from a packaging server

Backend selection lives in keyresolver.core.keys.factory.
"""

from .base import (
    BackendConstructionError,
    EncryptionKey,
    KeyFetchError,
    KeyMaterialReadError,
    KeySource,
    KeySourceConfigurationError,
    KeySourceError,
    KeySourceType,
    MalformedInputError,
    TrackType,
)
from .fixed import FixedKeySource
from .playready import PlayReadyKeySource
from .pssh import ProtectionSystemInfo
from .widevine import WidevineKeySource

__all__ = [
    "BackendConstructionError",
    "EncryptionKey",
    "FixedKeySource",
    "KeyFetchError",
    "KeyMaterialReadError",
    "KeySource",
    "KeySourceConfigurationError",
    "KeySourceError",
    "KeySourceType",
    "MalformedInputError",
    "PlayReadyKeySource",
    "ProtectionSystemInfo",
    "TrackType",
    "WidevineKeySource",
]
