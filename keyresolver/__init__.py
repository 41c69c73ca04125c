"""Key source and packaging options resolution for the media packager."""

from keyresolver.config import PackagerSettings, get_settings
from keyresolver.core.logging import configure_logging
from keyresolver.core.keys.factory import resolve_decryption_source, resolve_encryption_source
from keyresolver.core.packaging_options import build_manifest_options, build_muxer_options
from keyresolver.core.request_signer import resolve_signer

__all__ = [
    "PackagerSettings",
    "build_manifest_options",
    "build_muxer_options",
    "configure_logging",
    "get_settings",
    "resolve_decryption_source",
    "resolve_encryption_source",
    "resolve_signer",
]
