"""Key source factory.

Selects and builds the key source named by configuration. Each direction has
a rule table ordered by priority; the first rule whose switch is enabled
builds the source and the rest are ignored (with a warning). No enabled
switch means no key source, which is not an error.
"""

from dataclasses import dataclass
from typing import Callable

from keyresolver.config import PackagerSettings
from keyresolver.core.logging import get_logger, log_operation
from keyresolver.core.request_signer import resolve_signer

from .base import (
    KeyFetchError,
    KeySource,
    KeySourceConfigurationError,
    KeySourceType,
    MalformedInputError,
    hex_to_bytes,
)
from .fixed import FixedKeySource
from .playready import PlayReadyKeySource
from .widevine import WidevineKeySource

logger = get_logger(__name__)


@dataclass(frozen=True)
class KeySourceRule:
    """One entry of a priority-ordered selection table."""
    source_type: KeySourceType
    switch: str
    build: Callable[[PackagerSettings], KeySource]

    def matches(self, settings: PackagerSettings) -> bool:
        return bool(getattr(settings, self.switch))


def _new_widevine_source(settings: PackagerSettings) -> WidevineKeySource:
    """Widevine source with the configured signer attached."""
    source = WidevineKeySource(
        settings.key_server_url,
        settings.include_common_pssh,
        timeout=settings.key_server_timeout,
    )
    if settings.signer:
        signer = resolve_signer(settings)
        if signer is None:
            logger.error("Signer is set but no signing key is configured", signer=settings.signer)
            raise KeySourceConfigurationError(
                f"signer '{settings.signer}' needs aes_signing_key or rsa_signing_key_path"
            )
        source.set_signer(signer)
    return source


def _build_widevine_encryption(settings: PackagerSettings) -> KeySource:
    source = _new_widevine_source(settings)

    try:
        content_id = hex_to_bytes(settings.content_id, "content_id")
    except MalformedInputError as e:
        logger.error("Invalid content_id hex string specified", error=str(e))
        raise

    try:
        source.fetch_keys(content_id, settings.policy)
    except KeyFetchError as e:
        logger.error(
            "Widevine encryption key source failed to fetch keys",
            key_server_url=settings.key_server_url,
            error=str(e),
        )
        raise
    return source


def _build_fixed_encryption(settings: PackagerSettings) -> KeySource:
    return FixedKeySource.create_from_hex_strings(
        settings.key_id, settings.key, settings.pssh, settings.iv
    )


def _build_playready_encryption(settings: PackagerSettings) -> KeySource:
    if settings.playready_key_id and settings.playready_key:
        return PlayReadyKeySource.create_from_key_and_key_id(
            settings.playready_key_id, settings.playready_key
        )

    if settings.playready_server_url and settings.program_identifier:
        if (
            settings.client_cert_file
            and settings.client_cert_private_key_file
            and settings.client_cert_private_key_password
        ):
            source = PlayReadyKeySource.with_client_certificate(
                settings.playready_server_url,
                settings.client_cert_file,
                settings.client_cert_private_key_file,
                settings.client_cert_private_key_password,
                timeout=settings.key_server_timeout,
            )
        else:
            source = PlayReadyKeySource(
                settings.playready_server_url,
                timeout=settings.key_server_timeout,
            )

        if settings.ca_file:
            source.set_ca_file(settings.ca_file)

        try:
            source.fetch_keys_with_program_identifier(settings.program_identifier)
        except KeyFetchError as e:
            logger.error(
                "PlayReady encryption key source failed to fetch keys",
                playready_server_url=settings.playready_server_url,
                program_identifier=settings.program_identifier,
                error=str(e),
            )
            raise
        return source

    logger.error(
        "Error creating PlayReady key source",
        reason="set playready_key_id and playready_key, "
        "or playready_server_url and program_identifier",
    )
    raise KeySourceConfigurationError(
        "PlayReady encryption needs either playready_key_id and playready_key, "
        "or playready_server_url and program_identifier"
    )


def _build_widevine_decryption(settings: PackagerSettings) -> KeySource:
    # Keys are requested by key id while demuxing, not here
    return _new_widevine_source(settings)


def _build_fixed_decryption(settings: PackagerSettings) -> KeySource:
    no_pssh = ""
    no_iv = ""
    return FixedKeySource.create_from_hex_strings(settings.key_id, settings.key, no_pssh, no_iv)


ENCRYPTION_RULES: tuple[KeySourceRule, ...] = (
    KeySourceRule(KeySourceType.WIDEVINE, "enable_widevine_encryption", _build_widevine_encryption),
    KeySourceRule(KeySourceType.FIXED, "enable_fixed_key_encryption", _build_fixed_encryption),
    KeySourceRule(KeySourceType.PLAYREADY, "enable_playready_encryption", _build_playready_encryption),
)

DECRYPTION_RULES: tuple[KeySourceRule, ...] = (
    KeySourceRule(KeySourceType.WIDEVINE, "enable_widevine_decryption", _build_widevine_decryption),
    KeySourceRule(KeySourceType.FIXED, "enable_fixed_key_decryption", _build_fixed_decryption),
)


def select_rule(
    rules: tuple[KeySourceRule, ...],
    settings: PackagerSettings,
) -> KeySourceRule | None:
    """Return the first rule whose switch is enabled.

    Logs a warning naming any further enabled switches, which are ignored.
    """
    enabled = [rule for rule in rules if rule.matches(settings)]
    if not enabled:
        return None

    selected = enabled[0]
    if len(enabled) > 1:
        logger.warning(
            f"Multiple key sources enabled; using {selected.source_type.value}",
            selected=selected.switch,
            ignored=[rule.switch for rule in enabled[1:]],
        )
    return selected


@log_operation("Encryption key source resolution")
def resolve_encryption_source(settings: PackagerSettings) -> KeySource | None:
    """Build the encryption key source selected by configuration.

    Priority: Widevine, fixed key, PlayReady. Keys are fetched once, after
    the source and its signer are fully built.

    Returns:
        The key source, or None when no encryption switch is enabled

    Raises:
        KeySourceError: If the selected source cannot be built or fetch keys
    """
    rule = select_rule(ENCRYPTION_RULES, settings)
    if rule is None:
        return None
    return rule.build(settings)


@log_operation("Decryption key source resolution")
def resolve_decryption_source(settings: PackagerSettings) -> KeySource | None:
    """Build the decryption key source selected by configuration.

    Priority: Widevine, fixed key. No keys are fetched here.

    Returns:
        The key source, or None when no decryption switch is enabled

    Raises:
        KeySourceError: If the signer or the fixed key source cannot be built
    """
    rule = select_rule(DECRYPTION_RULES, settings)
    if rule is None:
        return None
    return rule.build(settings)
