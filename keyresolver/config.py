"""Packager configuration."""

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PackagerSettings(BaseSettings):
    """Packager settings loaded from environment variables.

    One instance is built per run and passed explicitly to every resolver.
    The model is frozen so resolution can never mutate it.
    """

    # Request signing
    signer: str = ""
    aes_signing_key: str = ""  # hex
    aes_signing_iv: str = ""  # hex
    rsa_signing_key_path: str = ""

    # Widevine key server
    enable_widevine_encryption: bool = False
    enable_widevine_decryption: bool = False
    key_server_url: str = ""
    include_common_pssh: bool = False
    content_id: str = ""  # hex
    policy: str = ""

    # Fixed key (all hex)
    enable_fixed_key_encryption: bool = False
    enable_fixed_key_decryption: bool = False
    key_id: str = ""
    key: str = ""
    pssh: str = ""
    iv: str = ""

    # PlayReady
    enable_playready_encryption: bool = False
    playready_key_id: str = ""  # hex
    playready_key: str = ""  # hex
    playready_server_url: str = ""
    program_identifier: str = ""
    client_cert_file: str = ""
    client_cert_private_key_file: str = ""
    client_cert_private_key_password: str = ""
    ca_file: str = ""

    # Muxer
    segment_duration: float = Field(default=10.0, ge=0)  # seconds
    fragment_duration: float = Field(default=10.0, ge=0)  # seconds
    segment_sap_aligned: bool = True
    fragment_sap_aligned: bool = True
    num_subsegments_per_sidx: int = 1
    webm_subsample_encryption: bool = True
    # Workaround for https://crbug.com/398130
    mp4_use_decoding_timestamp_in_timeline: bool = False
    temp_dir: str = ""

    # MPD
    generate_static_mpd: bool = False
    availability_time_offset: float = Field(default=0.0, ge=0)
    minimum_update_period: float = Field(default=5.0, ge=0)
    min_buffer_time: float = Field(default=2.0, ge=0)
    time_shift_buffer_depth: float = Field(default=1800.0, ge=0)
    suggested_presentation_delay: float = Field(default=0.0, ge=0)
    default_language: str = ""

    # Network key sources
    key_server_timeout: float = Field(default=30.0, gt=0)  # seconds

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_prefix="PACKAGER_",
        env_file=".env",
        case_sensitive=False,
        frozen=True,
    )

    @model_validator(mode="after")
    def _check_log_level(self) -> "PackagerSettings":
        """Reject log levels the logging module does not define."""
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log_level: {self.log_level}")
        return self


@lru_cache
def get_settings() -> PackagerSettings:
    """Get cached settings instance."""
    return PackagerSettings()
