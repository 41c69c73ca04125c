"""Muxer and MPD options.

Both records are built once per run from configuration and never change
afterwards.
"""

from dataclasses import dataclass
from enum import Enum

from keyresolver.config import PackagerSettings
from keyresolver.core.logging import get_logger

logger = get_logger(__name__)


class DashProfile(str, Enum):
    """DASH profile of the generated MPD."""
    ON_DEMAND = "on-demand"
    LIVE = "live"


class MpdType(str, Enum):
    """MPD@type."""
    STATIC = "static"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class MuxerOptions:
    """Segmentation and fragmentation policy for the muxer."""
    segment_duration: float
    fragment_duration: float
    segment_sap_aligned: bool
    fragment_sap_aligned: bool
    num_subsegments_per_sidx: int
    webm_subsample_encryption: bool
    mp4_use_decoding_timestamp_in_timeline: bool
    temp_dir: str


@dataclass(frozen=True)
class MpdOptions:
    """Profile and timing policy for the MPD generator.

    Durations are in seconds.
    """
    dash_profile: DashProfile
    mpd_type: MpdType
    availability_time_offset: float
    minimum_update_period: float
    min_buffer_time: float
    time_shift_buffer_depth: float
    suggested_presentation_delay: float
    default_language: str


def build_muxer_options(settings: PackagerSettings) -> MuxerOptions:
    """Build muxer options from configuration."""
    if settings.mp4_use_decoding_timestamp_in_timeline:
        logger.warning(
            "mp4_use_decoding_timestamp_in_timeline is set. It is a temporary "
            "workaround for Chromium bug https://crbug.com/398130 and may be "
            "removed when the Chromium bug is fixed."
        )

    return MuxerOptions(
        segment_duration=settings.segment_duration,
        fragment_duration=settings.fragment_duration,
        segment_sap_aligned=settings.segment_sap_aligned,
        fragment_sap_aligned=settings.fragment_sap_aligned,
        num_subsegments_per_sidx=settings.num_subsegments_per_sidx,
        webm_subsample_encryption=settings.webm_subsample_encryption,
        mp4_use_decoding_timestamp_in_timeline=settings.mp4_use_decoding_timestamp_in_timeline,
        temp_dir=settings.temp_dir,
    )


def build_manifest_options(settings: PackagerSettings, on_demand: bool) -> MpdOptions:
    """Build MPD options from configuration.

    Args:
        settings: Packager settings
        on_demand: Generate an on-demand profile MPD; otherwise live

    On-demand MPDs are always static. Live MPDs are static only when
    generate_static_mpd is set.
    """
    is_static = on_demand or settings.generate_static_mpd
    return MpdOptions(
        dash_profile=DashProfile.ON_DEMAND if on_demand else DashProfile.LIVE,
        mpd_type=MpdType.STATIC if is_static else MpdType.DYNAMIC,
        availability_time_offset=settings.availability_time_offset,
        minimum_update_period=settings.minimum_update_period,
        min_buffer_time=settings.min_buffer_time,
        time_shift_buffer_depth=settings.time_shift_buffer_depth,
        suggested_presentation_delay=settings.suggested_presentation_delay,
        default_language=settings.default_language,
    )
