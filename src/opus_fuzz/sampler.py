"""Configuration and setting sampler — candidate tables plus legality rules."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import asdict, dataclass

from opus_fuzz.codecs.base import BITRATE_MAX
from opus_fuzz.rng import FastRand

logger = logging.getLogger(__name__)

# Some values are duplicated to raise their probability of being drawn.
SAMPLING_RATES = (8000, 12000, 16000, 24000, 48000)
CHANNELS = (1, 2)
BITRATES = (6000, 12000, 16000, 24000, 32000, 48000, 64000, 96000, 510000, BITRATE_MAX)
USE_VBR = (0, 1, 1)
VBR_CONSTRAINTS = (0, 1, 1)
COMPLEXITIES = tuple(range(11))
PACKET_LOSS_PERC = (0, 1, 2, 5)
LSB_DEPTHS = (8, 24)
FRAME_SIZES_MS_X2 = (5, 10, 20, 40)  # half-milliseconds, so 2.5 ms stays integral
USE_FLOAT_ENCODE = (0, 1)
USE_FLOAT_DECODE = (0, 1)
USE_CUSTOM_ENCODE = (0, 1)
USE_CUSTOM_DECODE = (0, 1)

# Standard and custom profiles can only be mixed at this rate.
MIXED_PROFILE_RATE = 48000

# Custom mode has no 2.5 ms frames at these rates.
SHORT_FRAME_RATES = frozenset({8000, 12000})
MIN_CUSTOM_FRAME_MS_X2 = 10


@dataclass(frozen=True)
class FuzzConfiguration:
    sample_rate: int
    channels: int
    frame_size: int  # samples per channel
    frame_size_ms_x2: int
    custom_encode: bool
    custom_decode: bool

    @property
    def uses_custom(self) -> bool:
        return self.custom_encode or self.custom_decode

    def describe(self) -> str:
        return (
            f"{self.sample_rate // 1000} kHz, {self.channels} ch, "
            f"custom_encode: {int(self.custom_encode)}, custom_decode: {int(self.custom_decode)}, "
            f"({self.frame_size_ms_x2}/2) ms"
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EncoderSetting:
    bitrate: int
    vbr: int
    vbr_constraint: int
    complexity: int
    packet_loss_perc: int
    lsb_depth: int
    float_encode: bool
    float_decode: bool

    def describe(self) -> str:
        return (
            f"float_encode: {int(self.float_encode)}, float_decode: {int(self.float_decode)}, "
            f"{self.bitrate} bps, vbr: {self.vbr}, vbr constraint: {self.vbr_constraint}, "
            f"complexity: {self.complexity}, pkt loss: {self.packet_loss_perc}%, "
            f"lsb depth: {self.lsb_depth}"
        )

    def to_dict(self) -> dict:
        return asdict(self)


def frame_size_for(sample_rate: int, frame_size_ms_x2: int) -> int:
    return frame_size_ms_x2 * sample_rate // 2000


def draw_configuration(rng: FastRand) -> FuzzConfiguration | None:
    """Draw one codec configuration. Returns None for draws that must be skipped."""
    sample_rate = rng.choose(SAMPLING_RATES)
    custom_encode = True
    custom_decode = True
    if sample_rate == MIXED_PROFILE_RATE:
        custom_encode = bool(rng.choose(USE_CUSTOM_ENCODE))
        custom_decode = bool(rng.choose(USE_CUSTOM_DECODE))
        if not (custom_encode or custom_decode):
            logger.debug("Skipping draw: %d Hz without a custom-profile side", sample_rate)
            return None

    channels = rng.choose(CHANNELS)
    frame_size_ms_x2 = rng.choose(FRAME_SIZES_MS_X2)

    if sample_rate in SHORT_FRAME_RATES and frame_size_ms_x2 < MIN_CUSTOM_FRAME_MS_X2:
        logger.debug(
            "Skipping draw: (%d/2) ms frames unsupported by custom mode at %d Hz",
            frame_size_ms_x2, sample_rate,
        )
        return None

    return FuzzConfiguration(
        sample_rate=sample_rate,
        channels=channels,
        frame_size=frame_size_for(sample_rate, frame_size_ms_x2),
        frame_size_ms_x2=frame_size_ms_x2,
        custom_encode=custom_encode,
        custom_decode=custom_decode,
    )


def is_legal(configuration: FuzzConfiguration) -> bool:
    """Check the cross-parameter constraints an accepted configuration must hold."""
    c = configuration
    if c.sample_rate not in SAMPLING_RATES or c.channels not in CHANNELS:
        return False
    if c.frame_size != frame_size_for(c.sample_rate, c.frame_size_ms_x2):
        return False
    if c.sample_rate != MIXED_PROFILE_RATE and not (c.custom_encode and c.custom_decode):
        return False
    if not c.uses_custom:
        return False
    if c.sample_rate in SHORT_FRAME_RATES and c.frame_size_ms_x2 < MIN_CUSTOM_FRAME_MS_X2:
        return False
    return True


def draw_settings(
    rng: FastRand,
    count: int,
    float_api: bool = True,
    matched_datatypes: bool = False,
) -> Iterator[EncoderSetting]:
    """Lazily draw ``count`` encoder settings.

    Args:
        rng: Shared generator; settings are drawn only as they are consumed.
        count: Number of settings to produce.
        float_api: When False, both sides use integer samples and no draw is made for them.
        matched_datatypes: Decode with the encoder's datatype (used for RMS validation).
    """
    for _ in range(count):
        bitrate = rng.choose(BITRATES)
        vbr = rng.choose(USE_VBR)
        vbr_constraint = rng.choose(VBR_CONSTRAINTS)
        complexity = rng.choose(COMPLEXITIES)
        packet_loss_perc = rng.choose(PACKET_LOSS_PERC)
        lsb_depth = rng.choose(LSB_DEPTHS)
        if float_api:
            float_encode = bool(rng.choose(USE_FLOAT_ENCODE))
            float_decode = bool(rng.choose(USE_FLOAT_DECODE))
        else:
            float_encode = False
            float_decode = False
        if matched_datatypes:
            float_decode = float_encode

        yield EncoderSetting(
            bitrate=bitrate,
            vbr=vbr,
            vbr_constraint=vbr_constraint,
            complexity=complexity,
            packet_loss_perc=packet_loss_perc,
            lsb_depth=lsb_depth,
            float_encode=float_encode,
            float_decode=float_decode,
        )
