"""Codec backends driven by the harness."""

from opus_fuzz.codecs.base import (
    BITRATE_MAX,
    MAX_PACKET,
    OK,
    CodecBackend,
    CodecUnavailableError,
    Decoder,
    Encoder,
    EncoderOption,
    Mode,
    Profile,
)

__all__ = [
    "BITRATE_MAX",
    "MAX_PACKET",
    "OK",
    "CodecBackend",
    "CodecUnavailableError",
    "Decoder",
    "Encoder",
    "EncoderOption",
    "Mode",
    "Profile",
]
