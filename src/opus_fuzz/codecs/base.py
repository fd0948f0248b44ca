"""Abstract codec interface — the create/configure/encode/decode/destroy contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum, IntEnum

import numpy as np

# Result codes (opus_defines.h)
OK = 0
BAD_ARG = -1
BUFFER_TOO_SMALL = -2
INTERNAL_ERROR = -3
INVALID_PACKET = -4
UNIMPLEMENTED = -5
INVALID_STATE = -6
ALLOC_FAIL = -7

ERROR_STRINGS = {
    OK: "success",
    BAD_ARG: "invalid argument",
    BUFFER_TOO_SMALL: "buffer too small",
    INTERNAL_ERROR: "internal error",
    INVALID_PACKET: "corrupted stream",
    UNIMPLEMENTED: "request not implemented",
    INVALID_STATE: "invalid state",
    ALLOC_FAIL: "memory allocation failed",
}

BITRATE_MAX = -1
APPLICATION_RESTRICTED_LOWDELAY = 2051

MAX_PACKET = 1500
PACKET_BUFFER_SIZE = MAX_PACKET + 257


class Profile(str, Enum):
    STANDARD = "standard"
    CUSTOM = "custom"


class EncoderOption(IntEnum):
    """Encoder CTL request codes."""

    BITRATE = 4002
    VBR = 4006
    COMPLEXITY = 4010
    PACKET_LOSS_PERC = 4014
    VBR_CONSTRAINT = 4020
    LSB_DEPTH = 4036


# Read-only request: samples of delay the encoder adds ahead of the signal.
GET_LOOKAHEAD = 4027


class CodecUnavailableError(Exception):
    """Raised when a codec backend cannot be loaded."""


def default_strerror(code: int) -> str:
    return ERROR_STRINGS.get(code, "unknown error")


class Mode(ABC):
    """Custom-profile mode shared by a custom encoder and decoder."""

    profile = Profile.CUSTOM

    @abstractmethod
    def destroy(self) -> None:
        """Release the mode. Called once, after its encoder and decoder are gone."""


class Encoder(ABC):
    profile: Profile

    @abstractmethod
    def configure(self, option: EncoderOption, value: int) -> int:
        """Apply one CTL request. Returns a result code."""

    @abstractmethod
    def encode(self, pcm: np.ndarray, frame_size: int, packet: np.ndarray, max_bytes: int) -> int:
        """Encode interleaved int16 samples. Returns packet length or a negative code."""

    @abstractmethod
    def encode_float(self, pcm: np.ndarray, frame_size: int, packet: np.ndarray, max_bytes: int) -> int:
        """Encode interleaved float32 samples. Returns packet length or a negative code."""

    @abstractmethod
    def lookahead(self) -> int:
        """Samples per channel by which decoded output lags the input, or a negative code."""

    @abstractmethod
    def destroy(self) -> None:
        """Release the encoder with the destructor matching its profile."""


class Decoder(ABC):
    profile: Profile

    @abstractmethod
    def decode(self, packet: np.ndarray, length: int, pcm: np.ndarray, frame_size: int) -> int:
        """Decode into interleaved int16 samples. Returns samples per channel or a negative code."""

    @abstractmethod
    def decode_float(self, packet: np.ndarray, length: int, pcm: np.ndarray, frame_size: int) -> int:
        """Decode into interleaved float32 samples. Returns samples per channel or a negative code."""

    @abstractmethod
    def destroy(self) -> None:
        """Release the decoder with the destructor matching its profile."""


class CodecBackend(ABC):
    """Factory for codec handles.

    Creation methods mirror the C API: they return (handle, result_code) and
    never raise for codec-reported errors, so the caller decides how fatal a
    failure is.
    """

    name: str

    @property
    def float_api(self) -> bool:
        return True

    @property
    def supports_custom(self) -> bool:
        return True

    @abstractmethod
    def create_mode(self, sample_rate: int, frame_size: int) -> tuple[Mode | None, int]:
        """Create a custom-profile mode."""

    @abstractmethod
    def create_encoder(
        self,
        profile: Profile,
        sample_rate: int,
        channels: int,
        mode: Mode | None = None,
        application: int = APPLICATION_RESTRICTED_LOWDELAY,
    ) -> tuple[Encoder | None, int]:
        """Create an encoder: standard from rate/channels, custom from ``mode``."""

    @abstractmethod
    def create_decoder(
        self,
        profile: Profile,
        sample_rate: int,
        channels: int,
        mode: Mode | None = None,
    ) -> tuple[Decoder | None, int]:
        """Create a decoder: standard from rate/channels, custom from ``mode``."""

    def strerror(self, code: int) -> str:
        return default_strerror(code)
