"""libopus backend — ctypes binding to the standard and custom-mode C API."""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os

import numpy as np

from opus_fuzz.codecs.base import (
    APPLICATION_RESTRICTED_LOWDELAY,
    GET_LOOKAHEAD,
    OK,
    UNIMPLEMENTED,
    CodecBackend,
    CodecUnavailableError,
    Decoder,
    Encoder,
    EncoderOption,
    Mode,
    Profile,
)

logger = logging.getLogger(__name__)

LIBRARY_ENV_VAR = "OPUS_LIBRARY"

_int_p = ctypes.POINTER(ctypes.c_int)
_int16_p = ctypes.POINTER(ctypes.c_int16)
_float_p = ctypes.POINTER(ctypes.c_float)
_ubyte_p = ctypes.POINTER(ctypes.c_ubyte)

# name -> (restype, argtypes). The *_ctl functions are variadic and left undeclared.
_PROTOTYPES = {
    "opus_strerror": (ctypes.c_char_p, [ctypes.c_int]),
    "opus_encoder_create": (ctypes.c_void_p, [ctypes.c_int32, ctypes.c_int, ctypes.c_int, _int_p]),
    "opus_encode": (ctypes.c_int32, [ctypes.c_void_p, _int16_p, ctypes.c_int, _ubyte_p, ctypes.c_int32]),
    "opus_encode_float": (ctypes.c_int32, [ctypes.c_void_p, _float_p, ctypes.c_int, _ubyte_p, ctypes.c_int32]),
    "opus_encoder_destroy": (None, [ctypes.c_void_p]),
    "opus_decoder_create": (ctypes.c_void_p, [ctypes.c_int32, ctypes.c_int, _int_p]),
    "opus_decode": (ctypes.c_int, [ctypes.c_void_p, _ubyte_p, ctypes.c_int32, _int16_p, ctypes.c_int, ctypes.c_int]),
    "opus_decode_float": (ctypes.c_int, [ctypes.c_void_p, _ubyte_p, ctypes.c_int32, _float_p, ctypes.c_int, ctypes.c_int]),
    "opus_decoder_destroy": (None, [ctypes.c_void_p]),
    "opus_custom_mode_create": (ctypes.c_void_p, [ctypes.c_int32, ctypes.c_int, _int_p]),
    "opus_custom_mode_destroy": (None, [ctypes.c_void_p]),
    "opus_custom_encoder_create": (ctypes.c_void_p, [ctypes.c_void_p, ctypes.c_int, _int_p]),
    "opus_custom_encode": (ctypes.c_int, [ctypes.c_void_p, _int16_p, ctypes.c_int, _ubyte_p, ctypes.c_int]),
    "opus_custom_encode_float": (ctypes.c_int, [ctypes.c_void_p, _float_p, ctypes.c_int, _ubyte_p, ctypes.c_int]),
    "opus_custom_encoder_destroy": (None, [ctypes.c_void_p]),
    "opus_custom_decoder_create": (ctypes.c_void_p, [ctypes.c_void_p, ctypes.c_int, _int_p]),
    "opus_custom_decode": (ctypes.c_int, [ctypes.c_void_p, _ubyte_p, ctypes.c_int, _int16_p, ctypes.c_int]),
    "opus_custom_decode_float": (ctypes.c_int, [ctypes.c_void_p, _ubyte_p, ctypes.c_int, _float_p, ctypes.c_int]),
    "opus_custom_decoder_destroy": (None, [ctypes.c_void_p]),
}

_CUSTOM_SYMBOLS = (
    "opus_custom_mode_create",
    "opus_custom_encoder_create",
    "opus_custom_decoder_create",
    "opus_custom_encoder_ctl",
)


def load_library(path: str | None = None) -> ctypes.CDLL:
    """Load libopus and declare prototypes for every exported entry point we use.

    Lookup order: explicit path, ``OPUS_LIBRARY`` env var, ``find_library("opus")``.
    """
    location = path or os.environ.get(LIBRARY_ENV_VAR) or ctypes.util.find_library("opus")
    if not location:
        raise CodecUnavailableError(
            f"libopus not found. Install it or point {LIBRARY_ENV_VAR} at the shared library."
        )
    try:
        lib = ctypes.CDLL(location)
    except OSError as e:
        raise CodecUnavailableError(f"Could not load libopus from {location}: {e}") from e

    for name, (restype, argtypes) in _PROTOTYPES.items():
        if hasattr(lib, name):
            func = getattr(lib, name)
            func.restype = restype
            func.argtypes = argtypes
    logger.debug("Loaded libopus from %s", location)
    return lib


def custom_mode_overlap(sample_rate: int, frame_size: int) -> int:
    """Overlap of a custom mode: a quarter-aligned short MDCT, as libopus derives it."""
    if frame_size * 75 >= sample_rate and frame_size % 16 == 0:
        lm = 3
    elif frame_size * 150 >= sample_rate and frame_size % 8 == 0:
        lm = 2
    elif frame_size * 300 >= sample_rate and frame_size % 4 == 0:
        lm = 1
    else:
        lm = 0
    short_mdct_size = frame_size >> lm
    return (short_mdct_size >> 2) << 2


def _ptr(array: np.ndarray, ctype, dtype) -> ctypes._Pointer:
    if array.dtype != dtype:
        raise TypeError(f"Expected {np.dtype(dtype)} buffer, got {array.dtype}")
    if not array.flags["C_CONTIGUOUS"]:
        raise ValueError("Sample buffers must be contiguous")
    return array.ctypes.data_as(ctypes.POINTER(ctype))


class _Handle:
    _destructor: str

    def __init__(self, lib: ctypes.CDLL, handle: int):
        self._lib = lib
        self._handle = handle

    @property
    def handle(self) -> int | None:
        return self._handle

    def destroy(self) -> None:
        if self._handle is None:
            raise RuntimeError(f"{type(self).__name__} already destroyed")
        getattr(self._lib, self._destructor)(self._handle)
        self._handle = None


class CustomMode(_Handle, Mode):
    _destructor = "opus_custom_mode_destroy"

    def __init__(self, lib: ctypes.CDLL, handle: int, sample_rate: int, frame_size: int):
        super().__init__(lib, handle)
        self.sample_rate = sample_rate
        self.frame_size = frame_size

    def overlap(self) -> int:
        """MDCT overlap chosen by opus_custom_mode_create, which is the mode's delay."""
        return custom_mode_overlap(self.sample_rate, self.frame_size)


class _LibopusEncoder(_Handle, Encoder):
    _ctl: str
    _encode: str
    _encode_float: str

    def configure(self, option: EncoderOption, value: int) -> int:
        ctl = getattr(self._lib, self._ctl)
        return ctl(ctypes.c_void_p(self._handle), ctypes.c_int(int(option)), ctypes.c_int32(value))

    def encode(self, pcm, frame_size, packet, max_bytes):
        return getattr(self._lib, self._encode)(
            self._handle, _ptr(pcm, ctypes.c_int16, np.int16), frame_size,
            _ptr(packet, ctypes.c_ubyte, np.uint8), max_bytes,
        )

    def encode_float(self, pcm, frame_size, packet, max_bytes):
        return getattr(self._lib, self._encode_float)(
            self._handle, _ptr(pcm, ctypes.c_float, np.float32), frame_size,
            _ptr(packet, ctypes.c_ubyte, np.uint8), max_bytes,
        )

    def lookahead(self):
        value = ctypes.c_int32(0)
        ctl = getattr(self._lib, self._ctl)
        ret = ctl(ctypes.c_void_p(self._handle), ctypes.c_int(GET_LOOKAHEAD), ctypes.byref(value))
        return value.value if ret == OK else ret


class StandardEncoder(_LibopusEncoder):
    profile = Profile.STANDARD
    _ctl = "opus_encoder_ctl"
    _encode = "opus_encode"
    _encode_float = "opus_encode_float"
    _destructor = "opus_encoder_destroy"


class CustomEncoder(_LibopusEncoder):
    profile = Profile.CUSTOM
    _ctl = "opus_custom_encoder_ctl"
    _encode = "opus_custom_encode"
    _encode_float = "opus_custom_encode_float"
    _destructor = "opus_custom_encoder_destroy"

    def __init__(self, lib: ctypes.CDLL, handle: int, mode: CustomMode):
        super().__init__(lib, handle)
        self.mode = mode

    def lookahead(self):
        # custom-mode ctl has no lookahead request
        ret = super().lookahead()
        if ret == UNIMPLEMENTED:
            return self.mode.overlap()
        return ret


class StandardDecoder(_Handle, Decoder):
    profile = Profile.STANDARD
    _destructor = "opus_decoder_destroy"

    def decode(self, packet, length, pcm, frame_size):
        return self._lib.opus_decode(
            self._handle, _ptr(packet, ctypes.c_ubyte, np.uint8), length,
            _ptr(pcm, ctypes.c_int16, np.int16), frame_size, 0,
        )

    def decode_float(self, packet, length, pcm, frame_size):
        return self._lib.opus_decode_float(
            self._handle, _ptr(packet, ctypes.c_ubyte, np.uint8), length,
            _ptr(pcm, ctypes.c_float, np.float32), frame_size, 0,
        )


class CustomDecoder(_Handle, Decoder):
    profile = Profile.CUSTOM
    _destructor = "opus_custom_decoder_destroy"

    def decode(self, packet, length, pcm, frame_size):
        return self._lib.opus_custom_decode(
            self._handle, _ptr(packet, ctypes.c_ubyte, np.uint8), length,
            _ptr(pcm, ctypes.c_int16, np.int16), frame_size,
        )

    def decode_float(self, packet, length, pcm, frame_size):
        return self._lib.opus_custom_decode_float(
            self._handle, _ptr(packet, ctypes.c_ubyte, np.uint8), length,
            _ptr(pcm, ctypes.c_float, np.float32), frame_size,
        )


class LibopusBackend(CodecBackend):
    name = "libopus"

    def __init__(self, library: str | None = None):
        self._lib = load_library(library)

    @property
    def float_api(self) -> bool:
        return hasattr(self._lib, "opus_encode_float") and hasattr(self._lib, "opus_decode_float")

    @property
    def supports_custom(self) -> bool:
        return all(hasattr(self._lib, name) for name in _CUSTOM_SYMBOLS)

    def create_mode(self, sample_rate, frame_size):
        if not self.supports_custom:
            return None, UNIMPLEMENTED
        err = ctypes.c_int(OK)
        handle = self._lib.opus_custom_mode_create(sample_rate, frame_size, ctypes.byref(err))
        return (CustomMode(self._lib, handle, sample_rate, frame_size) if handle else None), err.value

    def create_encoder(
        self, profile, sample_rate, channels, mode=None,
        application=APPLICATION_RESTRICTED_LOWDELAY,
    ):
        err = ctypes.c_int(OK)
        if profile is Profile.CUSTOM:
            if mode is None or not self.supports_custom:
                return None, UNIMPLEMENTED
            handle = self._lib.opus_custom_encoder_create(mode.handle, channels, ctypes.byref(err))
            return (CustomEncoder(self._lib, handle, mode) if handle else None), err.value
        handle = self._lib.opus_encoder_create(sample_rate, channels, application, ctypes.byref(err))
        return (StandardEncoder(self._lib, handle) if handle else None), err.value

    def create_decoder(self, profile, sample_rate, channels, mode=None):
        err = ctypes.c_int(OK)
        if profile is Profile.CUSTOM:
            if mode is None or not self.supports_custom:
                return None, UNIMPLEMENTED
            handle = self._lib.opus_custom_decoder_create(mode.handle, channels, ctypes.byref(err))
            return (CustomDecoder(self._lib, handle) if handle else None), err.value
        handle = self._lib.opus_decoder_create(sample_rate, channels, ctypes.byref(err))
        return (StandardDecoder(self._lib, handle) if handle else None), err.value

    def strerror(self, code: int) -> str:
        return self._lib.opus_strerror(code).decode("ascii", errors="replace")
