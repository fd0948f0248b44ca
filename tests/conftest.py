"""Shared test fixtures — an in-memory codec backend that counts handle lifetimes."""

from collections import Counter

import numpy as np
import pytest

from opus_fuzz.audio import to_float
from opus_fuzz.codecs.base import (
    BAD_ARG,
    INTERNAL_ERROR,
    OK,
    CodecBackend,
    Decoder,
    Encoder,
    Mode,
    Profile,
)
from opus_fuzz.sampler import EncoderSetting, FuzzConfiguration

HEADER_BYTES = 4


class FakeMode(Mode):
    def __init__(self, backend, sample_rate, frame_size):
        self.backend = backend
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.destroyed = False

    def destroy(self):
        self.backend._release(self, "mode")


class FakeEncoder(Encoder):
    def __init__(self, backend, profile, channels):
        self.backend = backend
        self.profile = profile
        self.channels = channels
        self.destroyed = False

    def configure(self, option, value):
        self.backend.configure_calls.append((self.profile, option, value))
        if option == self.backend.fail_configure:
            return BAD_ARG
        return OK

    def encode(self, pcm, frame_size, packet, max_bytes):
        assert pcm.dtype == np.int16
        return self.backend._encode(pcm, frame_size, packet, max_bytes)

    def encode_float(self, pcm, frame_size, packet, max_bytes):
        assert pcm.dtype == np.float32
        return self.backend._encode(pcm, frame_size, packet, max_bytes)

    def lookahead(self):
        if self.backend.fail_lookahead:
            return INTERNAL_ERROR
        return self.backend.delay

    def destroy(self):
        self.backend._release(self, f"encoder:{self.profile.value}")


class FakeDecoder(Decoder):
    def __init__(self, backend, profile, channels):
        self.backend = backend
        self.profile = profile
        self.channels = channels
        self.destroyed = False

    def decode(self, packet, length, pcm, frame_size):
        assert pcm.dtype == np.int16
        frame, ret = self.backend._decode(packet, length, frame_size)
        if frame is not None:
            pcm[:] = np.clip(np.round(frame * 32768.0), -32768, 32767).astype(np.int16)
        return ret

    def decode_float(self, packet, length, pcm, frame_size):
        assert pcm.dtype == np.float32
        frame, ret = self.backend._decode(packet, length, frame_size)
        if frame is not None:
            pcm[:] = frame.astype(np.float32)
        return ret

    def destroy(self):
        self.backend._release(self, f"decoder:{self.profile.value}")


class FakeBackend(CodecBackend):
    """Lossless stand-in for libopus.

    Encoded packets carry a 4-byte index into an in-memory wire; decoding looks
    the frame back up. Failure knobs are 1-based call numbers. With ``delay``
    the decoded stream lags the encoded one by that many samples per channel,
    counted from the most recently created encoder.
    """

    name = "fake"

    def __init__(
        self,
        float_api=True,
        fail_create=None,
        fail_configure=None,
        fail_encode_at=None,
        oversize_at=None,
        short_decode_at=None,
        offset=0.0,
        delay=0,
        fail_lookahead=False,
    ):
        self._float_api = float_api
        self.fail_create = fail_create  # "mode", "decoder" or "encoder"
        self.fail_configure = fail_configure
        self.fail_encode_at = fail_encode_at
        self.oversize_at = oversize_at
        self.short_decode_at = short_decode_at
        self.offset = offset
        self.delay = delay
        self.fail_lookahead = fail_lookahead

        self.created = Counter()
        self.destroyed = Counter()
        self.double_destroys = 0
        self.live = []
        self.events = []
        self.mode_requests = []
        self.configure_calls = []
        self.packet_lengths = []
        self.encode_calls = 0
        self.decode_calls = 0
        self.wire = []
        self.stream_start = 0

    @property
    def float_api(self):
        return self._float_api

    def _track(self, handle, kind):
        self.created[kind] += 1
        self.live.append(handle)
        self.events.append(("create", kind))
        return handle

    def _release(self, handle, kind):
        if handle.destroyed:
            self.double_destroys += 1
            return
        handle.destroyed = True
        self.destroyed[kind] += 1
        self.live.remove(handle)
        self.events.append(("destroy", kind))

    def create_mode(self, sample_rate, frame_size):
        self.mode_requests.append((sample_rate, frame_size))
        if self.fail_create == "mode":
            return None, INTERNAL_ERROR
        return self._track(FakeMode(self, sample_rate, frame_size), "mode"), OK

    def create_encoder(self, profile, sample_rate, channels, mode=None, application=2051):
        if self.fail_create == "encoder":
            return None, INTERNAL_ERROR
        self.stream_start = len(self.wire)
        if profile is Profile.CUSTOM:
            assert mode is not None and not mode.destroyed
        return self._track(FakeEncoder(self, profile, channels), f"encoder:{profile.value}"), OK

    def create_decoder(self, profile, sample_rate, channels, mode=None):
        if self.fail_create == "decoder":
            return None, BAD_ARG
        if profile is Profile.CUSTOM:
            assert mode is not None and not mode.destroyed
        return self._track(FakeDecoder(self, profile, channels), f"decoder:{profile.value}"), OK

    def _encode(self, pcm, frame_size, packet, max_bytes):
        self.encode_calls += 1
        if self.encode_calls == self.fail_encode_at:
            return INTERNAL_ERROR
        if self.encode_calls == self.oversize_at:
            return max_bytes + 1
        index = len(self.wire)
        self.wire.append(to_float(pcm) + self.offset)
        packet[:HEADER_BYTES] = np.frombuffer(index.to_bytes(HEADER_BYTES, "little"), dtype=np.uint8)
        self.packet_lengths.append(HEADER_BYTES)
        return HEADER_BYTES

    def _decode(self, packet, length, frame_size):
        self.decode_calls += 1
        if self.decode_calls == self.short_decode_at:
            return None, frame_size - 1
        index = int.from_bytes(packet[:HEADER_BYTES].tobytes(), "little")
        frame = self.wire[index]
        if self.delay:
            n = len(frame)
            shift = self.delay * n // frame_size
            stream = np.concatenate([np.zeros(shift), *self.wire[self.stream_start:index + 1]])
            position = (index - self.stream_start) * n
            frame = stream[position:position + n]
        return frame, frame_size


@pytest.fixture
def make_backend():
    """Factory for fake backends with optional failure injection."""
    return FakeBackend


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def custom_config():
    return FuzzConfiguration(
        sample_rate=48000, channels=2, frame_size=480, frame_size_ms_x2=20,
        custom_encode=True, custom_decode=True,
    )


@pytest.fixture
def standard_config():
    return FuzzConfiguration(
        sample_rate=48000, channels=1, frame_size=960, frame_size_ms_x2=40,
        custom_encode=False, custom_decode=False,
    )


@pytest.fixture
def float_setting():
    return EncoderSetting(
        bitrate=64000, vbr=1, vbr_constraint=1, complexity=10,
        packet_loss_perc=0, lsb_depth=24, float_encode=True, float_decode=True,
    )


@pytest.fixture
def int_setting():
    return EncoderSetting(
        bitrate=32000, vbr=0, vbr_constraint=0, complexity=5,
        packet_loss_perc=2, lsb_depth=8, float_encode=False, float_decode=False,
    )
