"""Round-trip executor — push a signal through encode then decode, frame by frame."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from opus_fuzz.audio import pad_to_frames
from opus_fuzz.codecs.base import MAX_PACKET, PACKET_BUFFER_SIZE
from opus_fuzz.sampler import EncoderSetting
from opus_fuzz.session import CodecSession
from opus_fuzz.sweep import SignalBuffer
from opus_fuzz.validate import rms_deviation

logger = logging.getLogger(__name__)


@dataclass
class RoundTripResult:
    frames: int
    num_samples: int  # per channel, excluding padding
    encoded_bytes: int
    decoded: np.ndarray
    rms: float | None = None


def run_round_trip(
    session: CodecSession,
    signal: SignalBuffer,
    setting: EncoderSetting,
    validate_rms: bool = False,
    max_packet: int = MAX_PACKET,
) -> RoundTripResult:
    """Encode and decode ``signal`` through the session's live handles.

    The final frame is padded with silence when frame_size does not divide
    the signal; padding never enters the RMS measurement, and the
    reconstruction is compared against the input delayed by the encoder
    lookahead. Every codec call is checked and any violation goes through the
    reporter, which aborts the run.
    """
    config = session.configuration
    reporter = session.reporter
    encoder, decoder = session.encoder, session.decoder
    channels, frame_size = config.channels, config.frame_size

    if signal.is_float != setting.float_encode:
        raise ValueError("Signal datatype does not match the encoder datatype")
    if not signal.is_float and signal.data.dtype != np.int16:
        raise ValueError(f"Integer encode path takes int16 samples, got {signal.data.dtype}")

    data = pad_to_frames(signal.data, frame_size, channels)
    decoded = np.zeros(len(data), dtype=np.float32 if setting.float_decode else np.int16)
    packet = np.zeros(PACKET_BUFFER_SIZE, dtype=np.uint8)

    if setting.float_encode:
        encode, encode_name = encoder.encode_float, "encode_float"
    else:
        encode, encode_name = encoder.encode, "encode"
    if setting.float_decode:
        decode, decode_name = decoder.decode_float, "decode_float"
    else:
        decode, decode_name = decoder.decode, "decode"
    encode_name = f"{encoder.profile.value} {encode_name}()"
    decode_name = f"{decoder.profile.value} {decode_name}()"

    delay = 0
    if validate_rms:
        delay = encoder.lookahead()
        if delay < 0:
            reporter.fail(
                "lookahead",
                f"{encoder.profile.value} lookahead query failed: {session.backend.strerror(delay)}",
                configuration=config, setting=setting,
            )

    total = signal.num_samples
    nominal_end = total * channels
    consumed = 0
    frames = 0
    encoded_bytes = 0

    while consumed < total:
        start = consumed * channels
        stop = start + frame_size * channels

        length = encode(data[start:stop], frame_size, packet, max_packet)
        if length <= 0:
            reporter.fail(
                "encode", f"{encode_name} failed: {session.backend.strerror(length)}",
                configuration=config, setting=setting,
            )
        if length > max_packet:
            reporter.fail(
                "encode", f"{encode_name} returned {length} bytes, limit is {max_packet}",
                configuration=config, setting=setting,
            )

        samples_decoded = decode(packet, length, decoded[start:stop], frame_size)
        if samples_decoded != frame_size:
            reporter.fail(
                "decode", f"{decode_name} returned {samples_decoded}, expected {frame_size}",
                configuration=config, setting=setting,
            )

        encoded_bytes += length
        frames += 1
        consumed += frame_size

    rms = None
    if validate_rms:
        shift = min(delay * channels, nominal_end)
        rms = rms_deviation(data[:nominal_end - shift], decoded[shift:nominal_end], channels)
    logger.debug(
        "Round trip: %d frames, %d bytes%s",
        frames, encoded_bytes, f", rms {rms:.6f}" if rms is not None else "",
    )
    return RoundTripResult(
        frames=frames,
        num_samples=total,
        encoded_bytes=encoded_bytes,
        decoded=decoded[:nominal_end],
        rms=rms,
    )
