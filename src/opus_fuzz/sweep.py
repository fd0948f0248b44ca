"""Synthetic test input — exponential sine sweep from 100 Hz to Nyquist."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

START_FREQ = 100.0

SWEEP_AMPLITUDE = 0.5
SWEEP_DURATION_S = 60.0


@dataclass
class SignalBuffer:
    """Interleaved samples plus the format needed to slice them into frames."""

    data: np.ndarray
    num_samples: int  # per channel
    channels: int
    sample_rate: int
    bit_depth: int  # 32 for float buffers

    @property
    def is_float(self) -> bool:
        return self.data.dtype == np.float32


def sweep_phase(t: np.ndarray, sample_rate: int, duration_seconds: float) -> np.ndarray:
    """Instantaneous phase of the exponential chirp, zero at t=0."""
    end_freq = sample_rate / 2.0
    b = math.log((end_freq + START_FREQ) / START_FREQ) / duration_seconds
    a = START_FREQ / b
    return 2.0 * math.pi * a * np.expm1(b * t) - b * t


def generate_sweep(
    amplitude: float,
    bit_depth: int,
    sample_rate: int,
    channels: int,
    use_float: bool,
    duration_seconds: float,
) -> tuple[SignalBuffer | None, int]:
    """Generate an interleaved sine sweep.

    Float output stays in [-amplitude, amplitude]. Integer output is scaled by
    2**(bit_depth - 1) - 1 and rounded half away from zero; 24-bit samples are
    packed into the upper 24 bits of an int32.

    Returns:
        (buffer, samples per channel), or (None, 0) if the buffer could not be
        allocated.
    """
    if not use_float and bit_depth not in (16, 24):
        raise ValueError(f"Unsupported integer bit depth: {bit_depth}")

    num_samples = int(math.floor(0.5 + duration_seconds * sample_rate))

    try:
        t = np.arange(num_samples, dtype=np.float64) / sample_rate
        mono = amplitude * np.sin(sweep_phase(t, sample_rate, duration_seconds))

        if use_float:
            samples = mono.astype(np.float32)
            bit_depth = 32
        else:
            max_sample_value = (1 << (bit_depth - 1)) - 1
            scaled = mono * max_sample_value
            rounded = np.sign(scaled) * np.floor(0.5 + np.abs(scaled))
            if bit_depth == 16:
                samples = rounded.astype(np.int16)
            else:
                samples = rounded.astype(np.int32) << 8

        data = np.repeat(samples, channels) if channels > 1 else samples
    except MemoryError:
        logger.error(
            "Could not allocate %d-sample sweep (%d Hz, %d ch)",
            num_samples, sample_rate, channels,
        )
        return None, 0

    return SignalBuffer(
        data=data,
        num_samples=num_samples,
        channels=channels,
        sample_rate=sample_rate,
        bit_depth=bit_depth,
    ), num_samples
