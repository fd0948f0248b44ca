"""Round-trip fidelity — RMS deviation between input and reconstruction."""

from __future__ import annotations

import math

import numpy as np

from opus_fuzz.audio import to_float

RMS_THRESHOLD = 0.1


class RmsAccumulator:
    """Running root-mean-square deviation over full-scale float samples.

    Integer buffers are normalized before comparison, so an int16 input can be
    checked against a float32 reconstruction.
    """

    def __init__(self, channels: int):
        self.channels = channels
        self.squared_error = 0.0
        self.num_samples = 0  # per channel

    def update(self, original: np.ndarray, decoded: np.ndarray) -> None:
        if len(original) != len(decoded):
            raise ValueError(f"Frame length mismatch: {len(original)} vs {len(decoded)}")
        diff = to_float(original) - to_float(decoded)
        self.squared_error += float(np.dot(diff, diff))
        self.num_samples += len(original) // self.channels

    def value(self) -> float:
        if self.num_samples == 0:
            return 0.0
        return math.sqrt(self.squared_error / (self.num_samples * self.channels))


def rms_deviation(original: np.ndarray, decoded: np.ndarray, channels: int = 1) -> float:
    acc = RmsAccumulator(channels)
    acc.update(original, decoded)
    return acc.value()


def check_rms(rms: float, threshold: float = RMS_THRESHOLD) -> bool:
    """True when the deviation is within tolerance."""
    return rms <= threshold
