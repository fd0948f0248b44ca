"""Sample-format helpers — full-scale conversion, frame padding, WAV artifacts."""

import os
from pathlib import Path

import numpy as np
import soundfile as sf


def to_float(data: np.ndarray) -> np.ndarray:
    """Convert int16/int32 samples to full-scale float64. Floats are widened as is."""
    if data.dtype in (np.float32, np.float64):
        return data.astype(np.float64)
    if data.dtype == np.int16:
        return data.astype(np.float64) / 32768.0
    if data.dtype == np.int32:
        return data.astype(np.float64) / 2147483648.0
    raise ValueError(f"Unsupported dtype: {data.dtype}")


def deinterleave(data: np.ndarray, channels: int) -> np.ndarray:
    """View an interleaved 1-D buffer as (n_samples, n_channels)."""
    if data.ndim != 1:
        raise ValueError(f"Expected interleaved 1-D buffer, got shape {data.shape}")
    if len(data) % channels:
        raise ValueError(f"Buffer length {len(data)} is not a multiple of {channels} channels")
    return data.reshape(-1, channels)


def pad_to_frames(data: np.ndarray, frame_size: int, channels: int) -> np.ndarray:
    """Zero-pad an interleaved buffer to a whole number of frames.

    Returns the input unchanged when it already divides evenly.
    """
    samples = len(data) // channels
    remainder = samples % frame_size
    if remainder == 0:
        return data
    padding = (frame_size - remainder) * channels
    return np.concatenate([data, np.zeros(padding, dtype=data.dtype)])


def write_wav_atomic(path: str | Path, data: np.ndarray, sr: int, channels: int = 1) -> None:
    """Write an interleaved buffer as a float WAV: write to .tmp then rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.parent / (path.name + ".tmp")
    frames = deinterleave(to_float(data).astype(np.float32), channels)
    sf.write(str(tmp_path), frames, sr, subtype="FLOAT", format="WAV")
    os.replace(str(tmp_path), str(path))
