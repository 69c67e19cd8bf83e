"""DSP utilities: resampling, channel normalization, gain/pan and placement.

All functions are pure: they return new arrays (or the input itself when
nothing needs to change) and never keep state between clips. Buffers are
planar, shaped (channels, frames); mono may also be a plain 1-D array.
"""
from __future__ import annotations

import logging
import math
from typing import Tuple

import numpy as np
from scipy.signal import resample_poly

from .config import TARGET_SAMPLE_RATE
from .errors import DecodeGeometryError, InvalidOffsetError, UnsupportedChannelLayoutError

logger = logging.getLogger(__name__)


# ================================
# Resampling
# ================================

def _rate_ratio(from_rate: int, to_rate: int) -> Tuple[int, int]:
    g = math.gcd(int(from_rate), int(to_rate))
    return int(to_rate) // g, int(from_rate) // g


def resample(buffer: np.ndarray, from_rate: int, to_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Convert `buffer` from `from_rate` to `to_rate`.

    Uses polyphase FIR resampling (scipy's `resample_poly`), whose low-pass
    filter band-limits the signal so downsampling does not alias. Every
    channel goes through the same filter along the last axis, which keeps
    left/right phase-aligned.

    The output holds ceil(n * to_rate / from_rate) frames, i.e. the input
    duration to within one sample.
    """
    if from_rate <= 0:
        raise DecodeGeometryError(f"Invalid source sample rate: {from_rate}")
    if to_rate <= 0:
        raise DecodeGeometryError(f"Invalid target sample rate: {to_rate}")
    if from_rate == to_rate:
        return buffer

    x = np.asarray(buffer, dtype=np.float32)
    up, down = _rate_ratio(from_rate, to_rate)
    n_out = -(-x.shape[-1] * up // down)
    if x.shape[-1] == 0:
        return np.zeros(x.shape[:-1] + (0,), dtype=np.float32)

    logger.debug("Resampling %d to %d (up=%d, down=%d)", from_rate, to_rate, up, down)
    y = resample_poly(x, up, down, axis=-1)
    # resample_poly already yields ceil(n * up / down); trim guards against drift
    y = y[..., :n_out]
    return y.astype(np.float32, copy=False)


# ================================
# Channel layout
# ================================

def to_stereo(buffer: np.ndarray, channel_count: int) -> np.ndarray:
    """Return a (2, n) buffer: stereo passes through, mono is duplicated."""
    if channel_count not in (1, 2):
        raise UnsupportedChannelLayoutError(channel_count)

    x = np.asarray(buffer)
    if channel_count == 2:
        if x.ndim != 2 or x.shape[0] != 2:
            raise DecodeGeometryError(f"Expected a (2, n) stereo buffer, got shape {x.shape}")
        return buffer

    if x.ndim == 2:
        if x.shape[0] != 1:
            raise DecodeGeometryError(f"Expected a mono buffer, got shape {x.shape}")
        x = x[0]
    elif x.ndim != 1:
        raise DecodeGeometryError(f"Expected a mono buffer, got shape {x.shape}")
    logger.debug("Duplicating mono clip into stereo (%d frames)", x.shape[0])
    return np.stack([x, x], axis=0)


# ================================
# Gain / pan
# ================================

def pan_gains(volume: float, pan: float) -> Tuple[float, float]:
    """Linear pan law.

    Centre passes both channels at `volume`; moving towards one side
    attenuates the opposite channel linearly until it is silent at +/-1.
    Values outside the nominal ranges are not clamped.
    """
    left_gain = volume * min(1.0, 1.0 - pan)
    right_gain = volume * min(1.0, 1.0 + pan)
    return left_gain, right_gain


def apply_gain_pan(stereo: np.ndarray, volume: float, pan: float) -> np.ndarray:
    """Scale the left and right rows of a (2, n) buffer by the pan-law gains."""
    stereo = np.asarray(stereo, dtype=np.float32)
    if stereo.ndim != 2 or stereo.shape[0] != 2:
        raise DecodeGeometryError(f"Expected a (2, n) stereo buffer, got shape {stereo.shape}")
    left_gain, right_gain = pan_gains(volume, pan)
    gains = np.array([[left_gain], [right_gain]], dtype=np.float32)
    return stereo * gains


# ================================
# Placement
# ================================

def place(clip_start_ms: float, target_rate: int = TARGET_SAMPLE_RATE) -> int:
    """Map a millisecond offset to a start frame (halves round up)."""
    if not math.isfinite(clip_start_ms) or clip_start_ms < 0:
        raise InvalidOffsetError(clip_start_ms)
    return int(math.floor(clip_start_ms * target_rate / 1000.0 + 0.5))
