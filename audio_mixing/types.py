"""Shared datatypes for the timeline mixer.

These dataclasses keep interfaces clear between modules. Audio buffers follow
one convention everywhere: planar float32 arrays shaped (channels, frames),
row 0 = left and row 1 = right for stereo.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .config import OUTPUT_CHANNELS, TARGET_SAMPLE_RATE
from .errors import DecodeGeometryError


@dataclass(frozen=True)
class ClipSpec:
    """One row of the clip list.

    Attributes:
        start_offset_ms: Clip start in milliseconds from output time zero.
        volume: Multiplicative gain (nominally 0.0-1.0, not enforced).
        pan: Stereo balance, -1.0 full left, 0.0 centre, 1.0 full right.
        source_path: File handed to the decoder.
    """

    start_offset_ms: float
    volume: float
    pan: float
    source_path: str


@dataclass
class DecodedAudio:
    """Raw decoder output.

    Attributes:
        samples: 1-D float32 array, interleaved by channel.
        sample_rate: Native sample rate in Hz.
        channel_count: Number of interleaved channels.
    """

    samples: np.ndarray
    sample_rate: int
    channel_count: int

    @property
    def frame_count(self) -> int:
        if self.channel_count < 1:
            return 0
        return int(self.samples.size // self.channel_count)

    def frames(self) -> np.ndarray:
        """Return a planar (channels, frames) view of the interleaved samples."""
        if self.channel_count < 1:
            raise DecodeGeometryError(f"Invalid channel count: {self.channel_count}")
        flat = np.asarray(self.samples, dtype=np.float32).reshape(-1)
        if flat.size % self.channel_count != 0:
            raise DecodeGeometryError(
                f"{flat.size} samples cannot be split into {self.channel_count} channels"
            )
        return flat.reshape((-1, self.channel_count)).T


@dataclass
class NormalizedClip:
    """A clip ready for accumulation: stereo, target rate, gain/pan applied."""

    spec: ClipSpec
    frames: np.ndarray  # (2, n)
    start_frame: int

    @property
    def length(self) -> int:
        return int(self.frames.shape[-1])

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.length


class OutputTrack:
    """Shared stereo accumulation buffer.

    Storage is over-allocated on growth (capacity doubles) so repeated
    `ensure_length` calls stay cheap; `frames` always exposes exactly
    `length` frames.
    """

    def __init__(self, length: int = 0, sample_rate: int = TARGET_SAMPLE_RATE):
        if length < 0:
            raise ValueError(f"Track length must be >= 0, got {length}")
        self.sample_rate = sample_rate
        self._buffer = np.zeros((OUTPUT_CHANNELS, length), dtype=np.float32)
        self._length = length

    @classmethod
    def from_frames(cls, frames: np.ndarray, sample_rate: int = TARGET_SAMPLE_RATE, copy: bool = True) -> "OutputTrack":
        frames = np.asarray(frames, dtype=np.float32)
        if frames.ndim != 2 or frames.shape[0] != OUTPUT_CHANNELS:
            raise ValueError(f"Expected frames shaped (2, n), got {frames.shape}")
        track = cls(0, sample_rate)
        track._buffer = frames.copy() if copy else frames
        track._length = frames.shape[1]
        return track

    @property
    def length(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        return int(self._buffer.shape[1])

    @property
    def frames(self) -> np.ndarray:
        return self._buffer[:, : self._length]

    @property
    def left(self) -> np.ndarray:
        return self.frames[0]

    @property
    def right(self) -> np.ndarray:
        return self.frames[1]

    @property
    def duration_s(self) -> float:
        return self._length / self.sample_rate

    def ensure_length(self, length: int) -> None:
        """Grow the track to at least `length` frames, zero-filling the new tail."""
        if length <= self._length:
            return
        if length > self.capacity:
            new_capacity = max(length, 2 * self.capacity)
            grown = np.zeros((OUTPUT_CHANNELS, new_capacity), dtype=np.float32)
            grown[:, : self._length] = self.frames
            self._buffer = grown
        self._length = length

    def interleaved(self) -> np.ndarray:
        """Return samples as [L0, R0, L1, R1, ...]."""
        return np.ascontiguousarray(self.frames.T).reshape(-1)

    def peak(self) -> float:
        if self._length == 0:
            return 0.0
        return float(np.max(np.abs(self.frames)))

    def __len__(self) -> int:
        return self._length

    def __repr__(self) -> str:
        return f"OutputTrack(length={self._length}, sample_rate={self.sample_rate})"
