"""Timeline accumulation: sizing, summing and finalizing the output track.

The output track is the only shared mutable state in a mix. Clips are summed
into it either one at a time (`accumulate`) or through a partitioned
reduction (`accumulate_partitioned`): the track is cut into disjoint frame
ranges and each range adds up only the clips that overlap it, so ranges can
be reduced concurrently without locking.
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_BLOCK_FRAMES, OVERFLOW_POLICIES, TARGET_SAMPLE_RATE
from .errors import ConfigError
from .types import NormalizedClip, OutputTrack

logger = logging.getLogger(__name__)


def total_length(clips: Iterable[NormalizedClip]) -> int:
    """Frames needed to hold every clip (0 for no clips)."""
    return max((c.end_frame for c in clips), default=0)


def allocate(length: int, sample_rate: int = TARGET_SAMPLE_RATE) -> OutputTrack:
    return OutputTrack(length, sample_rate)


def accumulate(track: OutputTrack, clip_frames: np.ndarray, start_frame: int) -> None:
    """Add a (2, n) clip into `track` starting at `start_frame`.

    The track grows if the clip runs past its end.
    """
    if start_frame < 0:
        raise ValueError(f"start_frame must be >= 0, got {start_frame}")
    n = clip_frames.shape[-1]
    if n == 0:
        return
    track.ensure_length(start_frame + n)
    track.frames[:, start_frame : start_frame + n] += clip_frames


def partition(length: int, block_frames: int = DEFAULT_BLOCK_FRAMES) -> List[Tuple[int, int]]:
    """Split [0, length) into consecutive half-open ranges of at most `block_frames`."""
    if block_frames < 1:
        raise ValueError(f"block_frames must be >= 1, got {block_frames}")
    return [(lo, min(lo + block_frames, length)) for lo in range(0, length, block_frames)]


def _reduce_range(track: OutputTrack, clips: Sequence[NormalizedClip], lo: int, hi: int) -> None:
    out = track.frames
    for clip in clips:
        a = max(lo, clip.start_frame)
        b = min(hi, clip.end_frame)
        if a >= b:
            continue
        out[:, a:b] += clip.frames[:, a - clip.start_frame : b - clip.start_frame]


def accumulate_partitioned(
    track: OutputTrack,
    clips: Sequence[NormalizedClip],
    block_frames: int = DEFAULT_BLOCK_FRAMES,
    executor: Optional[Executor] = None,
) -> None:
    """Sum `clips` into a track already sized to hold them.

    Within each range clips are added in the given order, so the result does
    not depend on how ranges are scheduled.
    """
    needed = total_length(clips)
    if needed > track.length:
        raise ValueError(f"Track holds {track.length} frames but clips need {needed}")

    ranges = partition(track.length, block_frames)
    if executor is None or len(ranges) < 2:
        for lo, hi in ranges:
            _reduce_range(track, clips, lo, hi)
        return

    futures = [executor.submit(_reduce_range, track, clips, lo, hi) for lo, hi in ranges]
    for fut in futures:
        fut.result()


# ================================
# Overflow handling
# ================================

def finalize(track: OutputTrack, policy: str = "clip", peak_ceiling: float = 1.0) -> OutputTrack:
    """Return a copy of `track` ready for encoding under the given overflow policy.

    - "clip": hard-clamp every sample to [-1, 1].
    - "normalize": scale the whole track so its peak equals `peak_ceiling`,
      only when the peak is above it.
    - "none": unchanged copy.
    """
    if policy not in OVERFLOW_POLICIES:
        raise ConfigError(f"Unknown overflow policy: {policy!r}")

    frames = track.frames.copy()
    peak = track.peak()

    if policy == "clip":
        if peak > 1.0:
            over = int(np.count_nonzero(np.abs(frames) > 1.0))
            logger.warning("Clipping %d samples above full scale (peak %.3f)", over, peak)
        np.clip(frames, -1.0, 1.0, out=frames)
    elif policy == "normalize":
        if peak > peak_ceiling:
            gain = peak_ceiling / peak
            logger.warning("Normalizing mix peak %.3f down to %.3f", peak, peak_ceiling)
            frames *= np.float32(gain)
    elif peak > 1.0:
        logger.warning("Mix peak %.3f exceeds full scale; leaving it to the encoder", peak)

    return OutputTrack.from_frames(frames, track.sample_rate, copy=False)
