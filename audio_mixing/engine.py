"""Orchestrator: turns decoded clips into one mixed stereo track.

Pipeline per clip: resample -> stereo -> gain/pan -> place. Preparation has
no shared state, so it runs on a thread pool; the results are summed into a
track sized once every clip's end frame is known.
"""
from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from . import dsp
from .config import TARGET_SAMPLE_RATE, MixConfig
from .errors import UnsupportedChannelLayoutError
from .io_utils import Decoder, Encoder, SoundfileDecoder, SoundfileEncoder
from .timeline import accumulate_partitioned, allocate, finalize, total_length
from .types import ClipSpec, DecodedAudio, NormalizedClip, OutputTrack

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


@dataclass
class RenderResult:
    output_path: Path
    clip_count: int = 0
    source_count: int = 0
    frames: int = 0
    duration_s: float = 0.0
    peak: float = 0.0
    overflow_handled: bool = False


def _sub_progress(on_progress: Optional[ProgressCallback], base: float, span: float):
    """Return a callback that maps a stage's [0,1] to [base, base+span]."""

    def cb(stage: str, frac: float) -> None:
        if on_progress:
            on_progress(stage, base + frac * span)

    return cb


# ================================
# Per-clip preparation
# ================================

def normalize_source(decoded: DecodedAudio, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Resample a decoded buffer to `target_rate` and make it stereo, shape (2, n)."""
    if decoded.channel_count not in (1, 2):
        raise UnsupportedChannelLayoutError(decoded.channel_count)
    planar = decoded.frames()
    resampled = dsp.resample(planar, decoded.sample_rate, target_rate)
    return dsp.to_stereo(resampled, decoded.channel_count)


def place_clip(spec: ClipSpec, stereo: np.ndarray, target_rate: int = TARGET_SAMPLE_RATE) -> NormalizedClip:
    """Apply the clip's gain/pan to an already normalized source and place it."""
    frames = dsp.apply_gain_pan(stereo, spec.volume, spec.pan)
    start_frame = dsp.place(spec.start_offset_ms, target_rate)
    return NormalizedClip(spec=spec, frames=frames, start_frame=start_frame)


def prepare_clip(spec: ClipSpec, decoded: DecodedAudio, target_rate: int = TARGET_SAMPLE_RATE) -> NormalizedClip:
    return place_clip(spec, normalize_source(decoded, target_rate), target_rate)


def _map_in_order(pool: Executor, fn, items: Sequence, stage: str, on_progress: ProgressCallback) -> List:
    results = []
    total = max(len(items), 1)
    # map() yields in submission order and re-raises the first failure
    for i, result in enumerate(pool.map(fn, items), 1):
        results.append(result)
        on_progress(stage, i / total)
    return results


# ================================
# Mixing
# ================================

def mix(
    clips: Iterable[Tuple[ClipSpec, DecodedAudio]],
    config: Optional[MixConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> OutputTrack:
    """Mix `(ClipSpec, DecodedAudio)` pairs into one 44.1 kHz stereo track.

    Clips sharing the same `DecodedAudio` object are resampled once. The
    returned track is the raw sum; no overflow handling is applied here.
    Any failure aborts the whole mix.
    """
    config = config or MixConfig()
    pairs = list(clips)

    def _progress(stage: str, frac: float) -> None:
        if on_progress:
            on_progress(stage, frac)

    if not pairs:
        _progress("Mixing", 1.0)
        return allocate(0)

    sources: Dict[int, DecodedAudio] = {}
    for _, decoded in pairs:
        sources.setdefault(id(decoded), decoded)

    with ThreadPoolExecutor(max_workers=config.workers) as pool:
        stereo = _map_in_order(
            pool,
            normalize_source,
            list(sources.values()),
            "Resampling sources",
            _sub_progress(on_progress, 0.0, 0.6),
        )
        normalized = dict(zip(sources.keys(), stereo))

        prepared = _map_in_order(
            pool,
            lambda pair: place_clip(pair[0], normalized[id(pair[1])]),
            pairs,
            "Placing clips",
            _sub_progress(on_progress, 0.6, 0.2),
        )

        length = total_length(prepared)
        track = allocate(length)
        logger.info(
            "Mixing %d clips from %d sources into %d frames (%.2fs)",
            len(prepared),
            len(sources),
            length,
            track.duration_s,
        )
        _progress("Mixing", 0.8)
        accumulate_partitioned(track, prepared, config.block_frames, pool)

    _progress("Mixing", 1.0)
    return track


def decode_sources(
    specs: Sequence[ClipSpec],
    decoder: Decoder,
    workers: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Dict[str, DecodedAudio]:
    """Decode every distinct `source_path` once, keyed by path in first-seen order."""
    paths = list(dict.fromkeys(spec.source_path for spec in specs))
    if not paths:
        return {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        decoded = _map_in_order(
            pool,
            decoder.decode,
            paths,
            "Decoding sources",
            on_progress or (lambda stage, frac: None),
        )
    return dict(zip(paths, decoded))


def render(
    specs: Sequence[ClipSpec],
    output_path: str | Path,
    decoder: Optional[Decoder] = None,
    encoder: Optional[Encoder] = None,
    config: Optional[MixConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RenderResult:
    """Decode, mix, finalize and encode a clip list.

    Args:
        specs: Parsed clip list.
        output_path: Destination file; its extension picks the container.
        decoder: Decode collaborator (defaults to `SoundfileDecoder`).
        encoder: Encode collaborator (defaults to `SoundfileEncoder`).
        config: Run configuration.
        on_progress: Optional callback(stage_name, fraction_complete).
    """
    config = config or MixConfig()
    decoder = decoder or SoundfileDecoder()
    encoder = encoder or SoundfileEncoder()

    def _progress(stage: str, frac: float) -> None:
        if on_progress:
            on_progress(stage, frac)

    _progress("Decoding sources", 0.0)
    sources = decode_sources(specs, decoder, config.workers, _sub_progress(on_progress, 0.0, 0.4))

    track = mix(
        [(spec, sources[spec.source_path]) for spec in specs],
        config,
        _sub_progress(on_progress, 0.4, 0.5),
    )
    peak = track.peak()

    _progress("Finalizing", 0.9)
    finished = finalize(track, config.overflow, config.peak_ceiling)

    _progress("Encoding", 0.92)
    written = encoder.encode(finished, output_path, config.quality)

    _progress("Done", 1.0)
    overflow_limit = config.peak_ceiling if config.overflow == "normalize" else 1.0
    return RenderResult(
        output_path=Path(written) if written is not None else Path(output_path),
        clip_count=len(specs),
        source_count=len(sources),
        frames=finished.length,
        duration_s=finished.duration_s,
        peak=peak,
        overflow_handled=config.overflow != "none" and peak > overflow_limit,
    )
