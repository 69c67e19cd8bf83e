"""Shared test fixtures: synthetic tones and in-memory decode/encode collaborators."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import pytest

from audio_mixing.errors import DecodeFailure
from audio_mixing.types import DecodedAudio, OutputTrack


def tone(freq: float, sr: int, dur: float, amp: float = 0.5) -> np.ndarray:
    t = np.arange(int(round(sr * dur))) / sr
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def interleave(*channels: np.ndarray) -> np.ndarray:
    return np.stack(channels, axis=1).reshape(-1).astype(np.float32)


def mono_clip(freq: float, sr: int, dur: float, amp: float = 0.5) -> DecodedAudio:
    return DecodedAudio(samples=tone(freq, sr, dur, amp), sample_rate=sr, channel_count=1)


def stereo_clip(freq_l: float, freq_r: float, sr: int, dur: float, amp: float = 0.5) -> DecodedAudio:
    return DecodedAudio(
        samples=interleave(tone(freq_l, sr, dur, amp), tone(freq_r, sr, dur, amp)),
        sample_rate=sr,
        channel_count=2,
    )


class FakeDecoder:
    """Serves pre-built `DecodedAudio` by path and records each call."""

    def __init__(self, sources: Dict[str, DecodedAudio]):
        self.sources = sources
        self.calls: List[str] = []

    def decode(self, path: str) -> DecodedAudio:
        self.calls.append(path)
        if path not in self.sources:
            raise DecodeFailure(path, FileNotFoundError(path))
        return self.sources[path]


class FakeEncoder:
    """Keeps encoded tracks in memory instead of writing files."""

    def __init__(self):
        self.written: List[Tuple[Path, OutputTrack, float]] = []

    def encode(self, track: OutputTrack, path, quality: float = 0.7) -> Path:
        self.written.append((Path(path), track, quality))
        return Path(path)


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()
