"""Audio I/O: the decode and encode collaborators of the mixer.

- Decoding: soundfile (libsndfile) first, the ffmpeg CLI as a fallback for
  formats libsndfile cannot read (MP3 on older builds, AAC, ...).
- Encoding: soundfile, container chosen from the output extension.

Notes
-----
The mixing engine only sees the `Decoder` / `Encoder` protocols below, so
tests can swap in in-memory implementations.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

import json
import logging
import shutil
import subprocess
import numpy as np
import soundfile as sf

from .config import DEFAULT_QUALITY
from .errors import DecodeFailure, EncodeFailure
from .types import DecodedAudio, OutputTrack

logger = logging.getLogger(__name__)

# extension -> (libsndfile format, subtype, honours quality)
OUTPUT_FORMATS: Dict[str, Tuple[str, str, bool]] = {
    ".ogg": ("OGG", "VORBIS", True),
    ".wav": ("WAV", "FLOAT", False),
    ".flac": ("FLAC", "PCM_16", False),
    ".mp3": ("MP3", "MPEG_LAYER_III", True),
}


class Decoder(Protocol):
    def decode(self, path: str) -> DecodedAudio:
        ...


class Encoder(Protocol):
    def encode(self, track: OutputTrack, path: str | Path, quality: float = DEFAULT_QUALITY) -> Path:
        ...


# ================================
# Decoding
# ================================

class SoundfileDecoder:
    """Decode files to interleaved float32 samples at their native rate."""

    def __init__(self, use_ffmpeg: bool = True):
        self.use_ffmpeg = use_ffmpeg

    def decode(self, path: str) -> DecodedAudio:
        file_path = Path(path)
        if not file_path.is_file():
            raise DecodeFailure(path, FileNotFoundError(f"No such file: {file_path}"))

        logger.info("Decoding %s", file_path)
        try:
            # soundfile returns (frames, channels); row-major flattening interleaves
            data, sr = sf.read(str(file_path), always_2d=True, dtype="float32")
            return DecodedAudio(
                samples=np.ascontiguousarray(data).reshape(-1),
                sample_rate=int(sr),
                channel_count=int(data.shape[1]),
            )
        except (sf.LibsndfileError, RuntimeError) as exc:
            if not self.use_ffmpeg:
                raise DecodeFailure(path, exc) from exc
            logger.debug("soundfile could not read %s (%s); trying ffmpeg", file_path, exc)
            sf_error = exc

        if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
            raise DecodeFailure(path, sf_error)
        try:
            info = _ffprobe_stream_info(file_path)
            sr = info.get("sample_rate")
            ch = info.get("channels")
            if not sr or not ch:
                raise RuntimeError("Unable to determine audio stream parameters via ffprobe.")
            samples = _ffmpeg_decode_f32(file_path, sr, ch)
        except (subprocess.CalledProcessError, RuntimeError, ValueError) as exc:
            raise DecodeFailure(path, exc) from exc
        return DecodedAudio(samples=samples, sample_rate=sr, channel_count=ch)


def _ffprobe_stream_info(file_path: Path) -> dict:
    """Return {'sample_rate': int, 'channels': int} using ffprobe JSON output."""
    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-select_streams",
        "a:0",
        "-show_entries",
        "stream=sample_rate,channels",
        "-of",
        "json",
        str(file_path),
    ]
    res = subprocess.run(cmd, capture_output=True, text=True, check=True)
    data = json.loads(res.stdout)
    streams = data.get("streams", [])
    if not streams:
        return {"sample_rate": None, "channels": None}
    s = streams[0]
    sr = int(s.get("sample_rate", 0)) if s.get("sample_rate") else None
    ch = int(s.get("channels", 0)) if s.get("channels") else None
    return {"sample_rate": sr, "channels": ch}


def _ffmpeg_decode_f32(file_path: Path, sr: int, channels: int) -> np.ndarray:
    """Decode audio to interleaved float32 PCM using ffmpeg."""
    cmd = [
        "ffmpeg",
        "-v",
        "error",
        "-i",
        str(file_path),
        "-f",
        "f32le",
        "-acodec",
        "pcm_f32le",
        "-ac",
        str(channels),
        "-ar",
        str(sr),
        "pipe:1",
    ]
    res = subprocess.run(cmd, capture_output=True, check=True)
    raw = res.stdout
    if not raw:
        raise RuntimeError("ffmpeg returned no audio data")
    # f32le output is already interleaved by channel
    return np.frombuffer(raw, dtype="<f4").astype(np.float32)


# ================================
# Encoding
# ================================

def output_format_for(path: str | Path) -> Tuple[str, str, bool]:
    """Pick (format, subtype, uses_quality) from the output extension."""
    ext = Path(path).suffix.lower()
    if ext not in OUTPUT_FORMATS:
        supported = ", ".join(sorted(OUTPUT_FORMATS))
        raise EncodeFailure(str(path), ValueError(f"Unsupported output extension {ext!r} (use {supported})"))
    return OUTPUT_FORMATS[ext]


class SoundfileEncoder:
    """Write an `OutputTrack` through libsndfile.

    For lossy formats `quality` in [0, 1] is passed as libsndfile's
    compression level (1 - quality): 1.0 is the best quality.
    """

    def encode(self, track: OutputTrack, path: str | Path, quality: float = DEFAULT_QUALITY) -> Path:
        out_path = Path(path)
        fmt, subtype, uses_quality = output_format_for(out_path)
        if not out_path.parent.is_dir():
            raise EncodeFailure(str(out_path), FileNotFoundError(f"No such directory: {out_path.parent}"))

        compression_level: Optional[float] = None
        if uses_quality:
            compression_level = float(np.clip(1.0 - quality, 0.0, 1.0))

        # soundfile expects shape (frames, channels)
        data = np.ascontiguousarray(track.frames.T, dtype=np.float32)
        logger.info("Exporting %d frames to %s (%s/%s)", track.length, out_path, fmt, subtype)
        try:
            sf.write(
                str(out_path),
                data,
                track.sample_rate,
                subtype=subtype,
                format=fmt,
                compression_level=compression_level,
            )
        except (sf.LibsndfileError, RuntimeError, OSError, TypeError, ValueError) as exc:
            raise EncodeFailure(str(out_path), exc) from exc
        return out_path

