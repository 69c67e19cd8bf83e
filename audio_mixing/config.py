"""Mixer constants and run configuration.

`MixConfig` holds the few knobs a run exposes. It can be loaded from a JSON
object whose keys are the dataclass fields; command-line flags override it.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError

TARGET_SAMPLE_RATE = 44100
OUTPUT_CHANNELS = 2
DEFAULT_QUALITY = 0.7
# Frames per partition when reducing clips into the output track.
DEFAULT_BLOCK_FRAMES = 1 << 16
OVERFLOW_POLICIES = ("clip", "normalize", "none")


@dataclass
class MixConfig:
    """Configuration for a mixing run.

    Attributes:
        quality: Encoder quality in [0, 1] (lossy formats only).
        overflow: What to do with samples beyond full scale before encoding:
            "clip" hard-clamps to [-1, 1], "normalize" scales the whole track
            down to `peak_ceiling` when it is exceeded, "none" passes through.
        peak_ceiling: Target peak for the "normalize" policy.
        workers: Thread count for decoding and clip preparation (None = executor default).
        block_frames: Partition size for accumulation.
    """

    quality: float = DEFAULT_QUALITY
    overflow: str = "clip"
    peak_ceiling: float = 1.0
    workers: Optional[int] = None
    block_frames: int = DEFAULT_BLOCK_FRAMES

    def __post_init__(self) -> None:
        try:
            self.quality = float(self.quality)
            self.peak_ceiling = float(self.peak_ceiling)
            self.block_frames = int(self.block_frames)
            if self.workers is not None:
                self.workers = int(self.workers)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid config value: {exc}") from exc

        if not 0.0 <= self.quality <= 1.0:
            raise ConfigError(f"quality must be within [0, 1], got {self.quality}")
        if self.overflow not in OVERFLOW_POLICIES:
            raise ConfigError(
                f"overflow must be one of {', '.join(OVERFLOW_POLICIES)}, got {self.overflow!r}"
            )
        if not 0.0 < self.peak_ceiling <= 1.0:
            raise ConfigError(f"peak_ceiling must be within (0, 1], got {self.peak_ceiling}")
        if self.workers is not None and self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}")
        if self.block_frames < 1:
            raise ConfigError(f"block_frames must be >= 1, got {self.block_frames}")

    def with_overrides(self, **overrides: Any) -> "MixConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def config_from_dict(data: Dict[str, Any]) -> MixConfig:
    known = {f.name for f in fields(MixConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    try:
        return MixConfig(**data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc


def load_config(path: str | Path) -> MixConfig:
    """Load a `MixConfig` from a JSON file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return config_from_dict(data)
