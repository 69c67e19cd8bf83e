"""Timeline mixing package.

This package groups together the components that composite independently
timed audio clips into one stereo track:
- DSP utilities (resampling, mono-to-stereo, gain/pan, placement)
- Timeline accumulation and overflow handling
- The mixing engine (orchestrator) and render pipeline
- I/O collaborators (decoding, encoding) and clip-list parsing
"""

__all__ = [
    "clip_list",
    "config",
    "dsp",
    "engine",
    "errors",
    "io_utils",
    "timeline",
    "types",
]

__version__ = "0.1.0"
