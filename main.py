"""Timeline Mixer CLI (Rich console)

App Flow
--------
1) Parse arguments and load the optional JSON config.
2) Read the clip list (headerless CSV: start_ms, volume, pan, path).
3) Decode each source once, resample to 44.1 kHz stereo, apply gain/pan.
4) Sum every clip onto the timeline (with progress bar).
5) Handle overflow and encode the output (Ogg/Vorbis by default).

Exit code is 0 on success and 1 on any failure. Heavy lifting resides in
`audio_mixing/`.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import argparse
import logging
import sys
# Dependency preflight: fail fast with clear guidance if a package is missing.
try:
    import numpy as np  # noqa: F401
except ImportError:
    print("Missing required dependency: numpy. Install dependencies with:")
    print("  pip install -e .")
    sys.exit(1)
try:
    import scipy  # noqa: F401
except ImportError:
    print("Missing required dependency: scipy. Install dependencies with:")
    print("  pip install -e .")
    sys.exit(1)
try:
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.panel import Panel
    from rich.table import Table
    from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
except ImportError:
    print("Missing required dependency: rich. Install dependencies with:")
    print("  pip install -e .")
    sys.exit(1)
try:
    import soundfile as sf  # noqa: F401
except ImportError:
    print("Missing required dependency: soundfile. Install dependencies with:")
    print("  pip install -e .")
    sys.exit(1)

from audio_mixing.clip_list import load_clip_list
from audio_mixing.config import DEFAULT_QUALITY, OVERFLOW_POLICIES, MixConfig, load_config
from audio_mixing.engine import RenderResult, render
from audio_mixing.errors import ConfigError, MixError

console = Console(stderr=True)
logger = logging.getLogger("audio_mixing")


# ====================================
# Setup helpers
# ====================================

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="timeline-mix",
        description="Mix timed audio clips from a CSV clip list into one stereo file.",
    )
    p.add_argument("-i", "--input", type=Path, required=True, help="Clip list CSV (start_ms, volume, pan, path)")
    p.add_argument("-o", "--output", type=Path, required=True, help="Output file (.ogg, .wav, .flac, .mp3)")
    p.add_argument(
        "-q",
        "--quality",
        type=float,
        default=None,
        help=f"Output quality for lossy formats, 0..1 (default: {DEFAULT_QUALITY})",
    )
    p.add_argument("--config", type=Path, default=None, help="JSON config file")
    p.add_argument("--workers", type=int, default=None, help="Worker threads for decoding/resampling")
    p.add_argument("--overflow", choices=OVERFLOW_POLICIES, default=None, help="Overflow policy (default: clip)")
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    return p


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def resolve_config(args: argparse.Namespace) -> MixConfig:
    base = load_config(args.config) if args.config else MixConfig()
    try:
        return base.with_overrides(quality=args.quality, workers=args.workers, overflow=args.overflow)
    except (TypeError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc


# ====================================
# Reporting
# ====================================

def show_summary(result: RenderResult, config: MixConfig) -> None:
    t = Table(title="Mix Summary")
    t.add_column("Item", style="cyan")
    t.add_column("Value", justify="right")
    t.add_row("Clips", str(result.clip_count))
    t.add_row("Sources", str(result.source_count))
    t.add_row("Frames", str(result.frames))
    t.add_row("Duration (s)", f"{result.duration_s:.3f}")
    t.add_row("Peak", f"{result.peak:.3f}")
    t.add_row("Overflow", f"{config.overflow}{' (applied)' if result.overflow_handled else ''}")
    t.add_row("Quality", f"{config.quality:.2f}")
    console.print(t)
    console.print(Panel(f"Saved mix to\n[bold green]{result.output_path}[/bold green]", title="Done", border_style="green"))


def run(args: argparse.Namespace) -> RenderResult:
    config = resolve_config(args)
    logger.info("Input Path: %s", args.input)
    logger.info("Output Path: %s", args.output)
    logger.info("Output Quality: %s", config.quality)

    specs = load_clip_list(args.input)
    logger.info("Loaded %d clips", len(specs))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=1.0)

        def on_progress(stage: str, frac: float) -> None:
            progress.update(task, description=stage, completed=frac)

        result = render(specs, args.output, config=config, on_progress=on_progress)

    show_summary(result, config)
    return result


# ====================================
# Entry point
# ====================================

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        run(args)
    except MixError as e:
        logger.debug("Mix failed", exc_info=True)
        console.print(Panel(f"{e}", title=type(e).__name__, border_style="red"))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
