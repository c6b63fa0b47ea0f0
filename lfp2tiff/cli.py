#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""
Light-field to TIFF Converter

Renders light-field raw captures (.lfp, .lfr, .raw) to all-in-focus TIFF
images with the original metadata copied over.

Each capture goes through:
    lfptool raw (recipe) -> recipetool (max focus spread) -> lfptool raw (TIFF)
    -> tiffcp trials (zip, lzw, lzw + predictor), smallest kept
then exiftool copies tags from every capture in one session.

Prerequisites:
    - Requires: lfptool, recipetool, tiffcp, exiftool

Usage:
    lfp2tiff -o ~/Pictures/tiff -c ~/calibration *.lfp
"""

from __future__ import annotations

import argparse
import contextlib
import signal
import sys
import threading
from collections.abc import Iterator, Sequence
from pathlib import Path
from types import FrameType
from typing import Final

from rich.console import Console
from rich.markup import escape

from lfp2tiff import __version__
from lfp2tiff.config import RunConfig, default_jobs
from lfp2tiff.errors import Lfp2TiffError, PipelineError, ToolError
from lfp2tiff.log import configure_logging
from lfp2tiff.runner import run

__all__: Final[list[str]] = ["main", "parse_arguments"]

_TERMINATING_SIGNALS: Final[tuple[str, ...]] = ("SIGTERM", "SIGHUP")

# Rich console for diagnostics
err_console = Console(stderr=True)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    default = default_jobs()

    parser = argparse.ArgumentParser(
        prog="lfp2tiff",
        description="Convert light-field raw captures to all-in-focus TIFF images.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Environment variables:
  LFP2TIFF_JOBS          Parallel conversions (default: {default})
  LFP2TIFF_CALIBRATION   Calibration data passed to the renderer
  LFP2TIFF_LFPTOOL       Renderer executable (default: lfptool)
  LFP2TIFF_RECIPETOOL    Recipe editor executable (default: recipetool)
  LFP2TIFF_TIFFCP        TIFF recompressor executable (default: tiffcp)
  LFP2TIFF_EXIFTOOL      Metadata tool executable (default: exiftool)

Examples:
  %(prog)s *.lfp                        # Convert into the current directory
  %(prog)s -o out -c calib/ *.lfp       # With calibration data
  %(prog)s -j 2 -v IMG_0001.lfp         # Two workers, echo tool output
""",
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        type=Path,
        metavar="INPUT",
        help="Light-field raw capture files",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        metavar="N",
        help=f"Number of captures to convert in parallel (default: {default})",
    )
    parser.add_argument(
        "-o", "--out-dir",
        type=Path,
        default=Path("."),
        metavar="DIR",
        help="Destination directory, created if missing (default: current directory)",
    )
    parser.add_argument(
        "-c", "--calibration",
        type=Path,
        default=None,
        metavar="PATH",
        help="Camera calibration data forwarded to the renderer",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress warnings and progress output",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Echo external tool output and enable debug diagnostics",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def _raise_terminated(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


@contextlib.contextmanager
def _exit_on_signals() -> Iterator[None]:
    """Turn termination signals into SystemExit so cleanup code runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous: dict[signal.Signals, object] = {}
    for name in _TERMINATING_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, _raise_terminated)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


def main(argv: Sequence[str] | None = None) -> int:
    """Script entry point. Returns the process exit code."""
    args = parse_arguments(argv)

    config = RunConfig.create(
        inputs=args.inputs,
        out_dir=args.out_dir,
        jobs=args.jobs,
        calibration=args.calibration,
        quiet=args.quiet,
        verbose=args.verbose,
    )
    configure_logging(config.verbosity)

    if not config.quiet:
        err_console.print("\n[bold]Light-field to TIFF Converter[/]\n")

    try:
        with _exit_on_signals():
            run(config)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted by user[/]")
        return 130
    except Lfp2TiffError as e:
        err_console.print(f"\n[red]{type(e).__name__}:[/] {escape(str(e))}", highlight=False)
        cause = e.cause if isinstance(e, PipelineError) else e
        if isinstance(cause, ToolError) and cause.command_line:
            err_console.print(f"[dim]  command: {escape(cause.command_line)}[/]", highlight=False)
        return e.exit_code

    return 0


if __name__ == "__main__":
    sys.exit(main())
