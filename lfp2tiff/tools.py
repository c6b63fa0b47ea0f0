#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""
Thin invocation layer for the external tools.

The light-field renderer (lfptool), the recipe editor (recipetool), libtiff's
tiffcp and exiftool do all the real work. This module builds their argument
lists, runs them, checks the exit status and turns failures into ToolError.

Child processes are tracked so an aborted run can terminate them. Once
cancelled, the runner refuses to start anything new.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import shutil
import subprocess
import sys
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final, TypeAlias

import exiftool
from exiftool.exceptions import ExifToolException

from lfp2tiff.config import ToolPaths
from lfp2tiff.errors import ToolError

__all__: Final[list[str]] = [
    "ProcessRunner",
    "RenderMode",
    "ToolGateway",
]

logger = logging.getLogger(__name__)

# Type aliases
CommandResult: TypeAlias = subprocess.CompletedProcess[str]
Argument: TypeAlias = str | os.PathLike[str]


class RenderMode(StrEnum):
    """What the renderer is asked to produce."""

    RECIPE = "recipe"
    IMAGE = "image"

    @property
    def suffix(self) -> str:
        """Extension of the artifact the renderer writes in this mode."""
        return ".json" if self is RenderMode.RECIPE else ".tiff"


# ═══════════════════════════════════════════════════════════════════
#                        PROCESS RUNNER
# ═══════════════════════════════════════════════════════════════════


@dataclass(slots=True, kw_only=True)
class ProcessRunner:
    """Run external commands and raise ToolError when they fail."""

    verbose: bool = False
    _live: set[subprocess.Popen[str]] = field(init=False, repr=False, default_factory=set)
    _lock: threading.Lock = field(init=False, repr=False, default_factory=threading.Lock)
    _cancelled: bool = field(init=False, repr=False, default=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def run(self, cmd: Sequence[Argument], /, *, cwd: Path | None = None) -> CommandResult:
        """Execute ``cmd`` to completion and return its captured output.

        Raises:
            ToolError: If the executable is missing, the run was cancelled,
                or the command exits non-zero.
        """
        argv = [os.fspath(part) for part in cmd]
        logger.debug("Running: %s", shlex.join(argv))

        with self._lock:
            if self._cancelled:
                raise ToolError("Run cancelled before starting command", cmd=argv)
            try:
                process = subprocess.Popen(
                    argv,
                    cwd=cwd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                )
            except OSError as e:
                raise ToolError(f"Cannot run {argv[0]}: {e.strerror or e}", cmd=argv) from e
            self._live.add(process)

        try:
            stdout, stderr = process.communicate()
        finally:
            with self._lock:
                self._live.discard(process)

        result = subprocess.CompletedProcess(argv, process.returncode, stdout, stderr)

        if self.verbose:
            if result.stdout:
                sys.stdout.write(result.stdout)
                sys.stdout.flush()
            if result.stderr:
                sys.stderr.write(result.stderr)
                sys.stderr.flush()

        if result.returncode != 0:
            raise ToolError(
                f"{Path(argv[0]).name} exited with status {result.returncode}",
                cmd=argv,
                returncode=result.returncode,
                output=result.stderr or result.stdout,
            )

        return result

    def terminate_all(self) -> None:
        """Stop accepting commands and terminate every running child."""
        with self._lock:
            self._cancelled = True
            live = list(self._live)

        for process in live:
            logger.debug("Terminating pid %d", process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.terminate()


# ═══════════════════════════════════════════════════════════════════
#                        TOOL GATEWAY
# ═══════════════════════════════════════════════════════════════════


@dataclass(slots=True, kw_only=True)
class ToolGateway:
    """The renderer, recipe editor, TIFF recompressor and metadata tool."""

    tools: ToolPaths = field(default_factory=ToolPaths)
    calibration: Path | None = None
    runner: ProcessRunner = field(default_factory=ProcessRunner)

    def verify(self) -> None:
        """Check every configured executable can be found.

        Raises:
            ToolError: Naming the first missing tool.
        """
        for name, executable in self.tools.as_dict().items():
            if shutil.which(executable) is None:
                raise ToolError(f"{name} not found: {executable}")
            logger.debug("Found %s: %s", name, shutil.which(executable))

    def cancel(self) -> None:
        """Best-effort stop of every tool currently running."""
        self.runner.terminate_all()

    def render(
        self,
        raw: Path,
        out_dir: Path,
        *,
        mode: RenderMode,
        recipe: Path | None = None,
        threads: int | None = None,
    ) -> Path:
        """Render ``raw`` into ``out_dir`` and return the produced artifact.

        Raises:
            ToolError: If the renderer fails or writes nothing.
        """
        cmd: list[Argument] = [
            self.tools.lfptool,
            "raw",
            "--lfp-in", raw,
            "--dir-out", out_dir,
        ]
        if mode is RenderMode.RECIPE:
            cmd.append("--recipe-out")
        else:
            if recipe is not None:
                cmd.extend(["--recipe-in", recipe])
            cmd.extend(["--image-out", "--imagerep", "tiff"])
        if threads is not None:
            cmd.extend(["--threads", str(threads)])
        if self.calibration is not None:
            cmd.extend(["--calibration-in", self.calibration])

        self.runner.run(cmd)

        artifact = out_dir / f"{raw.stem}{mode.suffix}"
        if not artifact.exists():
            raise ToolError(
                f"{self.tools.lfptool} did not produce {artifact.name}",
                cmd=[os.fspath(part) for part in cmd],
            )
        return artifact

    def edit_recipe(self, recipe: Path, focus_spread: float) -> None:
        """Set the recipe's focus spread in place.

        Raises:
            ToolError: If the recipe is missing or the editor rejects it.
        """
        if not recipe.is_file():
            raise ToolError(f"Recipe not found: {recipe}")
        self.runner.run([
            self.tools.recipetool,
            "view",
            "--focus-spread", repr(focus_spread),
            "-i", recipe,
        ])

    def compress(self, src: Path, dst: Path, codec: str) -> None:
        """Losslessly re-encode ``src`` to ``dst`` with a libtiff scheme."""
        self.runner.run([self.tools.tiffcp, "-c", codec, src, dst])

    def merge_metadata(self, pairs: Iterable[tuple[Path, Path]]) -> None:
        """Copy all tags from each source onto its target in one exiftool session.

        Raises:
            ToolError: If a file is unreadable or exiftool fails.
        """
        pairs = list(pairs)
        for source, target in pairs:
            for path in (source, target):
                if not os.access(path, os.R_OK):
                    raise ToolError(f"Cannot read {path} for metadata copy")
        if not pairs:
            return

        try:
            with exiftool.ExifToolHelper(
                executable=self.tools.exiftool,
                common_args=[],
            ) as et:
                for source, target in pairs:
                    output = et.execute(
                        "-tagsFromFile", str(source),
                        "-all:all",
                        "-overwrite_original",
                        str(target),
                    )
                    logger.debug("exiftool %s -> %s: %s", source.name, target.name, output.strip())
        except (ExifToolException, OSError) as e:
            raise ToolError(f"exiftool failed: {e}", cmd=[self.tools.exiftool]) from e
