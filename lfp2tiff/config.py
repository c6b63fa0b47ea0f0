#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Run configuration.

Everything a run needs is collected once into an immutable ``RunConfig``
and handed to each component explicitly. Values not given on the command
line fall back to environment variables, then to built-in defaults.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum, auto
from pathlib import Path
from typing import Final, Self

__all__: Final[list[str]] = [
    "DEFAULT_CODECS",
    "RunConfig",
    "ToolPaths",
    "Verbosity",
    "default_jobs",
]

# Ordered from worst to best typical result; ties go to the later entry.
DEFAULT_CODECS: Final[tuple[str, ...]] = ("zip", "lzw", "lzw:2")


class Verbosity(StrEnum):
    """How much the run reports."""

    QUIET = auto()
    NORMAL = auto()
    VERBOSE = auto()


def _get_cpu_count() -> int:
    """Get CPU count with fallback."""
    return os.cpu_count() or 1


def default_jobs() -> int:
    """Leave one core free for the renderer's own threads and the UI."""
    return max(1, _get_cpu_count() - 1)


def _get_env_path(var_name: str, /) -> Path | None:
    """Get a Path from environment variable, or None if not set/empty."""
    value = os.environ.get(var_name, "").strip()
    return Path(value) if value else None


def _get_env_int(var_name: str, /) -> int | None:
    """Get an int from environment variable, or None if invalid."""
    value = os.environ.get(var_name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _get_env_str(var_name: str, default: str, /) -> str:
    return os.environ.get(var_name, "").strip() or default


@dataclass(frozen=True, slots=True, kw_only=True)
class ToolPaths:
    """Executables for the external collaborators."""

    lfptool: str = "lfptool"
    recipetool: str = "recipetool"
    tiffcp: str = "tiffcp"
    exiftool: str = "exiftool"

    @classmethod
    def from_env(cls) -> Self:
        """Resolve each executable from ``LFP2TIFF_<TOOL>`` if set."""
        defaults = cls()
        return cls(
            lfptool=_get_env_str("LFP2TIFF_LFPTOOL", defaults.lfptool),
            recipetool=_get_env_str("LFP2TIFF_RECIPETOOL", defaults.recipetool),
            tiffcp=_get_env_str("LFP2TIFF_TIFFCP", defaults.tiffcp),
            exiftool=_get_env_str("LFP2TIFF_EXIFTOOL", defaults.exiftool),
        )

    def as_dict(self) -> dict[str, str]:
        return {
            "lfptool": self.lfptool,
            "recipetool": self.recipetool,
            "tiffcp": self.tiffcp,
            "exiftool": self.exiftool,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class RunConfig:
    """Immutable settings for one conversion run."""

    inputs: tuple[Path, ...]
    out_dir: Path
    jobs: int
    calibration: Path | None = None
    verbosity: Verbosity = Verbosity.NORMAL
    tools: ToolPaths = field(default_factory=ToolPaths)
    codecs: tuple[str, ...] = DEFAULT_CODECS

    def __post_init__(self) -> None:
        """Normalize paths and clamp the worker count."""
        # A zero or negative request still gets one worker.
        if self.jobs < 1:
            object.__setattr__(self, "jobs", 1)
        if not self.codecs:
            msg = "at least one compression codec is required"
            raise ValueError(msg)
        object.__setattr__(
            self, "inputs", tuple(Path(p).absolute() for p in self.inputs)
        )
        if not self.out_dir.is_absolute():
            object.__setattr__(self, "out_dir", self.out_dir.absolute())
        if self.calibration is not None and not self.calibration.is_absolute():
            object.__setattr__(self, "calibration", self.calibration.absolute())

    @property
    def quiet(self) -> bool:
        return self.verbosity is Verbosity.QUIET

    @property
    def verbose(self) -> bool:
        return self.verbosity is Verbosity.VERBOSE

    @classmethod
    def create(
        cls,
        *,
        inputs: Sequence[Path],
        out_dir: Path | None = None,
        jobs: int | None = None,
        calibration: Path | None = None,
        quiet: bool = False,
        verbose: bool = False,
    ) -> Self:
        """Create config from arguments with environment variable fallbacks."""
        if verbose:
            verbosity = Verbosity.VERBOSE
        elif quiet:
            verbosity = Verbosity.QUIET
        else:
            verbosity = Verbosity.NORMAL

        if jobs is None:
            jobs = _get_env_int("LFP2TIFF_JOBS")
        if jobs is None:
            jobs = default_jobs()

        return cls(
            inputs=tuple(inputs),
            out_dir=out_dir or Path.cwd(),
            jobs=jobs,
            calibration=calibration or _get_env_path("LFP2TIFF_CALIBRATION"),
            verbosity=verbosity,
            tools=ToolPaths.from_env(),
        )
