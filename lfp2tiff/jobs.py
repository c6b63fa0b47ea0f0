#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Input files, their derived output names, and per-file job state."""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final, Self

from lfp2tiff.errors import UsageError

__all__: Final[list[str]] = [
    "InputFile",
    "Job",
    "JobState",
    "Names",
    "derive_names",
    "plan_jobs",
]


# ═══════════════════════════════════════════════════════════════════
#                        DATA MODELS
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class InputFile:
    """Immutable absolute path of one raw capture."""

    path: Path

    def __post_init__(self) -> None:
        if not self.path.is_absolute():
            object.__setattr__(self, "path", self.path.absolute())

    @property
    def stem(self) -> str:
        return self.path.stem

    @property
    def extension(self) -> str:
        """Last suffix without the leading dot, case preserved."""
        return self.path.suffix.removeprefix(".")

    @property
    def parent_dir(self) -> Path:
        return self.path.parent


@dataclass(frozen=True, slots=True, kw_only=True)
class Names:
    """Names derived once for an input file."""

    stem: str
    extension: str
    output_stem: str

    @property
    def renamed(self) -> bool:
        """True if the output stem carries the extension suffix."""
        return self.output_stem != self.stem


def derive_names(input_file: InputFile, siblings: Iterable[str]) -> Names:
    """Compute the output stem for ``input_file``.

    ``siblings`` are the entry names in the input's directory. If any other
    entry shares the stem under a different extension, the extension is
    appended to the stem (``shot.lfp`` next to ``shot.tiff`` becomes
    ``shot_lfp``), otherwise the bare stem is used.
    """
    stem = input_file.stem
    extension = input_file.extension
    if not extension:
        return Names(stem=stem, extension=extension, output_stem=stem)

    for name in siblings:
        sibling = Path(name)
        if sibling.stem == stem and sibling.suffix.removeprefix(".") != extension:
            return Names(
                stem=stem,
                extension=extension,
                output_stem=f"{stem}_{extension}",
            )

    return Names(stem=stem, extension=extension, output_stem=stem)


# ═══════════════════════════════════════════════════════════════════
#                        JOB STATE
# ═══════════════════════════════════════════════════════════════════


class JobState(StrEnum):
    """Lifecycle of one input through the pipeline."""

    PENDING = "pending"
    RECIPE_CREATED = "recipe-created"
    RECIPE_MODIFIED = "recipe-modified"
    RENDERED = "rendered"
    COMPRESSED = "compressed"
    DONE = "done"
    FAILED = "failed"


_NEXT_STATE: Final[dict[JobState, JobState]] = {
    JobState.PENDING: JobState.RECIPE_CREATED,
    JobState.RECIPE_CREATED: JobState.RECIPE_MODIFIED,
    JobState.RECIPE_MODIFIED: JobState.RENDERED,
    JobState.RENDERED: JobState.COMPRESSED,
    JobState.COMPRESSED: JobState.DONE,
}


@dataclass(slots=True, kw_only=True)
class Job:
    """One input file and everything the pipeline learns about it."""

    source: InputFile
    names: Names
    state: JobState = JobState.PENDING
    output: Path | None = None
    codec: str | None = None
    error: BaseException | None = field(default=None, repr=False)

    @classmethod
    def create(cls, path: Path, siblings: Iterable[str]) -> Self:
        source = InputFile(path)
        return cls(source=source, names=derive_names(source, siblings))

    @property
    def output_stem(self) -> str:
        return self.names.output_stem

    @property
    def done(self) -> bool:
        return self.state is JobState.DONE

    def advance(self, state: JobState) -> None:
        """Move to ``state``, which must be the next step of the lifecycle."""
        expected = _NEXT_STATE.get(self.state)
        if state is not expected:
            msg = f"{self.source.path.name}: cannot go from {self.state} to {state}"
            raise ValueError(msg)
        self.state = state

    def fail(self, error: BaseException) -> None:
        if self.state in (JobState.DONE, JobState.FAILED):
            msg = f"{self.source.path.name}: cannot fail a job that is {self.state}"
            raise ValueError(msg)
        self.state = JobState.FAILED
        self.error = error


# ═══════════════════════════════════════════════════════════════════
#                        PLANNING
# ═══════════════════════════════════════════════════════════════════


def _list_directory(directory: Path) -> tuple[str, ...]:
    try:
        return tuple(os.listdir(directory))
    except OSError as e:
        raise UsageError(f"Cannot read input directory {directory}: {e}") from e


def plan_jobs(paths: Sequence[Path]) -> list[Job]:
    """Build one job per input path.

    Each directory is listed once no matter how many inputs it holds.

    Raises:
        UsageError: If an input is missing or its directory is unreadable.
    """
    listings: dict[Path, tuple[str, ...]] = {}
    jobs: list[Job] = []

    for path in paths:
        path = path.absolute()
        if not path.exists():
            raise UsageError(f"Input file does not exist: {path}")
        if path.is_dir():
            raise UsageError(f"Input path is a directory: {path}")

        parent = path.parent
        if parent not in listings:
            listings[parent] = _list_directory(parent)

        siblings = (name for name in listings[parent] if name != path.name)
        jobs.append(Job.create(path, siblings))

    return jobs
