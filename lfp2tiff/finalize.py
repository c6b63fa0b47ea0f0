#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Name the finished images and move them to the destination directory."""

from __future__ import annotations

import logging
import shutil
from collections import Counter
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from lfp2tiff.errors import UsageError
from lfp2tiff.jobs import Job

__all__: Final[list[str]] = [
    "OUTPUT_SUFFIX",
    "deliver",
    "final_stems",
    "prepare_destination",
]

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX: Final[str] = ".tiff"


def prepare_destination(dest: Path) -> Path:
    """Create ``dest`` if needed.

    Raises:
        UsageError: If ``dest`` exists and is not a directory, or cannot be made.
    """
    if dest.exists():
        if not dest.is_dir():
            raise UsageError(f"Destination path is not a directory: {dest}")
        return dest
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise UsageError(f"Cannot create destination directory {dest}: {e}") from e
    logger.info("Created destination directory: %s", dest)
    return dest


def final_stems(jobs: Sequence[Job]) -> dict[Path, str]:
    """Map each input path to the stem its output is delivered under.

    A renamed job gets its bare stem back unless another job in the batch
    has the same bare stem or already uses it as an output stem.
    """
    stem_counts = Counter(job.names.stem for job in jobs)
    output_stems = Counter(job.output_stem for job in jobs)

    result: dict[Path, str] = {}
    for job in jobs:
        stem = job.names.stem
        if job.names.renamed and stem_counts[stem] == 1 and output_stems[stem] == 0:
            result[job.source.path] = stem
        else:
            result[job.source.path] = job.output_stem
    return result


def deliver(jobs: Sequence[Job], dest: Path) -> list[Path]:
    """Move every job's output into ``dest`` under its final name."""
    dest = prepare_destination(dest)
    names = final_stems(jobs)
    delivered: list[Path] = []

    for job in jobs:
        if job.output is None:
            msg = f"{job.source.path.name} has no output to deliver"
            raise ValueError(msg)
        target = dest / f"{names[job.source.path]}{OUTPUT_SUFFIX}"
        if target.exists():
            logger.warning("Replacing existing %s", target)
        shutil.move(job.output, target)
        job.output = target
        delivered.append(target)

    return delivered
