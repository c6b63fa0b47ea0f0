#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""
Copy original metadata onto finished outputs.

Runs once after every pipeline has completed. All tags are copied in a
single exiftool session, then file timestamps are synced from each source.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Final

from lfp2tiff.jobs import Job

if TYPE_CHECKING:
    from lfp2tiff.tools import ToolGateway

__all__: Final[list[str]] = ["merge_metadata", "sync_timestamp"]

logger = logging.getLogger(__name__)


def sync_timestamp(source: Path, target: Path) -> None:
    """Copy access and modification times from ``source`` to ``target``."""
    stat = source.stat()
    os.utime(target, (stat.st_atime, stat.st_mtime))


def merge_metadata(jobs: Sequence[Job], gateway: ToolGateway) -> None:
    """Copy each job's source tags and timestamps onto its output.

    Raises:
        ValueError: If any job has not finished.
        ToolError: If exiftool fails for any pair.
    """
    pairs: list[tuple[Path, Path]] = []
    for job in jobs:
        if not job.done or job.output is None:
            msg = f"{job.source.path.name} is {job.state}, metadata merge needs every job done"
            raise ValueError(msg)
        pairs.append((job.source.path, job.output))

    if not pairs:
        return

    logger.info("Copying metadata onto %d image(s)", len(pairs))
    gateway.merge_metadata(pairs)

    for source, target in pairs:
        sync_timestamp(source, target)
