#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Pre-flight check that every input gets its own output name."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Final

from lfp2tiff.errors import CollisionError
from lfp2tiff.jobs import Job

__all__: Final[list[str]] = ["detect_collisions"]

logger = logging.getLogger(__name__)


def detect_collisions(jobs: Sequence[Job]) -> None:
    """Fail if any two jobs share an output stem.

    Pairwise comparison is fine for batches of a few hundred files.

    Raises:
        CollisionError: Naming the first offending pair found.
    """
    for i, first in enumerate(jobs):
        for second in jobs[i + 1 :]:
            if first.output_stem == second.output_stem:
                raise CollisionError(
                    first.source.path, second.source.path, first.output_stem
                )

    logger.debug("No output name collisions among %d input(s)", len(jobs))
