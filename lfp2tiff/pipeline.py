#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""
Per-file conversion pipeline.

Drives one capture through the external tools:

Phase 0: stage the capture in the workspace staging directory under its
         output stem
Phase 1: render a recipe (recipe-only mode)
Phase 2: set the recipe's focus spread to the largest finite double, which
         makes the renderer composite an all-in-focus image
Phase 3: render the final TIFF from the capture plus the edited recipe
Phase 4: keep the smallest lossless re-encoding of that TIFF
"""

from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Final

from lfp2tiff.errors import PipelineError, ToolError
from lfp2tiff.jobs import Job, JobState
from lfp2tiff.tools import RenderMode

if TYPE_CHECKING:
    from lfp2tiff.compression import CompressionSelector
    from lfp2tiff.tools import ToolGateway
    from lfp2tiff.workspace import Workspace

__all__: Final[list[str]] = ["FOCUS_SPREAD", "RENDER_THREADS", "FilePipeline"]

logger = logging.getLogger(__name__)

FOCUS_SPREAD: Final[float] = sys.float_info.max
# Renderer threads per image; batch parallelism is the scheduler's job.
RENDER_THREADS: Final[int] = 2


class FilePipeline:
    """Convert a single job's input into a compressed TIFF in the workspace."""

    def __init__(
        self,
        *,
        gateway: ToolGateway,
        workspace: Workspace,
        selector: CompressionSelector,
    ) -> None:
        self._gateway = gateway
        self._workspace = workspace
        self._selector = selector

    def stage_input(self, job: Job) -> Path:
        """Expose the input under its output stem so artifacts never collide."""
        suffix = f".{job.names.extension}" if job.names.extension else ""
        staged = self._workspace.staged_input(job.output_stem, suffix)
        try:
            staged.symlink_to(job.source.path)
        except OSError:
            logger.debug("Symlink failed for %s, copying instead", job.source.path.name)
            shutil.copy2(job.source.path, staged)
        return staged

    def process(self, job: Job) -> Path:
        """Run every phase for ``job`` and return the final image path.

        Raises:
            PipelineError: Wrapping the tool or filesystem error of the
                phase that failed. The job is left ``FAILED``.
        """
        gateway = self._gateway
        out_dir = self._workspace.path
        stage = "staging"

        try:
            staged = self.stage_input(job)

            stage = "recipe render"
            recipe = gateway.render(staged, out_dir, mode=RenderMode.RECIPE)
            job.advance(JobState.RECIPE_CREATED)

            stage = "recipe edit"
            gateway.edit_recipe(recipe, FOCUS_SPREAD)
            job.advance(JobState.RECIPE_MODIFIED)

            stage = "image render"
            image = gateway.render(
                staged,
                out_dir,
                mode=RenderMode.IMAGE,
                recipe=recipe,
                threads=RENDER_THREADS,
            )
            job.advance(JobState.RENDERED)

            stage = "compression"
            winner = self._selector.select(image)
            job.codec = winner.codec
            job.advance(JobState.COMPRESSED)

        except (ToolError, OSError) as e:
            job.fail(e)
            raise PipelineError(job.source.path, stage, e) from e
        except BaseException as e:
            job.fail(e)
            raise

        job.output = image
        job.advance(JobState.DONE)
        logger.debug("%s -> %s (%s)", job.source.path.name, image.name, winner.codec)
        return image
