#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""
One complete conversion run.

    validate -> plan + collision check -> acquire workspace
      -> N x pipeline (bounded pool) -> barrier
      -> metadata merge -> deliver -> release workspace

Nothing is delivered unless every input converts. The workspace is
released however the run ends.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Final

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from lfp2tiff.collisions import detect_collisions
from lfp2tiff.compression import CompressionSelector
from lfp2tiff.config import RunConfig
from lfp2tiff.errors import UsageError
from lfp2tiff.finalize import OUTPUT_SUFFIX, deliver, final_stems, prepare_destination
from lfp2tiff.jobs import Job, plan_jobs
from lfp2tiff.metadata import merge_metadata
from lfp2tiff.pipeline import FilePipeline
from lfp2tiff.scheduler import BatchScheduler
from lfp2tiff.tools import ProcessRunner, ToolGateway
from lfp2tiff.workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__: Final[list[str]] = ["build_gateway", "run"]

logger = logging.getLogger(__name__)


def build_gateway(config: RunConfig) -> ToolGateway:
    """Gateway for the real external tools, checked to be installed."""
    gateway = ToolGateway(
        tools=config.tools,
        calibration=config.calibration,
        runner=ProcessRunner(verbose=config.verbose),
    )
    gateway.verify()
    return gateway


def _validate(config: RunConfig) -> None:
    if not config.inputs:
        raise UsageError("No input files given")
    if config.calibration is not None and not config.calibration.exists():
        raise UsageError(f"Calibration path does not exist: {config.calibration}")
    if config.out_dir.exists() and not config.out_dir.is_dir():
        raise UsageError(f"Destination path is not a directory: {config.out_dir}")


def _summary_table(jobs: Sequence[Job], delivered: Sequence[Path]) -> Table:
    table = Table(title="Conversion Results")
    table.add_column("Input", style="cyan")
    table.add_column("Output", style="green")
    table.add_column("Compression")
    table.add_column("Size", justify="right")
    for job, output in zip(jobs, delivered, strict=True):
        size_kib = output.stat().st_size / 1024
        table.add_row(job.source.path.name, output.name, job.codec or "-", f"{size_kib:,.0f} KiB")
    return table


def run(
    config: RunConfig,
    *,
    gateway: ToolGateway | None = None,
    console: Console | None = None,
) -> list[Path]:
    """Convert every input in ``config`` and return the delivered paths.

    Raises:
        UsageError: Bad inputs or destination; nothing was started.
        CollisionError: Two inputs share an output name; nothing was started.
        ToolError: A required tool is missing, or metadata merge failed.
        PipelineError: An input failed to convert; nothing was delivered.
        ResourceError: The workspace could not be created or removed.
    """
    if console is None:
        console = Console(quiet=config.quiet)

    _validate(config)
    jobs = plan_jobs(config.inputs)
    detect_collisions(jobs)

    if gateway is None:
        gateway = build_gateway(config)
    dest = prepare_destination(config.out_dir)

    if config.calibration is None:
        logger.warning(
            "No calibration data given (--calibration); the renderer will use "
            "whatever each capture embeds"
        )

    console.print(f"\n[bold blue]Converting {len(jobs)} capture(s)[/]")
    console.print(f"  Workers: {config.jobs}\n")

    with Workspace() as workspace:
        pipeline = FilePipeline(
            gateway=gateway,
            workspace=workspace,
            selector=CompressionSelector(gateway, config.codecs),
        )
        scheduler = BatchScheduler(
            pipeline.process,
            workers=config.jobs,
            on_abort=gateway.cancel,
        )
        names = final_stems(jobs)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=config.quiet,
        ) as progress:
            task = progress.add_task("Rendering...", total=len(jobs))

            def _completed(job: Job) -> None:
                progress.advance(task)
                progress.console.print(
                    f"[green]✓[/] {job.source.path.name} → {names[job.source.path]}{OUTPUT_SUFFIX}"
                )

            scheduler.run(jobs, on_complete=_completed)

        merge_metadata(jobs, gateway)
        delivered = deliver(jobs, dest)

    console.print(_summary_table(jobs, delivered))
    console.print(f"\n[bold green]Done![/] {len(delivered)} image(s) written to {dest}.")
    return delivered
