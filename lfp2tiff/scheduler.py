#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Bounded worker pool that runs the per-file pipeline for a batch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Final, TypeAlias

from lfp2tiff.jobs import Job

__all__: Final[list[str]] = ["BatchScheduler"]

logger = logging.getLogger(__name__)

JobCallback: TypeAlias = Callable[[Job], None]


class BatchScheduler:
    """Run ``process`` for every job on a fixed number of threads.

    Fail-fast: the first failure cancels queued jobs, calls ``on_abort``
    (used to terminate running child processes), waits for in-flight
    workers to return, and re-raises. The same happens on interrupts.
    """

    def __init__(
        self,
        process: Callable[[Job], Path],
        *,
        workers: int,
        on_abort: Callable[[], None] | None = None,
    ) -> None:
        self._process = process
        self._workers = max(1, workers)
        self._on_abort = on_abort

    @property
    def workers(self) -> int:
        return self._workers

    def run(self, jobs: Sequence[Job], *, on_complete: JobCallback | None = None) -> None:
        """Process all jobs; returns only once every job is done.

        Raises:
            Whatever the first failing job raised.
        """
        if not jobs:
            return

        logger.debug("Scheduling %d job(s) on %d worker(s)", len(jobs), self._workers)
        executor = ThreadPoolExecutor(
            max_workers=self._workers,
            thread_name_prefix="lfp2tiff-worker",
        )
        try:
            future_to_job: dict[Future[Path], Job] = {
                executor.submit(self._process, job): job for job in jobs
            }

            for future in as_completed(future_to_job):
                job = future_to_job[future]
                try:
                    future.result()
                except Exception as e:
                    logger.debug("Aborting batch after %s failed: %s", job.source.path.name, e)
                    raise
                if on_complete is not None:
                    on_complete(job)

        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            if self._on_abort is not None:
                self._on_abort()
            raise
        finally:
            executor.shutdown(wait=True)
