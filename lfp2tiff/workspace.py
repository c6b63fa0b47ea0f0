#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Process-scoped temporary directory for intermediate artifacts."""

from __future__ import annotations

import atexit
import logging
import shutil
import tempfile
import threading
from pathlib import Path
from types import TracebackType
from typing import Final, Self

from lfp2tiff.errors import ResourceError

__all__: Final[list[str]] = ["STAGING_DIR", "Workspace"]

logger = logging.getLogger(__name__)

# Artifacts always carry a suffix, so no artifact can be named this.
STAGING_DIR: Final[str] = "inputs"


class Workspace:
    """A temporary directory that is removed exactly once.

    Use it as a context manager around the whole run. The directory is also
    registered with ``atexit`` so it goes away even if the interpreter exits
    without unwinding through ``__exit__``.
    """

    def __init__(self, *, prefix: str = "lfp2tiff-", parent: Path | None = None) -> None:
        self._prefix = prefix
        self._parent = parent
        self._path: Path | None = None
        self._released = False
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        if self._path is None or self._released:
            msg = "workspace is not acquired"
            raise ResourceError(msg)
        return self._path

    @property
    def active(self) -> bool:
        return self._path is not None and not self._released

    def acquire(self) -> Path:
        """Create the directory.

        Raises:
            ResourceError: If already acquired or the directory cannot be made.
        """
        with self._lock:
            if self._path is not None:
                msg = "workspace can only be acquired once"
                raise ResourceError(msg)
            try:
                path = Path(tempfile.mkdtemp(prefix=self._prefix, dir=self._parent))
            except OSError as e:
                raise ResourceError(f"Cannot create temporary directory: {e}") from e
            self._path = path

        atexit.register(self.release)
        logger.debug("Workspace: %s", path)
        return path

    def release(self) -> None:
        """Recursively delete the directory. Later calls do nothing.

        Raises:
            ResourceError: If the directory exists but cannot be removed.
        """
        with self._lock:
            if self._path is None or self._released:
                return
            self._released = True
            path = self._path

        atexit.unregister(self.release)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ResourceError(f"Cannot remove temporary directory {path}: {e}") from e
        logger.debug("Removed workspace %s", path)

    def staged_input(self, output_stem: str, suffix: str) -> Path:
        """Path for a job's staged input, kept apart from every artifact.

        Renderer output lands at the top level, so an input whose own suffix
        is ``.json`` or ``.tiff`` must never share that directory.
        """
        staging = self.path / STAGING_DIR
        staging.mkdir(exist_ok=True)
        return staging / f"{output_stem}{suffix}"

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.release()
        except ResourceError as e:
            if exc is None:
                raise
            # Keep the original failure as the one reported.
            logger.error("%s", e)
