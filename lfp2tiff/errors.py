#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Exception hierarchy shared by every stage of a conversion run."""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from pathlib import Path
from typing import ClassVar, Final

__all__: Final[list[str]] = [
    "CollisionError",
    "Lfp2TiffError",
    "PipelineError",
    "ResourceError",
    "ToolError",
    "UsageError",
]


class Lfp2TiffError(Exception):
    """Base class for all errors reported to the user."""

    exit_code: ClassVar[int] = 1


class UsageError(Lfp2TiffError):
    """Raised for bad command-line input. No work has been performed."""

    exit_code: ClassVar[int] = 2


class CollisionError(Lfp2TiffError):
    """Raised when two inputs would produce the same output name."""

    __slots__ = ("first", "second", "output_stem")

    def __init__(self, first: Path, second: Path, output_stem: str) -> None:
        super().__init__(
            f"{first} and {second} would both be written as '{output_stem}'"
        )
        self.first = first
        self.second = second
        self.output_stem = output_stem


class ResourceError(Lfp2TiffError):
    """Raised when the temporary workspace cannot be created or removed."""


class ToolError(Lfp2TiffError):
    """Raised when an external tool cannot be run or exits non-zero."""

    __slots__ = ("cmd", "returncode", "output")

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str] | None = None,
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = tuple(cmd) if cmd is not None else None
        self.returncode = returncode
        self.output = output

    def __str__(self) -> str:
        message = super().__str__()
        if self.output:
            message = f"{message}: {self.output.strip()}"
        return message

    @property
    def command_line(self) -> str:
        """The failing command as a copy-pasteable shell string."""
        return shlex.join(self.cmd) if self.cmd else ""


class PipelineError(Lfp2TiffError):
    """Raised when one input fails somewhere in its conversion pipeline."""

    __slots__ = ("path", "stage", "cause")

    def __init__(self, path: Path, stage: str, cause: BaseException) -> None:
        super().__init__(f"{path.name}: {stage} failed: {cause}")
        self.path = path
        self.stage = stage
        self.cause = cause
