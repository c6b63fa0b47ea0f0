#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Colored diagnostics on stderr for the ``lfp2tiff`` logger tree."""

from __future__ import annotations

import logging
import sys
from enum import StrEnum
from typing import ClassVar, Final

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

from lfp2tiff.config import Verbosity

__all__: Final[list[str]] = ["LOGGER_NAME", "configure_logging"]

LOGGER_NAME: Final[str] = "lfp2tiff"

_LEVELS: Final[dict[Verbosity, int]] = {
    Verbosity.QUIET: logging.ERROR,
    Verbosity.NORMAL: logging.INFO,
    Verbosity.VERBOSE: logging.DEBUG,
}


class _AnsiColor(StrEnum):
    """ANSI color codes for terminal output."""

    GREEN = "\033[0;32m"
    YELLOW = "\033[1;33m"
    RED = "\033[0;31m"
    GRAY = "\033[0;37m"
    RESET = "\033[0m"


class _ColoredFormatter(logging.Formatter):
    """Logging formatter with colored output."""

    _LEVEL_COLORS: ClassVar[dict[int, str]] = {
        logging.DEBUG: _AnsiColor.GRAY,
        logging.INFO: _AnsiColor.GREEN,
        logging.WARNING: _AnsiColor.YELLOW,
        logging.ERROR: _AnsiColor.RED,
    }

    def __init__(self, *, color: bool) -> None:
        super().__init__()
        self._color = color

    @override
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if not self._color:
            return f"[{record.levelname}] {message}"
        color = self._LEVEL_COLORS.get(record.levelno, _AnsiColor.RESET)
        return f"{color}[{record.levelname}]{_AnsiColor.RESET} {message}"


def configure_logging(verbosity: Verbosity) -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    Calling this again replaces the previous handler, so the handler always
    writes to the current ``sys.stderr``.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_LEVELS[verbosity])
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream = sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setFormatter(_ColoredFormatter(color=stream.isatty()))
    logger.addHandler(handler)

    return logger
