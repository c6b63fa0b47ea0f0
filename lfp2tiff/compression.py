#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
"""Pick the smallest of several lossless TIFF re-encodings."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from lfp2tiff.config import DEFAULT_CODECS

if TYPE_CHECKING:
    from lfp2tiff.tools import ToolGateway

__all__: Final[list[str]] = ["CompressionCandidate", "CompressionSelector"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class CompressionCandidate:
    """One trial encoding and its size on disk."""

    codec: str
    path: Path
    size: int


def _trial_path(image: Path, codec: str) -> Path:
    slug = codec.replace(":", "-p")
    return image.with_name(f"{image.stem}.{slug}.trial{image.suffix}")


class CompressionSelector:
    """Re-encode an image with every codec and keep the smallest.

    Codecs are tried in order. On equal sizes the later codec wins, so the
    list should run from the usually-worst to the usually-best scheme.
    """

    def __init__(self, gateway: ToolGateway, codecs: Sequence[str] = DEFAULT_CODECS) -> None:
        if not codecs:
            msg = "at least one codec is required"
            raise ValueError(msg)
        self._gateway = gateway
        self._codecs = tuple(codecs)

    @property
    def codecs(self) -> tuple[str, ...]:
        return self._codecs

    def trials(self, image: Path) -> list[CompressionCandidate]:
        """Encode ``image`` once per codec, returning every candidate."""
        candidates: list[CompressionCandidate] = []
        try:
            for codec in self._codecs:
                path = _trial_path(image, codec)
                self._gateway.compress(image, path, codec)
                candidates.append(
                    CompressionCandidate(codec=codec, path=path, size=path.stat().st_size)
                )
        except BaseException:
            for codec in self._codecs:
                _trial_path(image, codec).unlink(missing_ok=True)
            raise
        return candidates

    @staticmethod
    def choose(candidates: Sequence[CompressionCandidate]) -> CompressionCandidate:
        """Smallest candidate, preferring the later one on a tie."""
        if not candidates:
            msg = "no candidates to choose from"
            raise ValueError(msg)
        best = candidates[0]
        for candidate in candidates[1:]:
            if candidate.size <= best.size:
                best = candidate
        return best

    def select(self, image: Path) -> CompressionCandidate:
        """Replace ``image`` in place with its smallest re-encoding.

        Returns the winning candidate, whose ``path`` is now ``image``.
        """
        original_size = image.stat().st_size
        candidates = self.trials(image)
        winner = self.choose(candidates)

        os.replace(winner.path, image)
        for candidate in candidates:
            if candidate is not winner:
                candidate.path.unlink(missing_ok=True)

        logger.debug(
            "%s: %s wins (%s)",
            image.name,
            winner.codec,
            ", ".join(f"{c.codec}={c.size}" for c in candidates),
        )
        logger.debug("%s: %d -> %d bytes", image.name, original_size, winner.size)
        return CompressionCandidate(codec=winner.codec, path=image, size=winner.size)
