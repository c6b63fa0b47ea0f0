"""Shared fixtures: a fake tool gateway that writes small files instead of rendering."""

import logging
import threading
import time
from pathlib import Path

import pytest

from lfp2tiff.errors import ToolError
from lfp2tiff.tools import RenderMode

DEFAULT_SIZES = {"zip": 300, "lzw": 200, "lzw:2": 100}


def codec_bytes(codec: str, size: int) -> bytes:
    """Content that identifies which codec produced a trial file."""
    pattern = codec.encode()
    return (pattern * (size // len(pattern) + 1))[:size]


class FakeGateway:
    """Stands in for ToolGateway. Thread-safe enough for the scheduler tests."""

    def __init__(self, *, sizes=None, fail=None, error=None, delay=0.0):
        self.sizes = dict(sizes or DEFAULT_SIZES)
        # {input stem: step name} where a ToolError (or ``error``) is raised
        self.fail = dict(fail or {})
        self.error = error
        self.delay = delay
        self.calls = []
        self.out_dirs = set()
        self.merged = []
        self.cancelled = False
        self._lock = threading.Lock()

    def _record(self, step, *args):
        with self._lock:
            self.calls.append((step, *args))

    def _maybe_fail(self, step, stem):
        if self.fail.get(stem) == step:
            if self.error is not None:
                raise self.error
            raise ToolError(f"{step} failed for {stem}", cmd=["fake", step], returncode=1)

    def render(self, raw, out_dir, *, mode, recipe=None, threads=None):
        step = f"render-{mode}"
        self._record(step, raw.name, threads, recipe.name if recipe else None)
        with self._lock:
            self.out_dirs.add(out_dir)
        if self.delay:
            time.sleep(self.delay)
        self._maybe_fail(step, raw.stem)
        artifact = out_dir / f"{raw.stem}{mode.suffix}"
        if mode is RenderMode.RECIPE:
            artifact.write_text("{}")
        else:
            artifact.write_bytes(b"\0" * 1000)
        return artifact

    def edit_recipe(self, recipe, focus_spread):
        self._record("edit", recipe.name, focus_spread)
        self._maybe_fail("edit", recipe.stem)

    def compress(self, src, dst, codec):
        self._record("compress", src.name, codec)
        self._maybe_fail(f"compress-{codec}", src.stem)
        dst.write_bytes(codec_bytes(codec, self.sizes[codec]))

    def merge_metadata(self, pairs):
        pairs = list(pairs)
        self._record("merge", len(pairs))
        self.merged.append(pairs)

    def cancel(self):
        self.cancelled = True

    def steps(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_inputs(tmp_path):
    """Create capture files and return their paths."""

    def _make(*names, directory="captures"):
        folder = tmp_path / directory
        folder.mkdir(parents=True, exist_ok=True)
        paths = []
        for name in names:
            path = folder / name
            path.write_bytes(b"LFP" + name.encode())
            paths.append(path)
        return paths

    return _make


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo configure_logging so caplog sees records in every test."""
    yield
    logger = logging.getLogger("lfp2tiff")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def out_dir(tmp_path) -> Path:
    return tmp_path / "out"
