"""Tests for the batched metadata merge."""

import os
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest
from exiftool.exceptions import ExifToolException

from lfp2tiff.errors import ToolError
from lfp2tiff.jobs import Job, JobState
from lfp2tiff.metadata import merge_metadata
from lfp2tiff.tools import ToolGateway


def _done_job(source: Path, output: Path) -> Job:
    job = Job.create(source, [])
    for state in (
        JobState.RECIPE_CREATED,
        JobState.RECIPE_MODIFIED,
        JobState.RENDERED,
        JobState.COMPRESSED,
        JobState.DONE,
    ):
        job.advance(state)
    job.output = output
    return job


@pytest.fixture
def pairs(tmp_path):
    result = []
    for name in ("a", "b"):
        source = tmp_path / f"{name}.lfp"
        source.write_bytes(b"raw")
        os.utime(source, (1_600_000_000, 1_600_000_000))
        target = tmp_path / f"{name}.tiff"
        target.write_bytes(b"tiff")
        result.append((source, target))
    return result


def test_one_batched_call_for_all_outputs(gateway, pairs):
    jobs = [_done_job(source, target) for source, target in pairs]

    merge_metadata(jobs, gateway)

    assert gateway.steps() == ["merge"]
    assert gateway.merged == [pairs]


def test_timestamps_copied_from_source(gateway, pairs):
    jobs = [_done_job(source, target) for source, target in pairs]

    merge_metadata(jobs, gateway)

    for _, target in pairs:
        assert target.stat().st_mtime == 1_600_000_000


def test_refuses_unfinished_jobs(gateway, pairs):
    source, _ = pairs[0]
    job = Job.create(source, [])

    with pytest.raises(ValueError, match="pending"):
        merge_metadata([job], gateway)

    assert gateway.merged == []


def test_empty_batch_skips_tool(gateway):
    merge_metadata([], gateway)
    assert gateway.calls == []


class TestGatewayMergeMetadata:
    def test_single_exiftool_session(self, pairs):
        with patch("lfp2tiff.tools.exiftool.ExifToolHelper") as helper_cls:
            et = MagicMock()
            et.execute.return_value = "    1 image files updated\n"
            helper_cls.return_value.__enter__.return_value = et

            ToolGateway().merge_metadata(pairs)

        helper_cls.assert_called_once_with(executable="exiftool", common_args=[])
        assert et.execute.call_args_list == [
            call("-tagsFromFile", str(source), "-all:all", "-overwrite_original", str(target))
            for source, target in pairs
        ]

    def test_exiftool_failure_becomes_tool_error(self, pairs):
        with patch("lfp2tiff.tools.exiftool.ExifToolHelper") as helper_cls:
            et = MagicMock()
            et.execute.side_effect = ExifToolException("execute returned a non-zero exit status: 1")
            helper_cls.return_value.__enter__.return_value = et

            with pytest.raises(ToolError, match="exiftool"):
                ToolGateway().merge_metadata(pairs)

    def test_missing_file_fails_before_exiftool(self, tmp_path):
        with patch("lfp2tiff.tools.exiftool.ExifToolHelper") as helper_cls:
            with pytest.raises(ToolError, match="Cannot read"):
                ToolGateway().merge_metadata([(tmp_path / "gone.lfp", tmp_path / "gone.tiff")])

        helper_cls.assert_not_called()
