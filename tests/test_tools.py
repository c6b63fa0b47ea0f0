"""Tests for process invocation and the tool gateway's command lines."""

import json
import sys
import textwrap
import threading
import time

import pytest

from lfp2tiff.config import ToolPaths
from lfp2tiff.errors import ToolError
from lfp2tiff.tools import ProcessRunner, RenderMode, ToolGateway

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses shebang scripts")

FAKE_TOOL = textwrap.dedent(
    """\
    import json, sys
    from pathlib import Path

    args = sys.argv[1:]
    with open({log!r}, "a") as f:
        f.write(json.dumps([Path(sys.argv[0]).name, *args]) + "\\n")

    if "--lfp-in" in args:
        raw = Path(args[args.index("--lfp-in") + 1])
        out = Path(args[args.index("--dir-out") + 1])
        if raw.stem == "broken":
            print("malformed capture", file=sys.stderr)
            sys.exit(3)
        suffix = ".json" if "--recipe-out" in args else ".tiff"
        if raw.stem != "silent":
            (out / (raw.stem + suffix)).write_text("artifact")
    elif args[:1] == ["-c"]:
        Path(args[3]).write_bytes(Path(args[2]).read_bytes())
    """
)


@pytest.fixture
def tool_log(tmp_path):
    return tmp_path / "calls.jsonl"


@pytest.fixture
def fake_tools(tmp_path, tool_log):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    paths = {}
    for name in ("lfptool", "recipetool", "tiffcp", "exiftool"):
        script = bin_dir / name
        script.write_text(f"#!{sys.executable}\n" + FAKE_TOOL.format(log=str(tool_log)))
        script.chmod(0o755)
        paths[name] = str(script)
    return ToolPaths(**paths)


def _calls(log):
    return [json.loads(line) for line in log.read_text().splitlines()]


class TestProcessRunner:
    def test_success_returns_output(self):
        result = ProcessRunner().run([sys.executable, "-c", "print('hello')"])
        assert result.returncode == 0
        assert result.stdout.strip() == "hello"

    def test_non_zero_exit_raises_with_output(self):
        with pytest.raises(ToolError) as excinfo:
            ProcessRunner().run(
                [sys.executable, "-c", "import sys; sys.stderr.write('nope'); sys.exit(4)"]
            )
        assert excinfo.value.returncode == 4
        assert excinfo.value.output == "nope"
        assert "nope" in str(excinfo.value)
        assert excinfo.value.command_line.startswith(sys.executable)

    def test_missing_executable_raises(self, tmp_path):
        with pytest.raises(ToolError, match="Cannot run"):
            ProcessRunner().run([tmp_path / "does-not-exist"])

    def test_verbose_echoes_tool_output(self, capfd):
        ProcessRunner(verbose=True).run([sys.executable, "-c", "print('rendered')"])
        assert "rendered" in capfd.readouterr().out

    def test_terminate_all_stops_running_child(self):
        runner = ProcessRunner()
        errors = []

        def target():
            try:
                runner.run([sys.executable, "-c", "import time; time.sleep(30)"])
            except ToolError as e:
                errors.append(e)

        thread = threading.Thread(target=target)
        thread.start()
        deadline = time.monotonic() + 10
        while not runner._live and time.monotonic() < deadline:
            time.sleep(0.01)

        runner.terminate_all()
        thread.join(timeout=10)

        assert not thread.is_alive()
        assert len(errors) == 1

    def test_no_new_commands_after_cancel(self):
        runner = ProcessRunner()
        runner.terminate_all()
        assert runner.cancelled
        with pytest.raises(ToolError, match="cancelled"):
            runner.run([sys.executable, "-c", "pass"])


@posix_only
class TestToolGateway:
    def test_recipe_render(self, fake_tools, tool_log, tmp_path):
        raw = tmp_path / "shot.lfp"
        raw.write_bytes(b"lfp")

        artifact = ToolGateway(tools=fake_tools).render(raw, tmp_path, mode=RenderMode.RECIPE)

        assert artifact == tmp_path / "shot.json"
        (call,) = _calls(tool_log)
        assert call == ["lfptool", "raw", "--lfp-in", str(raw), "--dir-out", str(tmp_path), "--recipe-out"]

    def test_image_render_with_recipe_threads_and_calibration(self, fake_tools, tool_log, tmp_path):
        raw = tmp_path / "shot.lfp"
        recipe = tmp_path / "shot.json"
        calibration = tmp_path / "calib"
        gateway = ToolGateway(tools=fake_tools, calibration=calibration)

        artifact = gateway.render(raw, tmp_path, mode=RenderMode.IMAGE, recipe=recipe, threads=2)

        assert artifact == tmp_path / "shot.tiff"
        (call,) = _calls(tool_log)
        assert call[call.index("--recipe-in") + 1] == str(recipe)
        assert call[call.index("--threads") + 1] == "2"
        assert call[call.index("--calibration-in") + 1] == str(calibration)
        assert call[call.index("--imagerep") + 1] == "tiff"

    def test_renderer_failure(self, fake_tools, tmp_path):
        raw = tmp_path / "broken.lfp"
        with pytest.raises(ToolError, match="malformed capture"):
            ToolGateway(tools=fake_tools).render(raw, tmp_path, mode=RenderMode.RECIPE)

    def test_renderer_without_artifact(self, fake_tools, tmp_path):
        raw = tmp_path / "silent.lfp"
        with pytest.raises(ToolError, match="did not produce"):
            ToolGateway(tools=fake_tools).render(raw, tmp_path, mode=RenderMode.RECIPE)

    def test_edit_recipe(self, fake_tools, tool_log, tmp_path):
        recipe = tmp_path / "shot.json"
        recipe.write_text("{}")

        ToolGateway(tools=fake_tools).edit_recipe(recipe, sys.float_info.max)

        (call,) = _calls(tool_log)
        assert call == [
            "recipetool", "view", "--focus-spread", "1.7976931348623157e+308", "-i", str(recipe),
        ]

    def test_edit_missing_recipe(self, fake_tools, tmp_path):
        with pytest.raises(ToolError, match="Recipe not found"):
            ToolGateway(tools=fake_tools).edit_recipe(tmp_path / "gone.json", 1.0)

    def test_compress(self, fake_tools, tool_log, tmp_path):
        src = tmp_path / "in.tiff"
        src.write_bytes(b"pixels")
        dst = tmp_path / "out.tiff"

        ToolGateway(tools=fake_tools).compress(src, dst, "lzw:2")

        assert dst.read_bytes() == b"pixels"
        (call,) = _calls(tool_log)
        assert call == ["tiffcp", "-c", "lzw:2", str(src), str(dst)]

    def test_verify_finds_tools(self, fake_tools):
        ToolGateway(tools=fake_tools).verify()

    def test_verify_reports_missing_tool(self, fake_tools, tmp_path):
        tools = ToolPaths(**{**fake_tools.as_dict(), "tiffcp": str(tmp_path / "no-tiffcp")})
        with pytest.raises(ToolError, match="tiffcp not found"):
            ToolGateway(tools=tools).verify()
