"""Tests for the docker and native bundlers."""

import asyncio
import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from edgefn.core.exceptions import BundleError
from edgefn.functions import bundler as bundler_module
from edgefn.functions.bundler import (
    DOCKER_ESZIP_DIR,
    DockerBundler,
    NativeBundler,
    ProcessResult,
    bundle_args,
    get_bundler,
    output_directory,
)

FAKE_BUNDLER = """#!/bin/sh
out=""
while [ $# -gt 0 ]; do
  if [ "$1" = "--output" ]; then out="$2"; fi
  shift
done
{body}
"""


def _write_script(path: Path, body: str) -> str:
    path.write_text(FAKE_BUNDLER.format(body=body))
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


def _host_output_dir(argv):
    for i, arg in enumerate(argv):
        if arg == "--volume" and argv[i + 1].endswith(f":{DOCKER_ESZIP_DIR}:rw"):
            return Path(argv[i + 1].split(":")[0])
    raise AssertionError("no output mount")


class TestBundleArgs:
    """Test the bundler command line contract."""

    def test_minimal(self):
        assert bundle_args("fn/index.ts", "out.eszip", None, False) == [
            "bundle",
            "--entrypoint",
            "fn/index.ts",
            "--output",
            "out.eszip",
        ]

    def test_import_map_and_verbose(self):
        args = bundle_args("fn/index.ts", "out.eszip", "import_map.json", True)
        assert args[-3:] == ["--import-map", "import_map.json", "--verbose"]


class TestGetBundler:
    def test_selects_variant(self, deploy_config):
        assert isinstance(get_bundler(deploy_config), DockerBundler)
        native = deploy_config.model_copy(update={"bundler": "native"})
        assert isinstance(get_bundler(native), NativeBundler)


class TestOutputDirectory:
    def test_creates_missing_temp_dir_and_removes_output(self, deploy_config):
        temp_dir = deploy_config.paths().temp_dir
        assert not temp_dir.exists()

        with output_directory(temp_dir, "hello") as out:
            assert out.parent == temp_dir
            (out / "output.eszip").write_bytes(b"x")

        assert temp_dir.is_dir()
        assert list(temp_dir.iterdir()) == []


class TestDockerBundler:
    """Test DockerBundler without a docker daemon."""

    def test_build_command_mounts(self, deploy_config, function_project):
        bundler = DockerBundler(deploy_config)
        out = function_project / ".temp" / "out"
        argv = bundler.build_command("c1", "functions/hello/index.ts", None, out)

        root = function_project.resolve()
        func_dir = root / "functions"
        assert argv[:4] == ["docker", "run", "--rm", "--name"]
        assert f"{deploy_config.cache_volume}:/root/.cache/deno:rw" in argv
        assert f"{func_dir}:{func_dir}:ro" in argv
        assert f"{out.resolve()}:{DOCKER_ESZIP_DIR}:rw" in argv
        assert deploy_config.runtime_image in argv
        assert argv[argv.index("--entrypoint") + 1] == str(root / "functions/hello/index.ts")
        assert "--verbose" not in argv

    def test_build_command_binds_import_map_modules(self, deploy_config, function_project):
        (function_project / "lib").mkdir()
        (function_project / "import_map.json").write_text(
            '{"imports": {"lib/": "./lib/", "std/": "https://x/std/"}}'
        )
        config = deploy_config.model_copy(update={"debug": True})
        argv = DockerBundler(config).build_command(
            "c1", "functions/hello/index.ts", "import_map.json", function_project / "out"
        )

        root = function_project.resolve()
        assert f"{root / 'import_map.json'}:{root / 'import_map.json'}:ro" in argv
        assert f"{root / 'lib'}:{root / 'lib'}:ro" in argv
        assert argv[argv.index("--import-map") + 1] == str(root / "import_map.json")
        assert argv[-1] == "--verbose"

    @pytest.mark.asyncio
    async def test_bundle_reads_artifact_and_cleans_up(self, deploy_config):
        seen = {}

        async def fake_run(argv, cwd=None, on_cancel=None):
            out = _host_output_dir(argv)
            seen["out"] = out
            (out / "output.eszip").write_bytes(b"eszip-bytes")
            return ProcessResult(returncode=0, output="")

        with patch.object(bundler_module, "run_process", side_effect=fake_run):
            data = await DockerBundler(deploy_config).bundle("functions/hello/index.ts")

        assert data == b"eszip-bytes"
        assert not seen["out"].exists()

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_and_cleans_up(self, deploy_config):
        seen = {}

        async def fake_run(argv, cwd=None, on_cancel=None):
            seen["out"] = _host_output_dir(argv)
            return ProcessResult(returncode=1, output="error: Module not found")

        with patch.object(bundler_module, "run_process", side_effect=fake_run):
            with pytest.raises(BundleError, match="Module not found") as exc_info:
                await DockerBundler(deploy_config).bundle("functions/hello/index.ts")

        assert exc_info.value.returncode == 1
        assert not seen["out"].exists()

    @pytest.mark.asyncio
    async def test_missing_artifact_raises(self, deploy_config):
        async def fake_run(argv, cwd=None, on_cancel=None):
            return ProcessResult(returncode=0, output="")

        with patch.object(bundler_module, "run_process", side_effect=fake_run):
            with pytest.raises(BundleError, match="failed to open eszip"):
                await DockerBundler(deploy_config).bundle("functions/hello/index.ts")

    @pytest.mark.asyncio
    async def test_output_dir_is_world_writable(self, deploy_config):
        modes = []

        async def fake_run(argv, cwd=None, on_cancel=None):
            out = _host_output_dir(argv)
            modes.append(stat.S_IMODE(os.stat(out).st_mode))
            (out / "output.eszip").write_bytes(b"x")
            return ProcessResult(returncode=0, output="")

        with patch.object(bundler_module, "run_process", side_effect=fake_run):
            await DockerBundler(deploy_config).bundle("functions/hello/index.ts")

        assert modes == [0o777]

    @pytest.mark.asyncio
    async def test_cancellation_removes_container_and_output_dir(self, deploy_config):
        seen = {"rm": []}
        started = asyncio.Event()

        async def fake_run(argv, cwd=None, on_cancel=None):
            if argv[:2] == ["docker", "rm"]:
                seen["rm"].append(list(argv))
                return ProcessResult(returncode=0, output="")
            seen["out"] = _host_output_dir(argv)
            seen["name"] = argv[argv.index("--name") + 1]
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                await on_cancel()
                raise

        with patch.object(bundler_module, "run_process", side_effect=fake_run):
            task = asyncio.create_task(
                DockerBundler(deploy_config).bundle("functions/hello/index.ts")
            )
            await asyncio.wait_for(started.wait(), timeout=1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(task, timeout=5)

        assert seen["rm"] == [["docker", "rm", "--force", seen["name"]]]
        assert not seen["out"].exists()


class TestNativeBundler:
    """Test NativeBundler against a shell script standing in for the runtime."""

    def _config(self, deploy_config, script):
        return deploy_config.model_copy(update={"bundler": "native", "bundler_bin": script})

    @pytest.mark.asyncio
    async def test_bundle_success(self, deploy_config, tmp_path, monkeypatch):
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        monkeypatch.setattr(bundler_module.tempfile, "tempdir", str(scratch))
        script = _write_script(tmp_path / "bundler.sh", 'printf "eszip-bytes" > "$out"')
        bundler = NativeBundler(self._config(deploy_config, script))

        data = await bundler.bundle("functions/hello/index.ts")

        assert data == b"eszip-bytes"
        assert list(scratch.iterdir()) == []

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, deploy_config, tmp_path):
        script = _write_script(tmp_path / "bundler.sh", 'echo "bad import" >&2\nexit 3')
        bundler = NativeBundler(self._config(deploy_config, script))

        with pytest.raises(BundleError, match="bad import") as exc_info:
            await bundler.bundle("functions/hello/index.ts")
        assert exc_info.value.returncode == 3

    @pytest.mark.asyncio
    async def test_empty_output(self, deploy_config, tmp_path):
        script = _write_script(tmp_path / "bundler.sh", "exit 0")
        bundler = NativeBundler(self._config(deploy_config, script))

        with pytest.raises(BundleError, match="empty"):
            await bundler.bundle("functions/hello/index.ts")

    @pytest.mark.asyncio
    async def test_missing_binary(self, deploy_config, tmp_path):
        bundler = NativeBundler(self._config(deploy_config, str(tmp_path / "nope")))

        with pytest.raises(BundleError, match="failed to start"):
            await bundler.bundle("functions/hello/index.ts")

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, deploy_config, tmp_path, monkeypatch):
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        monkeypatch.setattr(bundler_module.tempfile, "tempdir", str(scratch))
        script = _write_script(tmp_path / "bundler.sh", "sleep 30")
        bundler = NativeBundler(self._config(deploy_config, script))

        task = asyncio.create_task(bundler.bundle("functions/hello/index.ts"))
        await asyncio.sleep(0.3)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)

        assert list(scratch.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancellation_kills_forked_children(self, deploy_config, tmp_path):
        # A child holding stdout open must not keep communicate() waiting
        script = _write_script(tmp_path / "bundler.sh", "sleep 30 &\nsleep 30 &\nwait")
        bundler = NativeBundler(self._config(deploy_config, script))

        task = asyncio.create_task(bundler.bundle("functions/hello/index.ts"))
        await asyncio.sleep(0.3)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)
