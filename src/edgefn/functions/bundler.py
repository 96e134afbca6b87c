"""
Bundler invocations.

Two interchangeable implementations of the same ``bundle`` capability:

- DockerBundler runs the edge runtime image once per call with the
  dependency cache volume, the functions directory (read only) and a private
  output directory mounted.
- NativeBundler runs a locally installed edge runtime binary.

Both call ``bundle --entrypoint <p> --output <p> [--import-map <p>] [--verbose]``
and return the raw eszip bytes written by the tool.
"""

import asyncio
import logging
import os
import shutil
import signal
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Sequence

from edgefn.config import DeployConfig
from edgefn.core.exceptions import BundleError

from .import_map import ImportMap

log = logging.getLogger(__name__)

DOCKER_DENO_CACHE_DIR = "/root/.cache/deno"
DOCKER_ESZIP_DIR = "/root/eszips"
OUTPUT_FILE = "output.eszip"


class Bundler(Protocol):
    async def bundle(self, entrypoint: str, import_map: Optional[str] = None) -> bytes:
        ...


@dataclass
class ProcessResult:
    returncode: int
    output: str


def bundle_args(
    entrypoint: str, output: str, import_map: Optional[str], verbose: bool
) -> List[str]:
    args = ["bundle", "--entrypoint", entrypoint, "--output", output]
    if import_map:
        args += ["--import-map", import_map]
    if verbose:
        args.append("--verbose")
    return args


async def run_process(
    argv: Sequence[str], cwd: Optional[Path] = None, on_cancel=None
) -> ProcessResult:
    """Run ``argv`` capturing combined stdout/stderr.

    The child runs in its own session so cancellation can kill its whole
    process group, including forked workers holding the output pipe. Then
    ``on_cancel`` is awaited, if given, before CancelledError propagates.
    """
    log.debug(f"Running: {' '.join(argv)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )
    except OSError as e:
        raise BundleError(f"failed to start {argv[0]}: {e}") from e

    try:
        stdout, _ = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            await proc.wait()
        if on_cancel is not None:
            await on_cancel()
        raise

    return ProcessResult(
        returncode=proc.returncode,
        output=(stdout or b"").decode("utf-8", errors="replace"),
    )


def _slug_of(entrypoint: str) -> str:
    return Path(entrypoint).parent.name or "function"


@contextmanager
def output_directory(parent: Path, slug: str) -> Iterator[Path]:
    """Private output directory removed on every exit path."""
    parent.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=f".output_{slug}_", dir=parent))
    try:
        # CI runners like BitBucket pipelines require bind mounts to be world writable
        os.chmod(path, 0o777)
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            log.warning(f"Failed to remove {path}: {e}")


def _read_artifact(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as e:
        raise BundleError(f"failed to open eszip: {path} was not created") from e
    except OSError as e:
        raise BundleError(f"failed to open eszip: {e}") from e


class DockerBundler:
    """Bundle inside a throwaway edge runtime container."""

    def __init__(self, config: DeployConfig):
        self.config = config

    def _binds(self, import_map: Optional[str]) -> tuple:
        paths = self.config.paths()
        func_dir = paths.functions_dir.resolve()
        binds = [
            # Reuse the deno cache directory (DENO_DIR) between container runs
            f"{self.config.cache_volume}:{DOCKER_DENO_CACHE_DIR}:rw",
            f"{func_dir}:{func_dir}:ro",
        ]
        docker_import_map = None
        if import_map:
            host_path = (paths.project_root / import_map).resolve()
            docker_import_map = str(host_path)
            # Import maps under the functions dir are already visible
            if func_dir not in host_path.parents:
                binds.append(f"{host_path}:{host_path}:ro")
            for module_dir in ImportMap.load(host_path).local_dirs(host_path):
                if module_dir == func_dir or func_dir in module_dir.parents:
                    continue
                binds.append(f"{module_dir}:{module_dir}:ro")
        return binds, docker_import_map

    def build_command(
        self, name: str, entrypoint: str, import_map: Optional[str], host_output: Path
    ) -> List[str]:
        root = self.config.paths().project_root.resolve()
        binds, docker_import_map = self._binds(import_map)
        binds.append(f"{host_output.resolve()}:{DOCKER_ESZIP_DIR}:rw")

        argv = ["docker", "run", "--rm", "--name", name, "--workdir", str(root)]
        for bind in binds:
            argv += ["--volume", bind]
        argv.append(self.config.runtime_image)
        argv += bundle_args(
            str(root / entrypoint),
            f"{DOCKER_ESZIP_DIR}/{OUTPUT_FILE}",
            docker_import_map,
            self.config.debug,
        )
        return argv

    async def bundle(self, entrypoint: str, import_map: Optional[str] = None) -> bytes:
        slug = _slug_of(entrypoint)
        log.info(f"Bundling function: {slug}")
        name = f"edgefn_bundle_{slug}_{uuid.uuid4().hex[:8]}"

        async def remove_container():
            result = await run_process(["docker", "rm", "--force", name])
            if result.returncode != 0:
                log.warning(f"Failed to remove container {name}: {result.output}")

        with output_directory(self.config.paths().temp_dir, slug) as host_output:
            argv = self.build_command(name, entrypoint, import_map, host_output)
            result = await run_process(argv, on_cancel=remove_container)
            if result.returncode != 0:
                raise BundleError(
                    f"failed to bundle function {slug}: container exited with status {result.returncode}",
                    returncode=result.returncode,
                    output=result.output,
                )
            if self.config.debug and result.output:
                log.debug(result.output)
            return _read_artifact(host_output / OUTPUT_FILE)


class NativeBundler:
    """Bundle with a locally installed edge runtime binary."""

    def __init__(self, config: DeployConfig):
        self.config = config

    async def bundle(self, entrypoint: str, import_map: Optional[str] = None) -> bytes:
        slug = _slug_of(entrypoint)
        log.info(f"Bundling function: {slug}")
        root = self.config.paths().project_root
        fd, output_path = tempfile.mkstemp(prefix=f"{slug}_", suffix=".eszip")
        os.close(fd)
        try:
            argv = [self.config.bundler_bin] + bundle_args(
                entrypoint, output_path, import_map, self.config.debug
            )
            result = await run_process(argv, cwd=root)
            if result.returncode != 0:
                raise BundleError(
                    f"failed to bundle function {slug}: exit status {result.returncode}",
                    returncode=result.returncode,
                    output=result.output,
                )
            data = _read_artifact(Path(output_path))
            if not data:
                raise BundleError(
                    f"failed to open eszip: {output_path} is empty",
                    output=result.output,
                )
            return data
        finally:
            try:
                os.remove(output_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                log.warning(f"Failed to remove {output_path}: {e}")


def get_bundler(config: DeployConfig) -> Bundler:
    if config.bundler == "native":
        return NativeBundler(config)
    return DockerBundler(config)
