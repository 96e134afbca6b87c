"""
Streaming deploy upload.

A producer task encodes the deploy manifest as ``multipart/form-data`` into a
bounded in-memory byte pipe while the HTTP request reads the other end as
its body, so encoding and transmission overlap and only a chunk or two is
ever held in memory.

Field order on the wire is fixed: ``metadata``, the import map, static files
in glob order, the entrypoint and its import graph in walk order, then the
compressed bundle if one is attached.
"""

import asyncio
import glob
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, BinaryIO, Dict, Iterator, Optional, Union

import httpx

from edgefn.core.exceptions import UploadError

from .import_map import ImportMap
from .models import FunctionMetadata
from .walker import ReadFile, iter_import_paths

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
_EOF = object()
_FAILED = object()


class UploadAborted(Exception):
    """Raised to the pipe reader when the writer gave up mid-stream."""


class BytePipe:
    """Bounded single-producer, single-consumer byte pipe.

    ``write`` blocks while the buffer is full. ``close`` ends the stream for
    the reader. ``fail`` ends it with an error instead, so the reader raises
    UploadAborted rather than seeing a clean end of stream. ``abort`` is
    called from the read side: buffered chunks are dropped, a blocked writer
    is released and further writes raise BrokenPipeError.
    """

    def __init__(self, maxsize: int = 1):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._aborted = False
        self._error: Optional[BaseException] = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def write(self, data: bytes) -> None:
        if self._aborted:
            raise BrokenPipeError("upload pipe closed by reader")
        if self._closed:
            raise ValueError("write to closed upload pipe")
        if not data:
            return
        await self._queue.put(bytes(data))
        if self._aborted:
            raise BrokenPipeError("upload pipe closed by reader")

    async def close(self) -> None:
        if self._closed or self._aborted:
            return
        self._closed = True
        await self._queue.put(_EOF)

    def fail(self, error: BaseException) -> None:
        if self._closed or self._aborted:
            return
        self._closed = True
        self._error = error
        self._drain()
        self._queue.put_nowait(_FAILED)

    def abort(self) -> None:
        self._aborted = True
        self._drain()

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while not self._aborted:
            chunk = await self._queue.get()
            if chunk is _EOF:
                return
            if chunk is _FAILED:
                raise UploadAborted(f"upload body aborted: {self._error}") from self._error
            yield chunk


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MultipartWriter:
    """Incremental ``multipart/form-data`` encoder writing into a BytePipe."""

    def __init__(self, pipe: BytePipe, boundary: Optional[str] = None):
        self.pipe = pipe
        self.boundary = boundary or secrets.token_hex(30)
        self._parts = 0
        self._closed = False

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    async def _begin_part(self, disposition: str, content_type: Optional[str]) -> None:
        delimiter = f"--{self.boundary}\r\n"
        if self._parts:
            delimiter = "\r\n" + delimiter
        headers = f"Content-Disposition: {disposition}\r\n"
        if content_type:
            headers += f"Content-Type: {content_type}\r\n"
        self._parts += 1
        await self.pipe.write((delimiter + headers + "\r\n").encode("utf-8"))

    async def write_field(self, name: str, value: bytes) -> None:
        await self._begin_part(f'form-data; name="{_quote(name)}"', None)
        await self.pipe.write(value)

    async def write_file(
        self,
        name: str,
        filename: str,
        content: Union[bytes, BinaryIO],
        content_type: str = "application/octet-stream",
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        await self._begin_part(
            f'form-data; name="{_quote(name)}"; filename="{_quote(filename)}"',
            content_type,
        )
        if isinstance(content, (bytes, bytearray)):
            for start in range(0, len(content), chunk_size):
                await self.pipe.write(content[start : start + chunk_size])
            return
        while True:
            chunk = content.read(chunk_size)
            if not chunk:
                break
            await self.pipe.write(chunk)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.pipe.write(f"\r\n--{self.boundary}--\r\n".encode("utf-8"))


@dataclass
class ManifestFile:
    path: str
    content: bytes


@dataclass
class UploadManifest:
    """Everything sent for one function.

    Files are enumerated lazily by ``files()`` so they are read while the
    request is already streaming.
    """

    metadata: FunctionMetadata
    read_file: ReadFile
    root: Path
    bundle: Optional[BinaryIO] = None

    def load_import_map(self) -> Optional[ManifestFile]:
        if not self.metadata.import_map_path:
            return None
        path = self.metadata.import_map_path
        try:
            data = self.read_file(path)
        except OSError as e:
            raise UploadError(f"failed to load import map: {e}") from e
        return ManifestFile(path, data)

    def static_files(self) -> Iterator[ManifestFile]:
        # Wildcards do not match dotfiles; name them explicitly to include them
        for pattern in self.metadata.static_patterns or []:
            for match in sorted(glob.glob(pattern, root_dir=self.root)):
                sf_path = Path(match).as_posix()
                try:
                    data = self.read_file(sf_path)
                except IsADirectoryError:
                    log.warning(f"Static file pattern {pattern!r} matched a directory: {sf_path}")
                    continue
                yield ManifestFile(sf_path, data)

    def files(self) -> Iterator[ManifestFile]:
        import_map = ImportMap()
        import_map_file = self.load_import_map()
        if import_map_file is not None:
            import_map = ImportMap.parse(import_map_file.content)
            yield import_map_file
        yield from self.static_files()
        for path, data in iter_import_paths(
            self.metadata.entrypoint_path, import_map, self.read_file
        ):
            yield ManifestFile(path, data)


class UploadPipeline:
    """Stream an UploadManifest to the deploy endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        project_ref: str,
        pipe_size: int = 1,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.client = client
        self.project_ref = project_ref
        self.pipe_size = pipe_size
        self.chunk_size = chunk_size

    def deploy_url(self) -> str:
        return f"/v1/projects/{self.project_ref}/functions/deploy"

    async def write_form(self, form: MultipartWriter, manifest: UploadManifest) -> None:
        await form.write_field("metadata", manifest.metadata.to_json())
        for entry in manifest.files():
            log.debug(f"Uploading asset: {entry.path}")
            await form.write_file("file", entry.path, entry.content, chunk_size=self.chunk_size)
        if manifest.bundle is not None:
            await form.write_file(
                "bundle",
                f"{manifest.metadata.name}.eszip",
                manifest.bundle,
                chunk_size=self.chunk_size,
            )

    async def _produce(
        self,
        form: MultipartWriter,
        manifest: UploadManifest,
        pipe: BytePipe,
        errors: asyncio.Queue,
    ) -> None:
        try:
            await self.write_form(form, manifest)
            await form.close()
        except BrokenPipeError as e:
            # Reader stopped early, the HTTP outcome decides
            errors.put_nowait(e)
        except asyncio.CancelledError as e:
            pipe.fail(e)
            raise
        except Exception as e:
            errors.put_nowait(e)
            # Never terminate the multipart body after a failure
            pipe.fail(e)
        else:
            await pipe.close()

    async def upload(self, slug: str, manifest: UploadManifest) -> Dict[str, Any]:
        """Upload one function and return the decoded 201 response body.

        Raises:
            UploadError: If encoding or reading fails on the producer side,
                the request fails, or the endpoint does not answer 201 with a
                JSON object. Producer failures win over any HTTP outcome.
        """
        pipe = BytePipe(self.pipe_size)
        form = MultipartWriter(pipe)
        errors: asyncio.Queue = asyncio.Queue(maxsize=1)
        producer = asyncio.create_task(self._produce(form, manifest, pipe, errors))

        response: Optional[httpx.Response] = None
        request_error: Optional[Exception] = None
        try:
            response = await self.client.post(
                self.deploy_url(),
                params={"slug": slug},
                content=pipe,
                headers={"Content-Type": form.content_type},
            )
        except (httpx.HTTPError, UploadAborted) as e:
            request_error = e
        finally:
            # Unblocks the producer if the request stopped reading early
            pipe.abort()
            await producer

        producer_error = None if errors.empty() else errors.get_nowait()
        if producer_error is not None and not isinstance(producer_error, BrokenPipeError):
            if isinstance(producer_error, UploadError):
                raise producer_error
            raise UploadError(
                f"failed to encode deploy request for {slug}: {producer_error}"
            ) from producer_error
        if request_error is not None:
            raise UploadError(f"failed to deploy function: {request_error}") from request_error

        body = response.text
        if response.status_code != 201:
            raise UploadError(
                f"unexpected deploy status {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise UploadError(
                f"unexpected deploy response: {body}",
                status_code=response.status_code,
                body=body,
            )
        if producer_error is not None:
            raise UploadError(
                f"deploy request for {slug} completed before the upload was fully sent",
                status_code=response.status_code,
                body=body,
            )
        return data
