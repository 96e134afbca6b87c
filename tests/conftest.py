"""
Test configuration and fixtures for edgefn tests.

Provides shared fixtures for:
- A function project laid out on disk
- Deploy configuration pointing at that project
- A fake bundler and a mock deploy endpoint
- Environment variable management
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx
import pytest

from edgefn.config import DeployConfig


def parse_multipart(body: bytes, content_type: str) -> List[Tuple[str, Optional[str], bytes]]:
    """Split a multipart/form-data body into (name, filename, content) parts."""
    boundary = content_type.split("boundary=", 1)[1].encode()
    parts = []
    for chunk in body.split(b"--" + boundary)[1:]:
        if chunk.startswith(b"--"):
            break
        headers, _, content = chunk.lstrip(b"\r\n").partition(b"\r\n\r\n")
        if content.endswith(b"\r\n"):
            content = content[:-2]
        text = headers.decode()
        name = re.search(r'name="([^"]*)"', text).group(1)
        filename = re.search(r'filename="([^"]*)"', text)
        parts.append((name, filename.group(1) if filename else None, content))
    return parts


class FakeBundler:
    """Records bundle calls and returns fixed bytes."""

    def __init__(self, output: bytes = b"raw-eszip", fail_on: Optional[str] = None):
        self.output = output
        self.fail_on = fail_on
        self.calls: List[Tuple[str, Optional[str]]] = []

    async def bundle(self, entrypoint: str, import_map: Optional[str] = None) -> bytes:
        from edgefn.core.exceptions import BundleError

        self.calls.append((entrypoint, import_map))
        if self.fail_on and self.fail_on in entrypoint:
            raise BundleError("failed to bundle function", returncode=1, output="boom")
        return self.output


class DeployEndpoint:
    """httpx mock transport handler standing in for the deploy API."""

    def __init__(self, status_code: int = 201, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"id": "fn-id", "status": "ACTIVE"}
        self.requests: List[Dict] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        content = await request.aread()
        self.requests.append(
            {
                "url": request.url,
                "headers": request.headers,
                "parts": parse_multipart(content, request.headers["content-type"]),
            }
        )
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, text=self.body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url="https://api.example.com", transport=httpx.MockTransport(self)
        )


@pytest.fixture
def function_project(tmp_path: Path) -> Path:
    """Provide a project with functions ``hello`` and ``world``.

    hello/index.ts imports ./helper.ts which imports ../_shared/util.ts.
    """
    functions = tmp_path / "functions"
    (functions / "hello").mkdir(parents=True)
    (functions / "world").mkdir()
    (functions / "_shared").mkdir()
    (functions / "hello" / "index.ts").write_text(
        'import { greet } from "./helper.ts";\n'
        'import { serve } from "https://deno.land/std/http/server.ts";\n'
        "serve(() => new Response(greet()));\n"
    )
    (functions / "hello" / "helper.ts").write_text(
        'import { name } from "../_shared/util.ts";\n'
        "export const greet = () => `hi ${name}`;\n"
    )
    (functions / "_shared" / "util.ts").write_text('export const name = "edge";\n')
    (functions / "world" / "index.ts").write_text('console.log("world");\n')
    return tmp_path


@pytest.fixture
def deploy_config(function_project: Path) -> DeployConfig:
    return DeployConfig(
        project_ref="abcdefghijklmnopqrst",
        project_root=function_project,
        api_url="https://api.example.com",
        access_token="test-token",
    )


@pytest.fixture
def fake_bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture
def deploy_endpoint() -> DeployEndpoint:
    return DeployEndpoint()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> Dict[str, str]:
    """Provide patched environment variables for tests."""
    env_vars = {
        "EDGEFN_ACCESS_TOKEN": "test-token-123",
        "EDGEFN_PROJECT_REF": "abcdefghijklmnopqrst",
        "LOG_LEVEL": "ERROR",  # Suppress logs during tests
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars
