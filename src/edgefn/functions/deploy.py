"""
Function deployment orchestrator.

Resolves per-function configuration, then bundles, compresses and uploads
each function in turn. Functions are deployed strictly one at a time and the
first failure aborts the rest of the batch; functions already deployed are
left in place.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import httpx

from edgefn.config import DeployConfig
from edgefn.core.exceptions import ConfigError
from edgefn.core.utils.http import get_authenticated_httpx_client
from edgefn.core.validation import (
    FUNC_SLUG_PATTERN,
    validate_access_token_with_context,
    validate_function_slug,
)

from .bundler import Bundler, get_bundler
from .compress import compress
from .models import FunctionConfig, FunctionMetadata
from .upload import UploadManifest, UploadPipeline
from .walker import read_from

log = logging.getLogger(__name__)

# Compressed bundles larger than this spill from memory to disk
SPOOL_MAX_SIZE = 8 * 1024 * 1024


@dataclass
class DeploySummary:
    """Outcome of a deploy batch."""

    project_ref: str
    dashboard_url: str
    deployed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def functions_url(self) -> str:
        return f"{self.dashboard_url}/project/{self.project_ref}/functions"

    def message(self) -> str:
        return (
            f"Deployed Functions on project {self.project_ref}: "
            f"{', '.join(self.deployed)}"
        )


def get_function_slugs(config: DeployConfig) -> List[str]:
    """Discover functions as ``<functions_dir>/*/index.ts`` with valid slug names."""
    functions_dir = config.paths().functions_dir
    slugs = []
    for index in sorted(functions_dir.glob("*/index.ts")):
        slug = index.parent.name
        if FUNC_SLUG_PATTERN.match(slug):
            slugs.append(slug)
        else:
            log.debug(f"Ignoring function directory with invalid name: {slug}")
    return slugs


def _project_relative(config: DeployConfig, path: str) -> str:
    root = config.paths().project_root.resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    candidate = candidate.resolve()
    try:
        return candidate.relative_to(root).as_posix()
    except ValueError:
        return candidate.as_posix()


def resolve_function_configs(
    config: DeployConfig,
    slugs: Iterable[str],
    import_map_path: Optional[str] = None,
    no_verify_jwt: Optional[bool] = None,
) -> Dict[str, FunctionConfig]:
    """Apply defaults and command overrides to each function's config.

    Import map precedence: explicit ``import_map_path``, then the function's
    own setting, then ``<functions_dir>/import_map.json`` when it exists.
    """
    paths = config.paths()
    fallback = None
    if paths.fallback_import_map.is_file():
        fallback = f"{config.functions_dir}/import_map.json"
    override = _project_relative(config, import_map_path) if import_map_path else None

    resolved: Dict[str, FunctionConfig] = {}
    for slug in slugs:
        fc = config.get_function(slug)
        updates = {}
        if not fc.entrypoint:
            updates["entrypoint"] = f"{config.functions_dir}/{slug}/index.ts"
        if override:
            updates["import_map"] = override
        elif not fc.import_map and fallback:
            updates["import_map"] = fallback
        if no_verify_jwt is not None:
            updates["verify_jwt"] = not no_verify_jwt
        resolved[slug] = fc.model_copy(update=updates)
    return resolved


class DeploymentOrchestrator:
    """Drive bundle, compress and upload for a batch of functions."""

    def __init__(
        self,
        config: DeployConfig,
        bundler: Optional[Bundler] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.bundler = bundler or get_bundler(config)
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        token = self.config.access_token or validate_access_token_with_context(
            "deploy functions"
        )
        return get_authenticated_httpx_client(
            access_token=token,
            base_url=self.config.api_url,
            timeout=self.config.upload_timeout,
        )

    async def deploy(
        self,
        slugs: Optional[List[str]] = None,
        import_map_path: Optional[str] = None,
        no_verify_jwt: Optional[bool] = None,
    ) -> DeploySummary:
        """Deploy ``slugs`` (or every discovered function) sequentially.

        Raises:
            ConfigError: Invalid slug, no functions, or a missing entrypoint.
            BundleError, CompressError, UploadError: From the failing function.
        """
        if not self.config.project_ref:
            raise ConfigError("project ref is required to deploy functions")
        if slugs:
            for slug in slugs:
                validate_function_slug(slug)
        else:
            slugs = get_function_slugs(self.config)
        if not slugs:
            raise ConfigError(
                f"No Functions specified or found in {self.config.functions_dir}"
            )

        functions = resolve_function_configs(
            self.config, slugs, import_map_path, no_verify_jwt
        )
        summary = DeploySummary(
            project_ref=self.config.project_ref,
            dashboard_url=self.config.dashboard_url,
        )

        client = self._get_client()
        try:
            pipeline = UploadPipeline(client, self.config.project_ref)
            for slug, fc in functions.items():
                if not fc.is_enabled():
                    log.info(f"Skipped deploying Function: {slug}")
                    summary.skipped.append(slug)
                    continue
                await self.deploy_function(slug, fc, pipeline)
                summary.deployed.append(slug)
        finally:
            if self._client is None:
                await client.aclose()

        return summary

    async def deploy_function(
        self, slug: str, fc: FunctionConfig, pipeline: UploadPipeline
    ) -> dict:
        root = self.config.paths().project_root
        if not (root / fc.entrypoint).is_file():
            raise ConfigError(f"Entrypoint for Function {slug} not found: {fc.entrypoint}")

        raw = await self.bundler.bundle(fc.entrypoint, fc.import_map)

        log.info(f"Deploying Function: {slug}")
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as artifact:
            compress(BytesIO(raw), artifact)
            artifact.seek(0)
            manifest = UploadManifest(
                metadata=FunctionMetadata.from_config(slug, fc),
                read_file=read_from(root),
                root=root,
                bundle=artifact,
            )
            result = await pipeline.upload(slug, manifest)

        log.debug(f"Deployed {slug}: {result}")
        return result
