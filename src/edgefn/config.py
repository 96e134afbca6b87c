"""Configuration management for edgefn deployments."""

import os
from pathlib import Path
from typing import Dict, Literal, NamedTuple, Optional

from pydantic import BaseModel, Field

from .functions.models import FunctionConfig

DEFAULT_API_URL = "https://api.supabase.com"
DEFAULT_DASHBOARD_URL = "https://supabase.com/dashboard"
DEFAULT_RUNTIME_IMAGE = "public.ecr.aws/supabase/edge-runtime:v1.58.3"


class ProjectPaths(NamedTuple):
    """Paths derived from the project root."""

    project_root: Path
    functions_dir: Path
    fallback_import_map: Path
    temp_dir: Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


class DeployConfig(BaseModel):
    """Explicit configuration passed to the deployment orchestrator.

    Replaces any process-wide flags: debug output, bundler selection and API
    endpoints are all read from this value.
    """

    project_ref: str = Field(..., description="Remote project identifier")
    project_root: Path = Field(default_factory=Path.cwd)
    functions_dir: str = "functions"
    api_url: str = DEFAULT_API_URL
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    access_token: Optional[str] = None
    debug: bool = False
    bundler: Literal["docker", "native"] = "docker"
    runtime_image: str = DEFAULT_RUNTIME_IMAGE
    cache_volume: str = Field(
        "edgefn_edge_runtime_cache",
        description="Docker volume reused as the bundler's dependency cache",
    )
    bundler_bin: str = "edge-runtime"
    temp_dir: str = ".temp"
    upload_timeout: Optional[float] = None
    functions: Dict[str, FunctionConfig] = Field(default_factory=dict)

    @classmethod
    def from_env(cls, **overrides) -> "DeployConfig":
        """Build a config from EDGEFN_* environment variables.

        Keyword overrides win over the environment; ``None`` overrides are ignored.
        """
        values = {
            "project_ref": os.environ.get("EDGEFN_PROJECT_REF", ""),
            "api_url": os.environ.get("EDGEFN_API_URL", DEFAULT_API_URL),
            "dashboard_url": os.environ.get(
                "EDGEFN_DASHBOARD_URL", DEFAULT_DASHBOARD_URL
            ),
            "access_token": os.environ.get("EDGEFN_ACCESS_TOKEN") or None,
            "debug": _env_bool("EDGEFN_DEBUG"),
            "bundler": os.environ.get("EDGEFN_BUNDLER", "docker"),
            "runtime_image": os.environ.get(
                "EDGEFN_RUNTIME_IMAGE", DEFAULT_RUNTIME_IMAGE
            ),
            "bundler_bin": os.environ.get("EDGEFN_BUNDLER_BIN", "edge-runtime"),
        }
        cache_volume = os.environ.get("EDGEFN_CACHE_VOLUME")
        if cache_volume:
            values["cache_volume"] = cache_volume
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def paths(self) -> ProjectPaths:
        root = Path(self.project_root)
        functions_dir = root / self.functions_dir
        return ProjectPaths(
            project_root=root,
            functions_dir=functions_dir,
            fallback_import_map=functions_dir / "import_map.json",
            temp_dir=root / self.temp_dir,
        )

    def get_function(self, slug: str) -> FunctionConfig:
        return self.functions.get(slug) or FunctionConfig()
