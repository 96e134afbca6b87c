"""
Pydantic models describing a function deployment.

FunctionConfig is the per-function configuration resolved once per deploy
invocation. FunctionMetadata is the JSON record sent as the ``metadata``
multipart field.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FunctionConfig(BaseModel):
    """Per-function deploy configuration.

    ``verify_jwt`` is tri-state: ``None`` leaves the platform default alone.
    ``enabled`` defaults to ``None`` which counts as enabled.
    """

    model_config = ConfigDict(frozen=True)

    entrypoint: Optional[str] = Field(
        None, description="Entrypoint path relative to the project root"
    )
    import_map: Optional[str] = Field(None, description="Import map path")
    verify_jwt: Optional[bool] = None
    enabled: Optional[bool] = None
    static_files: List[str] = Field(
        default_factory=list, description="Glob patterns for static assets"
    )

    def is_enabled(self) -> bool:
        return self.enabled is None or self.enabled


class FunctionMetadata(BaseModel):
    """Metadata field of the deploy request."""

    name: str
    entrypoint_path: str
    import_map_path: Optional[str] = None
    verify_jwt: Optional[bool] = None
    static_patterns: Optional[List[str]] = None

    @classmethod
    def from_config(cls, slug: str, fc: FunctionConfig) -> "FunctionMetadata":
        return cls(
            name=slug,
            entrypoint_path=fc.entrypoint,
            import_map_path=fc.import_map or None,
            verify_jwt=fc.verify_jwt,
            static_patterns=list(fc.static_files) or None,
        )

    def to_json(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode("utf-8")
