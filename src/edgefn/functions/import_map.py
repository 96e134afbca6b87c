"""Import map parsing and specifier rewriting."""

import json
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field, ValidationError

from edgefn.core.exceptions import ConfigError


class ImportMap(BaseModel):
    """Specifier prefix to replacement table loaded from ``{"imports": {...}}``."""

    imports: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def parse(cls, data: bytes) -> "ImportMap":
        try:
            return cls.model_validate(json.loads(data or b"{}"))
        except (ValueError, ValidationError) as e:
            raise ConfigError(f"failed to parse import map: {e}") from e

    @classmethod
    def load(cls, path: Path) -> "ImportMap":
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise ConfigError(f"failed to load import map: {e}") from e
        return cls.parse(data)

    def resolve(self, specifier: str) -> str:
        """Substitute the longest matching key prefix of ``specifier``."""
        best = ""
        for key in self.imports:
            if specifier.startswith(key) and len(key) > len(best):
                best = key
        if not best:
            return specifier
        return self.imports[best] + specifier[len(best) :]

    def local_dirs(self, import_map_path: Path) -> List[Path]:
        """Directories on disk referenced by relative import map values.

        Values are resolved against the import map's own directory. A value
        ending in ``/`` names a directory; anything else names a file whose
        parent is returned.
        """
        base = Path(import_map_path).resolve().parent
        dirs: List[Path] = []
        for value in self.imports.values():
            if not (value.startswith("./") or value.startswith("../")):
                continue
            target = (base / value).resolve()
            if not value.endswith("/"):
                target = target.parent
            if target not in dirs:
                dirs.append(target)
        return dirs
