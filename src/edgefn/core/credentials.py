from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

try:
    import tomllib
except ImportError:  # python < 3.11
    import tomli as tomllib


def get_credentials_path() -> Path:
    credentials_file = os.getenv("EDGEFN_CREDENTIALS_FILE")
    if credentials_file:
        return Path(credentials_file).expanduser()

    config_home = os.getenv("XDG_CONFIG_HOME")
    base_dir = (
        Path(config_home).expanduser() if config_home else Path.home() / ".config"
    )
    return base_dir / "edgefn" / "credentials.toml"


def _read_credentials() -> dict:
    path = get_credentials_path()
    if not path.exists():
        return {}

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (OSError, ValueError):
        return {}


def get_access_token() -> Optional[str]:
    token = os.getenv("EDGEFN_ACCESS_TOKEN")
    if token and token.strip():
        return token.strip()

    stored = _read_credentials().get("access_token")
    if isinstance(stored, str) and stored.strip():
        return stored.strip()

    return None
