"""User-Agent utilities for edgefn HTTP clients."""

import platform
from importlib import metadata


def get_user_agent() -> str:
    """
    Generate the User-Agent string for management API requests.

    Format: edgefn/<version> (<OS> <release>; <arch>) Language/Python <python_version>
    Example: edgefn/0.1.0 (Linux 6.8.0-49-generic; x86_64) Language/Python 3.11.9
    """
    try:
        version = metadata.version("edgefn")
    except metadata.PackageNotFoundError:
        version = "unknown"

    system = platform.system()
    release = platform.release()
    machine = platform.machine()
    python_version = platform.python_version()

    return f"edgefn/{version} ({system} {release}; {machine}) Language/Python {python_version}"
