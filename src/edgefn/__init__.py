# Load .env vars from file before everything else
from dotenv import load_dotenv

load_dotenv()

from .logger import setup_logging  # noqa: E402

setup_logging()

from typing import TYPE_CHECKING  # noqa: E402

if TYPE_CHECKING:
    from .config import DeployConfig
    from .functions.deploy import DeploymentOrchestrator, DeploySummary
    from .functions.models import FunctionConfig


def __getattr__(name):
    """Lazily import core modules only when accessed."""
    if name == "DeployConfig":
        from .config import DeployConfig

        return DeployConfig
    elif name in ("DeploymentOrchestrator", "DeploySummary"):
        from .functions.deploy import DeploymentOrchestrator, DeploySummary

        attrs = {
            "DeploymentOrchestrator": DeploymentOrchestrator,
            "DeploySummary": DeploySummary,
        }
        return attrs[name]
    elif name == "FunctionConfig":
        from .functions.models import FunctionConfig

        return FunctionConfig
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "DeployConfig",
    "DeploymentOrchestrator",
    "DeploySummary",
    "FunctionConfig",
]
