"""HTTP utilities for management API communication."""

from typing import Optional

import httpx

from edgefn.core.credentials import get_access_token
from edgefn.core.utils.user_agent import get_user_agent


def get_authenticated_httpx_client(
    access_token: Optional[str] = None,
    base_url: str = "",
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create httpx AsyncClient with management API authentication.

    Includes an Authorization header if an access token is passed or can be
    found in the environment / credentials file.

    Args:
        access_token: Explicit token. Falls back to get_access_token().
        base_url: Base URL every request path is joined onto.
        timeout: Request timeout in seconds. Defaults to 30.0.
        transport: Optional transport override (used by tests).

    Example:
        async with get_authenticated_httpx_client(base_url=api_url) as client:
            response = await client.post("/v1/projects", json=data)
    """
    headers = {"User-Agent": get_user_agent()}
    token = access_token or get_access_token()
    if token:
        headers["Authorization"] = f"Bearer {token}"

    timeout_config = timeout if timeout is not None else 30.0
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout_config,
        headers=headers,
        transport=transport,
    )
