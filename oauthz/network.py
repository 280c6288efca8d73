"""
Storage network client. The issuer only needs the current epoch, read from a REST
gateway's network-info endpoint. No retries; the caller decides what a failure means.
"""
from typing import Protocol

import httpx

from oauthz.config import DEFAULT_REQUEST_TIMEOUT
from oauthz.errors import EpochQueryFailed


class EpochSource(Protocol):
    def current_epoch(self) -> int: ...


class RestGatewayClient:
    """GET <endpoint>/v1/network-info -> {"currentEpoch": N, ...}"""

    def __init__(self, endpoint: str, timeout: float | None = None):
        self.endpoint = endpoint.rstrip("/")
        if timeout is None:
            timeout = DEFAULT_REQUEST_TIMEOUT.total_seconds()
        self.timeout = timeout

    def current_epoch(self) -> int:
        try:
            r = httpx.get(
                f"{self.endpoint}/v1/network-info",
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise EpochQueryFailed(f"network info request failed: {e}") from e
        if r.status_code != 200:
            raise EpochQueryFailed(f"network info returned {r.status_code}")
        try:
            epoch = r.json()["currentEpoch"]
        except (ValueError, KeyError, TypeError) as e:
            raise EpochQueryFailed("network info has no currentEpoch") from e
        if isinstance(epoch, bool) or not isinstance(epoch, int) or epoch < 0:
            raise EpochQueryFailed(f"invalid currentEpoch: {epoch!r}")
        return epoch
