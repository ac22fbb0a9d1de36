"""
Policy Snapshot Source

Supplies the AIPREF policy snapshot embedded in each receipt. Either fetched
over HTTP (time-bounded) or served from configuration.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


class PolicySnapshotError(Exception):
    """Snapshot could not be obtained."""
    pass


class PolicySnapshotSource(ABC):
    @abstractmethod
    async def fetch(self) -> Dict[str, Any]:
        pass


class StaticPolicySnapshotSource(PolicySnapshotSource):
    def __init__(self, snapshot: Dict[str, Any]):
        self.snapshot = snapshot

    async def fetch(self) -> Dict[str, Any]:
        return dict(self.snapshot)


class HttpPolicySnapshotSource(PolicySnapshotSource):
    """GET the snapshot URL; anything but a 2xx JSON object is an error."""

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def fetch(self) -> Dict[str, Any]:
        try:
            data = await asyncio.wait_for(self._get(), self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise PolicySnapshotError(f"Policy snapshot fetch timed out after {self.timeout_seconds}s") from e
        except (httpx.HTTPError, ValueError) as e:
            raise PolicySnapshotError(f"Policy snapshot fetch failed: {type(e).__name__}") from e

        if not isinstance(data, dict):
            raise PolicySnapshotError("Policy snapshot is not a JSON object")
        return data

    async def _get(self) -> Any:
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds)) as client:
            resp = await client.get(self.url)
            resp.raise_for_status()
            return resp.json()


def build_policy_source(settings) -> PolicySnapshotSource:
    if settings.policy_snapshot_url:
        logger.info(f"Policy snapshots fetched from {settings.policy_snapshot_url}")
        return HttpPolicySnapshotSource(settings.policy_snapshot_url, settings.policy_timeout_seconds)
    return StaticPolicySnapshotSource(settings.aipref_snapshot)
