"""Locate the tutoring app API among the known base URLs."""

import asyncio
import logging
from typing import List, Optional

import httpx

from ..config import settings
from ..state_store import DISCOVERED_BASE_URL_KEY, StateStore

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/hints"


class BaseUrlResolver:
    """
    Try candidate base URLs and remember the first that answers.

    The last working base URL is persisted and tried first next time.
    When nothing answers, the first candidate is used so requests fail
    with a readable transport error instead of raising here.
    """

    def __init__(
        self,
        state: Optional[StateStore] = None,
        candidates: Optional[List[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        check_timeout: float = 3.0,
    ):
        self.state = state
        self.candidates = list(candidates or settings.BASE_URL_CANDIDATES)
        self.check_timeout = check_timeout
        self._transport = transport
        self._base_url: Optional[str] = None
        self._lock = asyncio.Lock()

    @classmethod
    def fixed(cls, base_url: str) -> "BaseUrlResolver":
        resolver = cls(candidates=[base_url])
        resolver._base_url = base_url.rstrip("/")
        return resolver

    async def _ordered_candidates(self) -> List[str]:
        saved = await self.state.get(DISCOVERED_BASE_URL_KEY) if self.state else None
        ordered = [saved] if saved else []
        ordered.extend(c for c in self.candidates if c != saved)
        return [c.rstrip("/") for c in ordered]

    async def resolve(self) -> str:
        async with self._lock:
            if self._base_url:
                return self._base_url

            candidates = await self._ordered_candidates()
            async with httpx.AsyncClient(
                timeout=self.check_timeout, transport=self._transport
            ) as client:
                for base in candidates:
                    try:
                        response = await client.get(base + HEALTH_PATH)
                    except httpx.HTTPError as e:
                        logger.debug(f"Base URL {base} unreachable: {e}")
                        continue
                    if response.is_success:
                        self._base_url = base
                        if self.state:
                            await self.state.set({DISCOVERED_BASE_URL_KEY: base})
                        logger.info(f"Using tutoring API at {base}")
                        return base

            logger.warning(
                "Could not reach the tutoring API; is the app server running?"
            )
            return candidates[0]

    def forget(self) -> None:
        """Drop the cached base URL so the next request checks the candidates again."""
        self._base_url = None
