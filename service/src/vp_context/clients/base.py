"""Shared plumbing for the tutoring app API clients."""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from ..config import settings
from .discovery import BaseUrlResolver

logger = logging.getLogger(__name__)


class ServiceResult(BaseModel):
    """Outcome of one outbound request: either text or a readable error."""

    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str) -> "ServiceResult":
        return cls(error=message)


def extract_text(data: Any) -> Optional[str]:
    """Pull the answer text out of the payload shapes the API returns."""
    if not isinstance(data, dict):
        return None
    for key in ("text", "answer"):
        value = data.get(key)
        if isinstance(value, str):
            return value
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


def error_message(data: Any) -> Optional[str]:
    """Readable error from an ``{"error": ...}`` payload, if there is one."""
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
    return str(error)


class ServiceClient:
    """
    Base class for one endpoint of the tutoring app API.

    Requests never raise: transport failures, non-success responses and
    malformed payloads come back as ``ServiceResult.error`` so callers
    can keep their pipeline running.
    """

    path: str = ""
    name: str = "service"

    def __init__(
        self,
        resolver: BaseUrlResolver,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.resolver = resolver
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy init)."""
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                )
            return self._client

    async def _post(self, **kwargs: Any) -> ServiceResult:
        base = await self.resolver.resolve()
        url = f"{base}{self.path}"

        try:
            client = await self.get_client()
            response = await client.post(url, **kwargs)
        except httpx.TimeoutException:
            logger.warning(f"{self.name} request timed out after {self.timeout}s")
            return ServiceResult.failure(f"{self.name} request timed out (base: {base})")
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} request failed: {e}")
            return ServiceResult.failure(f"{self.name} request failed (base: {base}): {e}")

        try:
            data: Dict[str, Any] = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            message = error_message(data)
            logger.warning(f"{self.name} returned HTTP {response.status_code}: {message}")
            return ServiceResult.failure(
                message or f"{self.name} request failed with HTTP {response.status_code}"
            )

        message = error_message(data)
        if message:
            return ServiceResult.failure(message)

        text = extract_text(data)
        if text is None:
            logger.warning(f"{self.name} returned a malformed payload")
            return ServiceResult.failure(f"{self.name} returned a malformed response")

        return ServiceResult(text=text.strip())

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
