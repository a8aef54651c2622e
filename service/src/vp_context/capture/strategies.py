"""Ordered fallback chain for acquiring the primary capture stream."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..exceptions import (
    CaptureError,
    CaptureUnavailableError,
    PermissionDeniedError,
    UserCancelledError,
)
from .media import MediaStream

logger = logging.getLogger(__name__)


class CaptureStrategy(ABC):
    """One way of obtaining a tab/display stream."""

    name: str = "capture"

    @abstractmethod
    async def acquire(self) -> MediaStream:
        """
        Acquire a stream.

        Raises:
            CaptureUnavailableError: mechanism not usable on this page
            PermissionDeniedError: user or browser refused access
            UserCancelledError: interactive picker dismissed
        """


@dataclass
class AcquisitionAttempt:
    """Outcome of trying one strategy."""

    strategy: str
    succeeded: bool
    code: Optional[str] = None
    reason: Optional[str] = None


class FallbackChain:
    """
    Try strategies in order; the first success wins.

    Unavailability or refusal of a strategy moves on to the next one.
    A cancelled picker ends the chain immediately. Every attempt is kept
    in ``attempts`` for diagnostics.
    """

    def __init__(self, strategies: Sequence[CaptureStrategy]):
        if not strategies:
            raise ValueError("At least one capture strategy is required")
        self.strategies = list(strategies)
        self.attempts: List[AcquisitionAttempt] = []

    async def acquire(self) -> MediaStream:
        self.attempts = []
        last_error: Optional[CaptureError] = None

        for strategy in self.strategies:
            try:
                stream = await strategy.acquire()
            except UserCancelledError as e:
                self.attempts.append(
                    AcquisitionAttempt(strategy.name, False, e.code, e.message)
                )
                raise
            except (CaptureUnavailableError, PermissionDeniedError) as e:
                logger.info(f"Capture strategy '{strategy.name}' failed: {e.message}")
                self.attempts.append(
                    AcquisitionAttempt(strategy.name, False, e.code, e.message)
                )
                last_error = e
                continue

            self.attempts.append(AcquisitionAttempt(strategy.name, True))
            logger.info(f"Acquired capture stream via '{strategy.name}'")
            return stream

        assert last_error is not None
        raise last_error

    def describe(self) -> str:
        """Human-readable summary of the attempts."""
        return "; ".join(
            f"{a.strategy}: {'ok' if a.succeeded else a.reason}" for a in self.attempts
        )
