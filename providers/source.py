"""Quota source interface and the multi-provider combinator."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable

from errors import SourceError
from logger import logger
from .models import QuotaSnapshot

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaSource(ABC):
    """Anything that can produce a QuotaSnapshot."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in state keys and payloads."""
        pass

    @abstractmethod
    async def fetch_quota(self) -> QuotaSnapshot:
        """Fetch a fresh snapshot. Raises SourceError on any failure."""
        pass

    async def close(self) -> None:
        """Release long-lived resources (browsers, sessions)."""
        return None


class CombinedQuotaSource(QuotaSource):
    """Fetch several providers concurrently and merge their snapshots.

    A provider that fails is reported in ``QuotaSnapshot.errors``; only when
    every provider fails does the fetch raise.
    """

    def __init__(self, sources: list[QuotaSource], clock: Clock = utc_now):
        if not sources:
            raise ValueError("At least one quota source is required")
        self.sources = sources
        self._clock = clock

    @property
    def name(self) -> str:
        return "+".join(s.name for s in self.sources)

    async def fetch_quota(self) -> QuotaSnapshot:
        results = await asyncio.gather(
            *[s.fetch_quota() for s in self.sources],
            return_exceptions=True
        )

        providers = []
        errors = []
        for source, result in zip(self.sources, results):
            if isinstance(result, SourceError):
                logger.warning(f"Quota fetch failed for {source.name}: {result}")
                errors.append(str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                providers.extend(result.providers)

        if not providers:
            raise SourceError(self.name, "; ".join(errors) or "no data")

        return QuotaSnapshot(
            providers=tuple(providers),
            captured_at=self._clock(),
            errors=tuple(errors),
        )

    async def close(self) -> None:
        for source in self.sources:
            try:
                await source.close()
            except Exception as e:
                logger.warning(f"Failed to close {source.name} source: {e}")
