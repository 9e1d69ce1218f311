# genstudio/orchestration/quota_gate.py
"""
Advisory quota gate.

Decides whether a new generation may start based on the last known quota.
The backend re-checks on submission; this gate only spares the user a
doomed request.
"""

import logging
from collections.abc import Awaitable, Callable

import httpx

from genstudio.models.quota import QuotaDecision, QuotaState

logger = logging.getLogger(__name__)

QuotaFetcher = Callable[[], Awaitable[QuotaState]]


class QuotaGate:
    """
    Cached quota for one generation kind.

    - refresh() fails open: a failed fetch never blocks generation
    - sync() is last-write-wins for quota returned with responses
    - check_and_reserve() decrements optimistically on an allowed start
    """

    def __init__(self, fetcher: QuotaFetcher, fallback_limit: int = 10) -> None:
        """
        Initialize the gate.

        Args:
            fetcher: Coroutine function returning the current QuotaState
            fallback_limit: Allowance assumed when the quota cannot be fetched
        """
        self._fetcher = fetcher
        self._fallback_limit = fallback_limit
        self._state: QuotaState | None = None
        self._reserved = 0

    @property
    def reserved(self) -> int:
        """Local reservations not yet confirmed by a backend quota."""
        return self._reserved

    @property
    def state(self) -> QuotaState | None:
        """Last known quota (None until first refresh or sync)."""
        return self._state

    async def refresh(self) -> QuotaState:
        """
        Re-fetch the quota from the backend.

        On failure, keeps the last known state, or installs an assumed full
        allowance if nothing is known yet.
        """
        try:
            self._state = await self._fetcher()
            self._reserved = 0
            logger.info(f"Quota refreshed: {self._state.remaining} remaining")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Quota fetch failed, allowing generation: {e}")
            if self._state is None:
                self._state = QuotaState(remaining=self._fallback_limit, assumed=True)
        return self._state

    def sync(self, quota: QuotaState | None) -> None:
        """Overwrite the cached quota with one returned alongside a response."""
        if quota is None:
            return
        self._state = quota
        self._reserved = 0
        logger.info(f"Quota synced from response: {quota.remaining} remaining")

    def check_and_reserve(self) -> QuotaDecision:
        """
        Advisory check against the cached quota.

        Unknown quota is allowed (fail-open). An allowed check reserves one
        generation locally; the next sync corrects the count.
        """
        if self._state is None:
            return QuotaDecision(allowed=True, remaining=self._fallback_limit)

        if self._state.remaining <= 0:
            return QuotaDecision(allowed=False, remaining=0)

        remaining = self._state.remaining - 1
        self._state = self._state.model_copy(update={"remaining": remaining})
        self._reserved += 1
        return QuotaDecision(allowed=True, remaining=remaining)

    def release(self) -> None:
        """
        Undo one local reservation after a failure that returned no quota.

        No-op when nothing is reserved (a sync or refresh already replaced
        the reserved count with the backend's).
        """
        if self._reserved <= 0 or self._state is None:
            return
        self._reserved -= 1
        remaining = self._state.remaining + 1
        self._state = self._state.model_copy(update={"remaining": remaining})
        logger.info(f"Released quota reservation: {remaining} remaining")
