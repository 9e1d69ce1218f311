# genstudio/orchestration/lifecycle.py
"""
Studio session lifecycle.

Wires the API client, quota gates, input preparer, driver, persister and the
two state machines, and coordinates startup and shutdown.
"""

import logging
from typing import Any

import httpx

from genstudio.client.driver import GenerationRequestDriver
from genstudio.client.http import StudioApiClient
from genstudio.config.schema import StudioConfig
from genstudio.models.jobs import JobKind, JobSlot
from genstudio.persistence.persister import ResultPersister
from genstudio.validation.inputs import InputPreparer, PreviewRegistry

from .machine import ChangeListener, GenerationStateMachine
from .progress import Scheduler
from .quota_gate import QuotaGate

logger = logging.getLogger(__name__)


class StudioSession:
    """
    One member's studio session.

    Manages:
        - The shared API client and preview registry
        - One quota gate per generation kind
        - A selfie and a story state machine sharing one in-flight slot
        - Startup quota fetch and shutdown teardown
    """

    def __init__(
        self,
        config: StudioConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        scheduler: Scheduler | None = None,
        on_change: ChangeListener | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            config: Studio configuration (defaults when None)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            scheduler: Timer source for progress estimation (default: asyncio loop)
            on_change: Snapshot listener attached to both machines
        """
        self._config = config or StudioConfig()
        self._api = StudioApiClient(self._config.api, transport=transport)
        self._previews = PreviewRegistry()
        self._slot = JobSlot()

        selfie_cfg = self._config.selfie
        story_cfg = self._config.story

        self._selfie_gate = QuotaGate(
            lambda: self._api.fetch_quota(selfie_cfg.quota_path),
            fallback_limit=selfie_cfg.fallback_limit,
        )
        self._story_gate = QuotaGate(
            lambda: self._api.fetch_quota(story_cfg.quota_path),
            fallback_limit=story_cfg.fallback_limit,
        )

        self._preparer = InputPreparer(selfie_cfg, self._previews)
        self._driver = GenerationRequestDriver(self._api, selfie_cfg, story_cfg)
        self._persister = ResultPersister(
            self._api, story_cfg, save_timeout=self._config.api.save_timeout
        )

        self._selfie = GenerationStateMachine(
            JobKind.SELFIE,
            gate=self._selfie_gate,
            preparer=self._preparer,
            driver=self._driver,
            config=selfie_cfg,
            scheduler=scheduler,
            slot=self._slot,
            on_change=on_change,
        )
        self._story = GenerationStateMachine(
            JobKind.STORY,
            gate=self._story_gate,
            preparer=self._preparer,
            driver=self._driver,
            config=story_cfg,
            persister=self._persister,
            scheduler=scheduler,
            slot=self._slot,
            on_change=on_change,
        )
        logger.info(f"Created StudioSession for {self._config.api.base_url}")

    @property
    def config(self) -> StudioConfig:
        return self._config

    @property
    def api(self) -> StudioApiClient:
        return self._api

    @property
    def previews(self) -> PreviewRegistry:
        return self._previews

    @property
    def slot(self) -> JobSlot:
        return self._slot

    @property
    def selfie(self) -> GenerationStateMachine:
        """Selfie studio state machine."""
        return self._selfie

    @property
    def story(self) -> GenerationStateMachine:
        """Story generator state machine."""
        return self._story

    def machine(self, kind: JobKind) -> GenerationStateMachine:
        return self._selfie if kind is JobKind.SELFIE else self._story

    async def startup(self) -> None:
        """Fetch both quotas. Failures fail open and never block startup."""
        logger.info("Starting studio session...")
        selfie_quota = await self._selfie_gate.refresh()
        story_quota = await self._story_gate.refresh()
        logger.info(
            f"Studio session started: selfie {selfie_quota.remaining} left, "
            f"story {story_quota.remaining} left"
        )

    async def fetch_history(self) -> list[dict[str, Any]]:
        """Previously generated selfies."""
        return await self._driver.fetch_history()

    async def shutdown(self) -> None:
        """
        Shut down the session.

        Steps:
            1. Reset both machines (cancels timers, revokes previews)
            2. Close the HTTP client
        """
        logger.info("Shutting down studio session...")
        self._selfie.reset()
        self._story.reset()
        if self._previews.active:
            logger.warning(f"{len(self._previews.active)} preview(s) still live after reset")
        await self._api.close()
        logger.info("Studio session shutdown complete")

    async def __aenter__(self) -> "StudioSession":
        await self.startup()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()
