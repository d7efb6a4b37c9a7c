"""
Retry Orchestrator — fan-out discovery with retry-on-empty and a hard timeout.

When every top-level collection comes back empty (Meta often lags right after
a fresh connection) the orchestrator counts down and tries again, up to
`max_retries` extra attempts. A separate wall-clock ceiling races the whole
process so a hung Graph call cannot leave the wizard loading forever.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from adagent.config import get_settings
from adagent.errors import DiscoveryEmpty, DiscoveryTimeout, LinkError
from adagent.services.credential_store import LinkedCredential
from adagent.services.discovery_service import ResourceDiscovery
from adagent.services.wizard_state import WizardState
from adagent.utils import short_id

logger = logging.getLogger(__name__)


class DiscoveryOrchestrator:
    """Drives discovery attempts for one wizard. Owns at most one running task."""

    def __init__(
        self,
        discovery: ResourceDiscovery,
        state: WizardState,
        max_retries: Optional[int] = None,
        countdown_seconds: Optional[int] = None,
        hard_timeout_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.discovery = discovery
        self.state = state
        self.max_retries = settings.discovery_max_retries if max_retries is None else max_retries
        self.countdown_seconds = (
            settings.discovery_retry_countdown_seconds if countdown_seconds is None else countdown_seconds
        )
        self.hard_timeout_seconds = (
            settings.discovery_hard_timeout_seconds if hard_timeout_seconds is None else hard_timeout_seconds
        )
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def discover_all(self, credential: LinkedCredential, attempt: int = 0) -> None:
        """One fan-out/fan-in round; schedules the next round while everything is empty."""
        self.state.is_loading = True
        self.state.attempt_count = attempt + 1
        self.state.retry_countdown_seconds = 0
        if attempt == 0:
            self.state.last_error = None

        logger.info(f"Discovery attempt {attempt + 1} for user {short_id(credential.user_id)}")
        pages, ad_accounts, pixels, catalogs = await asyncio.gather(
            self.discovery.fetch_pages(credential),
            self.discovery.fetch_ad_accounts(credential),
            self.discovery.fetch_pixels(credential),
            self.discovery.fetch_catalogs(credential),
        )

        resources = self.state.resources
        resources.pages = pages.items
        resources.ad_accounts = ad_accounts.items
        resources.pixels = pixels.items
        resources.catalogs = catalogs.items
        pruned = self.state.prune_selections()
        if pruned:
            logger.info(
                f"Cleared stale selections for user {short_id(credential.user_id)}: "
                f"{', '.join(kind.value for kind in pruned)}"
            )

        any_found = pages.found or ad_accounts.found or pixels.found or catalogs.found
        if any_found:
            self.state.is_loading = False
            logger.info(
                f"Discovery done for user {short_id(credential.user_id)}: "
                f"pages={len(pages.items)} ad_accounts={len(ad_accounts.items)} "
                f"pixels={len(pixels.items)} catalogs={len(catalogs.items)}"
            )
            return

        if attempt < self.max_retries:
            logger.info(f"Nothing found yet, retrying in {self.countdown_seconds}s (attempt {attempt + 1})")
            await self._countdown()
            await self.discover_all(credential, attempt + 1)
            return

        logger.warning(f"Discovery empty after {attempt + 1} attempts for user {short_id(credential.user_id)}")
        self.state.is_loading = False
        self.state.last_error = DiscoveryEmpty()

    async def _countdown(self) -> None:
        for remaining in range(self.countdown_seconds, 0, -1):
            self.state.retry_countdown_seconds = remaining
            await self._sleep(1)
        self.state.retry_countdown_seconds = 0

    async def run(self, credential: LinkedCredential) -> None:
        """discover_all raced against the hard timeout. Timing out cancels the in-flight attempt."""
        task = asyncio.ensure_future(self.discover_all(credential))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.hard_timeout_seconds)
            if task not in done:
                task.cancel()
                logger.warning(
                    f"Discovery timed out after {self.hard_timeout_seconds}s for user {short_id(credential.user_id)}"
                )
                self.state.is_loading = False
                self.state.retry_countdown_seconds = 0
                self.state.last_error = DiscoveryTimeout()
                return
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Discovery failed for user {short_id(credential.user_id)}", exc_info=task.exception())
                self.state.is_loading = False
                self.state.retry_countdown_seconds = 0
                self.state.last_error = LinkError()
        finally:
            if not task.done():
                task.cancel()

    def start(self, credential: LinkedCredential) -> asyncio.Task:
        """Schedule `run` in the background, replacing any run already in progress."""
        self.cancel()
        self.state.is_loading = True
        self._task = asyncio.create_task(self.run(credential))
        return self._task

    def cancel(self) -> None:
        """Cancel countdown, timeout and in-flight requests of the current run."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.state.is_loading = False
        self.state.retry_countdown_seconds = 0

    async def stop(self) -> None:
        """Cancel and wait until the running task has unwound."""
        task = self._task
        self.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
