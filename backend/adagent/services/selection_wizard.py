"""
Selection Wizard — step-gated state machine for choosing Meta assets.

Steps: 1 Page → 2 Ad Account → 3 Pixel → 4 Instagram → 5 Catalog → 6 Review.
State is only changed through the named transitions below, one at a time
under the wizard lock. A kind can only be chosen on its own step. Blocked
moves set a ValidationError on the state and return False instead of raising.
"""

import asyncio
import logging
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from adagent.errors import LinkError, SubmissionError, ValidationError
from adagent.models import SelectionMode
from adagent.services.credential_store import LinkedCredential
from adagent.services.discovery_service import ResourceDiscovery, ResourceKind
from adagent.services.retry_orchestrator import DiscoveryOrchestrator
from adagent.services.submission_service import SelectionRecord, SubmissionService
from adagent.services.wizard_state import (
    KIND_STEPS,
    STEP_AD_ACCOUNT,
    STEP_PAGE,
    STEP_PIXEL,
    STEP_REVIEW,
    STEP_SOCIAL_PROFILE,
    WizardState,
)
from adagent.utils import short_id

logger = logging.getLogger(__name__)

_GATE_MESSAGES = {
    STEP_PAGE: "Please select a Page to continue.",
    STEP_AD_ACCOUNT: "Please select an Ad Account to continue.",
    STEP_PIXEL: "Please select a Pixel to continue.",
    STEP_SOCIAL_PROFILE: "Please choose an Instagram account, or select none, to continue.",
}


class SelectionWizard:
    """Owns one WizardState and the discovery running on its behalf."""

    def __init__(
        self,
        credential: LinkedCredential,
        mode: SelectionMode = SelectionMode.STANDARD,
        discovery: Optional[ResourceDiscovery] = None,
        brief_id: Optional[str] = None,
        **orchestrator_options,
    ):
        self.credential = credential
        self.state = WizardState(user_id=credential.user_id, mode=mode, brief_id=brief_id)
        self.discovery = discovery or ResourceDiscovery()
        self.orchestrator = DiscoveryOrchestrator(self.discovery, self.state, **orchestrator_options)
        self._lock = asyncio.Lock()
        self.closed = False

    @property
    def user_id(self) -> str:
        return self.state.user_id

    # ── Discovery ────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        logger.info(f"Selection wizard started for user {short_id(self.user_id)} mode={self.state.mode.value}")
        return self.orchestrator.start(self.credential)

    def retry_discovery(self) -> asyncio.Task:
        """Manual retry: cancels any running discovery and starts over from attempt 0."""
        self.state.last_error = None
        return self.orchestrator.start(self.credential)

    # ── Selection ────────────────────────────────────────────────────

    def _check_step(self, kind: ResourceKind) -> bool:
        if self.state.current_step != KIND_STEPS[kind]:
            self.state.last_error = ValidationError(
                f"The {kind.value.replace('_', ' ')} can only be changed on its own step."
            )
            return False
        return True

    async def select(self, kind: Union[ResourceKind, str], item_id: str) -> bool:
        kind = ResourceKind(kind)
        async with self._lock:
            if not self._check_step(kind):
                return False
            if self.state.resources.find(kind, item_id) is None:
                self.state.last_error = ValidationError(f"Unknown {kind.value.replace('_', ' ')} selection.")
                return False

            if kind == ResourceKind.PAGE and item_id != self.state.resources.social_profiles_page_id:
                self.state.reset_social_profiles()
            self.state.selected[kind] = item_id
            if kind == ResourceKind.SOCIAL_PROFILE:
                self.state.social_profile_declined = False
            self.state.last_error = None
            return True

    async def clear(self, kind: Union[ResourceKind, str]) -> bool:
        kind = ResourceKind(kind)
        async with self._lock:
            if not self._check_step(kind):
                return False
            self.state.selected[kind] = None
            if kind == ResourceKind.SOCIAL_PROFILE:
                self.state.social_profile_declined = False
            return True

    async def decline_social_profile(self) -> bool:
        """Explicit "none" for the Instagram step."""
        async with self._lock:
            if not self._check_step(ResourceKind.SOCIAL_PROFILE):
                return False
            self.state.selected[ResourceKind.SOCIAL_PROFILE] = None
            self.state.social_profile_declined = True
            self.state.last_error = None
            return True

    # ── Navigation ───────────────────────────────────────────────────

    def _gate_error(self, step: int) -> Optional[str]:
        state = self.state
        if step == STEP_PAGE and state.selected_item(ResourceKind.PAGE) is None:
            return _GATE_MESSAGES[STEP_PAGE]
        if step == STEP_AD_ACCOUNT and state.selected_item(ResourceKind.AD_ACCOUNT) is None:
            return _GATE_MESSAGES[STEP_AD_ACCOUNT]
        if step == STEP_PIXEL and state.selected_item(ResourceKind.PIXEL) is None:
            return _GATE_MESSAGES[STEP_PIXEL]
        if step == STEP_SOCIAL_PROFILE and state.resources.social_profiles:
            if state.selected_item(ResourceKind.SOCIAL_PROFILE) is None and not state.social_profile_declined:
                return _GATE_MESSAGES[STEP_SOCIAL_PROFILE]
        return None

    async def next_step(self) -> bool:
        async with self._lock:
            step = self.state.current_step
            if step >= STEP_REVIEW:
                self.state.last_error = ValidationError("Review your selections and submit.")
                return False

            message = self._gate_error(step)
            if message:
                self.state.last_error = ValidationError(message)
                return False

            profile_error = None
            if step == STEP_PAGE:
                profile_error = await self._load_social_profiles()
                if isinstance(profile_error, ValidationError):
                    self.state.last_error = profile_error
                    return False

            self.state.current_step = step + 1
            self.state.last_error = profile_error
            return True

    async def _load_social_profiles(self) -> Optional[LinkError]:
        """Fetch Instagram accounts for the selected page. Returns the fetch error, if any."""
        state = self.state
        page_id = state.selected[ResourceKind.PAGE]
        if state.resources.social_profiles_page_id != page_id:
            state.selected[ResourceKind.SOCIAL_PROFILE] = None
            state.social_profile_declined = False

        state.social_profiles_loading = True
        try:
            result = await self.discovery.fetch_social_profiles(self.credential, page_id)
        finally:
            state.social_profiles_loading = False

        # Discovery may have replaced the page while the fetch was in flight
        if state.selected[ResourceKind.PAGE] != page_id:
            return ValidationError(_GATE_MESSAGES[STEP_PAGE])

        state.resources.social_profiles = result.items
        state.resources.social_profiles_page_id = page_id
        if state.resources.find(ResourceKind.SOCIAL_PROFILE, state.selected[ResourceKind.SOCIAL_PROFILE]) is None:
            state.selected[ResourceKind.SOCIAL_PROFILE] = None
        return result.error

    async def back(self) -> bool:
        async with self._lock:
            if self.state.current_step <= STEP_PAGE:
                self.state.last_error = ValidationError("Already at the first step.")
                return False
            self.state.current_step -= 1
            if isinstance(self.state.last_error, ValidationError):
                self.state.last_error = None
            return True

    # ── Submission / teardown ────────────────────────────────────────

    async def submit(self, db: AsyncSession, service: Optional[SubmissionService] = None) -> Optional[SelectionRecord]:
        """
        Commit the selection from the review step.
        Returns None (with a ValidationError on the state) when not at review.
        Raises SubmissionError with all staged choices kept.
        """
        async with self._lock:
            if self.state.current_step != STEP_REVIEW:
                self.state.last_error = ValidationError("Review your selections before submitting.")
                return None

            service = service or SubmissionService(db)
            try:
                record = await service.submit(self.state)
            except SubmissionError as e:
                self.state.last_error = e
                raise

            self.state.last_error = None
            logger.info(f"Selection wizard submitted for user {short_id(self.user_id)}")
            return record

    async def close(self) -> None:
        """Cancel discovery (countdown, hard timeout, in-flight calls)."""
        await self.orchestrator.stop()
        self.closed = True
        logger.info(f"Selection wizard closed for user {short_id(self.user_id)}")


class WizardRegistry:
    """At most one open wizard per user."""

    def __init__(self):
        self._wizards: dict[str, SelectionWizard] = {}

    def get(self, user_id: str) -> Optional[SelectionWizard]:
        return self._wizards.get(user_id)

    async def open(self, wizard: SelectionWizard) -> SelectionWizard:
        previous = self._wizards.pop(wizard.user_id, None)
        if previous is not None:
            await previous.close()
        self._wizards[wizard.user_id] = wizard
        wizard.start()
        return wizard

    async def discard(self, user_id: str) -> bool:
        wizard = self._wizards.pop(user_id, None)
        if wizard is None:
            return False
        await wizard.close()
        return True

    async def close_all(self) -> None:
        wizards = list(self._wizards.values())
        self._wizards.clear()
        for wizard in wizards:
            await wizard.close()
        if wizards:
            logger.info(f"Closed {len(wizards)} open selection wizard(s)")


wizard_registry = WizardRegistry()
