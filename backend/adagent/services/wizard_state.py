"""
Wizard state — the serialisable snapshot owned by one SelectionWizard.
Mutated only by the wizard's transitions and its discovery orchestrator.
"""

from dataclasses import dataclass, field
from typing import Optional

from adagent.errors import LinkError
from adagent.models import SelectionMode
from adagent.services.discovery_service import ResourceItem, ResourceKind

STEP_PAGE = 1
STEP_AD_ACCOUNT = 2
STEP_PIXEL = 3
STEP_SOCIAL_PROFILE = 4
STEP_CATALOG = 5
STEP_REVIEW = 6

TOP_LEVEL_KINDS = (ResourceKind.PAGE, ResourceKind.AD_ACCOUNT, ResourceKind.PIXEL, ResourceKind.CATALOG)

# The step on which each kind is chosen
KIND_STEPS = {
    ResourceKind.PAGE: STEP_PAGE,
    ResourceKind.AD_ACCOUNT: STEP_AD_ACCOUNT,
    ResourceKind.PIXEL: STEP_PIXEL,
    ResourceKind.SOCIAL_PROFILE: STEP_SOCIAL_PROFILE,
    ResourceKind.CATALOG: STEP_CATALOG,
}


@dataclass
class ResourceSet:
    pages: list[ResourceItem] = field(default_factory=list)
    ad_accounts: list[ResourceItem] = field(default_factory=list)
    pixels: list[ResourceItem] = field(default_factory=list)
    catalogs: list[ResourceItem] = field(default_factory=list)
    social_profiles: list[ResourceItem] = field(default_factory=list)
    social_profiles_page_id: Optional[str] = None

    @property
    def found(self) -> bool:
        """True when any of the four top-level collections is non-empty."""
        return bool(self.pages or self.ad_accounts or self.pixels or self.catalogs)

    def items(self, kind: ResourceKind) -> list[ResourceItem]:
        return {
            ResourceKind.PAGE: self.pages,
            ResourceKind.AD_ACCOUNT: self.ad_accounts,
            ResourceKind.PIXEL: self.pixels,
            ResourceKind.CATALOG: self.catalogs,
            ResourceKind.SOCIAL_PROFILE: self.social_profiles,
        }[kind]

    def find(self, kind: ResourceKind, item_id: Optional[str]) -> Optional[ResourceItem]:
        if not item_id:
            return None
        return next((item for item in self.items(kind) if item.id == item_id), None)

    def to_dict(self) -> dict:
        return {
            "pages": [i.to_dict() for i in self.pages],
            "ad_accounts": [i.to_dict() for i in self.ad_accounts],
            "pixels": [i.to_dict() for i in self.pixels],
            "catalogs": [i.to_dict() for i in self.catalogs],
            "social_profiles": [i.to_dict() for i in self.social_profiles],
            "social_profiles_page_id": self.social_profiles_page_id,
            "found": self.found,
        }


def _empty_selection() -> dict[ResourceKind, Optional[str]]:
    return {kind: None for kind in ResourceKind}


@dataclass
class WizardState:
    user_id: str
    mode: SelectionMode = SelectionMode.STANDARD
    current_step: int = STEP_PAGE
    resources: ResourceSet = field(default_factory=ResourceSet)
    selected: dict[ResourceKind, Optional[str]] = field(default_factory=_empty_selection)
    social_profile_declined: bool = False
    attempt_count: int = 0
    retry_countdown_seconds: int = 0
    is_loading: bool = False
    social_profiles_loading: bool = False
    last_error: Optional[LinkError] = None
    brief_id: Optional[str] = None

    def selected_item(self, kind: ResourceKind) -> Optional[ResourceItem]:
        return self.resources.find(kind, self.selected.get(kind))

    def reset_social_profiles(self) -> None:
        """Drop Instagram accounts fetched for a page that is no longer selected."""
        self.resources.social_profiles = []
        self.resources.social_profiles_page_id = None
        self.selected[ResourceKind.SOCIAL_PROFILE] = None
        self.social_profile_declined = False

    def prune_selections(self) -> list[ResourceKind]:
        """
        Clear staged ids missing from the current top-level collections.
        The wizard steps back to the earliest step that lost its choice.
        Returns the kinds that were cleared.
        """
        pruned = [
            kind for kind in TOP_LEVEL_KINDS
            if self.selected[kind] and self.resources.find(kind, self.selected[kind]) is None
        ]
        for kind in pruned:
            self.selected[kind] = None
        if ResourceKind.PAGE in pruned:
            self.reset_social_profiles()
        if pruned:
            self.current_step = min([self.current_step] + [KIND_STEPS[kind] for kind in pruned])
        return pruned

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "mode": self.mode.value,
            "brief_id": self.brief_id,
            "current_step": self.current_step,
            "resources": self.resources.to_dict(),
            "selected": {kind.value: item_id for kind, item_id in self.selected.items()},
            "social_profile_declined": self.social_profile_declined,
            "attempt_count": self.attempt_count,
            "retry_countdown_seconds": self.retry_countdown_seconds,
            "is_loading": self.is_loading,
            "social_profiles_loading": self.social_profiles_loading,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "can_submit": self.current_step == STEP_REVIEW,
        }
