"""
Tests for the step-gated selection wizard and the per-user registry.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from adagent.errors import ReconnectRequired, SubmissionError, ValidationError
from adagent.services.discovery_service import ResourceDiscovery, ResourceItem, ResourceKind
from adagent.services.selection_wizard import SelectionWizard, WizardRegistry


class SlowProfileDiscovery(ResourceDiscovery):
    """Holds the Instagram fetch open until `release` is set."""

    def __init__(self, transport):
        super().__init__(transport)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_social_profiles(self, credential, page_id):
        self.entered.set()
        await self.release.wait()
        return await super().fetch_social_profiles(credential, page_id)


def _item(kind, item_id, name):
    return ResourceItem(kind=kind, id=item_id, display_name=name)


def _wizard(credential, graph, discovery=None):
    wizard = SelectionWizard(
        credential,
        discovery=discovery or ResourceDiscovery(graph.transport),
        max_retries=0,
        countdown_seconds=0,
        hard_timeout_seconds=5.0,
    )
    resources = wizard.state.resources
    resources.pages = [_item(ResourceKind.PAGE, "p1", "Shop"), _item(ResourceKind.PAGE, "p2", "Blog")]
    resources.ad_accounts = [_item(ResourceKind.AD_ACCOUNT, "act_1", "Main")]
    resources.pixels = [_item(ResourceKind.PIXEL, "px1", "Main Pixel")]
    resources.catalogs = [_item(ResourceKind.CATALOG, "cat1", "Spring")]
    return wizard


@pytest.fixture
def profiles_graph(graph):
    graph.add("p1", {"instagram_accounts": {"data": [{"id": "ig1", "username": "shop"}]}})
    graph.add("p2", {"id": "p2"})
    return graph


async def _to_social_profile_step(wizard, page_id="p1"):
    assert await wizard.select(ResourceKind.PAGE, page_id)
    assert await wizard.next_step()
    assert await wizard.select(ResourceKind.AD_ACCOUNT, "act_1")
    assert await wizard.next_step()
    assert await wizard.select(ResourceKind.PIXEL, "px1")
    assert await wizard.next_step()
    assert wizard.state.current_step == 4


@pytest.mark.anyio
async def test_cannot_leave_step_one_without_page(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)

    assert await wizard.next_step() is False
    assert wizard.state.current_step == 1
    assert isinstance(wizard.state.last_error, ValidationError)
    assert profiles_graph.calls == []


@pytest.mark.anyio
async def test_required_steps_block_until_selected(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await wizard.select(ResourceKind.PAGE, "p1")
    await wizard.next_step()

    assert await wizard.next_step() is False
    assert wizard.state.current_step == 2
    await wizard.select(ResourceKind.AD_ACCOUNT, "act_1")
    assert await wizard.next_step() is True

    assert await wizard.next_step() is False
    assert wizard.state.current_step == 3
    assert wizard.state.last_error.message == "Please select a Pixel to continue."


@pytest.mark.anyio
async def test_select_unknown_id_is_rejected(credential, graph):
    wizard = _wizard(credential, graph)
    await wizard.select(ResourceKind.PAGE, "p1")

    assert await wizard.select(ResourceKind.PAGE, "nope") is False
    assert wizard.state.selected[ResourceKind.PAGE] == "p1"
    assert isinstance(wizard.state.last_error, ValidationError)


@pytest.mark.anyio
async def test_one_selected_id_per_kind_and_clear(credential, graph):
    wizard = _wizard(credential, graph)
    await wizard.select(ResourceKind.PAGE, "p1")
    await wizard.select("page", "p2")
    assert wizard.state.selected[ResourceKind.PAGE] == "p2"

    await wizard.clear(ResourceKind.PAGE)
    assert wizard.state.selected[ResourceKind.PAGE] is None


@pytest.mark.anyio
async def test_advancing_from_page_fetches_scoped_profiles(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await wizard.select(ResourceKind.PAGE, "p1")
    await wizard.next_step()

    assert profiles_graph.count("p1") == 1
    assert [i.id for i in wizard.state.resources.social_profiles] == ["ig1"]
    assert wizard.state.resources.social_profiles_page_id == "p1"
    assert wizard.state.social_profiles_loading is False


@pytest.mark.anyio
async def test_profile_step_requires_choice_when_profiles_exist(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await _to_social_profile_step(wizard, "p1")

    assert await wizard.next_step() is False
    assert wizard.state.current_step == 4

    await wizard.decline_social_profile()
    assert await wizard.next_step() is True
    assert wizard.state.current_step == 5


@pytest.mark.anyio
async def test_profile_step_passes_when_page_has_no_profiles(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await _to_social_profile_step(wizard, "p2")

    assert wizard.state.resources.social_profiles == []
    assert await wizard.next_step() is True
    # Catalog is optional
    assert await wizard.next_step() is True
    assert wizard.state.current_step == 6
    assert wizard.state.to_dict()["can_submit"] is True
    assert await wizard.next_step() is False


@pytest.mark.anyio
async def test_changing_page_clears_staged_profile(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await _to_social_profile_step(wizard, "p1")
    await wizard.select(ResourceKind.SOCIAL_PROFILE, "ig1")

    for _ in range(3):
        assert await wizard.back() is True
    await wizard.select(ResourceKind.PAGE, "p2")
    await wizard.next_step()

    assert wizard.state.selected[ResourceKind.SOCIAL_PROFILE] is None
    assert wizard.state.resources.social_profiles_page_id == "p2"


@pytest.mark.anyio
async def test_same_page_keeps_staged_profile(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await _to_social_profile_step(wizard, "p1")
    await wizard.select(ResourceKind.SOCIAL_PROFILE, "ig1")

    for _ in range(3):
        await wizard.back()
    await wizard.next_step()

    assert wizard.state.selected[ResourceKind.SOCIAL_PROFILE] == "ig1"
    assert profiles_graph.count("p1") == 2


@pytest.mark.anyio
async def test_back_not_allowed_from_first_step(credential, graph):
    wizard = _wizard(credential, graph)

    assert await wizard.back() is False
    assert wizard.state.current_step == 1


@pytest.mark.anyio
async def test_expired_token_on_profile_fetch_is_reported(credential, graph):
    graph.add("p1", {"error": {"message": "Session has expired", "code": 190}}, status=400)
    wizard = _wizard(credential, graph)
    await wizard.select(ResourceKind.PAGE, "p1")

    assert await wizard.next_step() is True
    assert wizard.state.current_step == 2
    assert isinstance(wizard.state.last_error, ReconnectRequired)


@pytest.mark.anyio
async def test_submit_only_from_review(credential, graph):
    wizard = _wizard(credential, graph)
    service = AsyncMock()

    assert await wizard.submit(db=None, service=service) is None
    assert isinstance(wizard.state.last_error, ValidationError)
    service.submit.assert_not_called()


@pytest.mark.anyio
async def test_failed_submit_preserves_state(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await _to_social_profile_step(wizard, "p2")
    await wizard.next_step()
    await wizard.select(ResourceKind.CATALOG, "cat1")
    await wizard.next_step()
    service = AsyncMock()
    service.submit.side_effect = SubmissionError()

    with pytest.raises(SubmissionError):
        await wizard.submit(db=None, service=service)

    assert wizard.state.current_step == 6
    assert wizard.state.selected[ResourceKind.PAGE] == "p2"
    assert wizard.state.selected[ResourceKind.CATALOG] == "cat1"
    assert isinstance(wizard.state.last_error, SubmissionError)


@pytest.mark.anyio
async def test_start_runs_discovery(credential, graph):
    graph.add("me/accounts", {"data": [{"id": "p9", "name": "Fresh"}]})
    wizard = SelectionWizard(
        credential, discovery=ResourceDiscovery(graph.transport),
        max_retries=0, countdown_seconds=0, hard_timeout_seconds=5.0,
    )

    await wizard.start()

    assert [i.id for i in wizard.state.resources.pages] == ["p9"]
    assert wizard.state.is_loading is False
    assert wizard.state.attempt_count == 1


@pytest.mark.anyio
async def test_registry_keeps_one_wizard_per_user(credential, graph):
    registry = WizardRegistry()
    options = dict(max_retries=0, countdown_seconds=0, hard_timeout_seconds=5.0)
    first = SelectionWizard(credential, discovery=ResourceDiscovery(graph.transport), **options)
    second = SelectionWizard(credential, discovery=ResourceDiscovery(graph.transport), **options)

    await registry.open(first)
    await registry.open(second)

    assert first.closed is True
    assert registry.get(credential.user_id) is second

    await registry.close_all()
    assert second.closed is True
    assert registry.get(credential.user_id) is None
    assert await registry.discard(credential.user_id) is False


@pytest.mark.anyio
async def test_page_change_during_profile_fetch_keeps_profiles_scoped(credential, profiles_graph):
    discovery = SlowProfileDiscovery(profiles_graph.transport)
    wizard = _wizard(credential, profiles_graph, discovery=discovery)
    await wizard.select(ResourceKind.PAGE, "p1")

    advance = asyncio.create_task(wizard.next_step())
    await discovery.entered.wait()
    reselect = asyncio.create_task(wizard.select(ResourceKind.PAGE, "p2"))
    await asyncio.sleep(0)
    assert not reselect.done()

    discovery.release.set()
    assert await advance is True
    assert await reselect is False

    state = wizard.state
    assert state.current_step == 2
    assert state.selected[ResourceKind.PAGE] == "p1"
    assert state.resources.social_profiles_page_id == "p1"
    assert [i.id for i in state.resources.social_profiles] == ["ig1"]


@pytest.mark.anyio
async def test_kinds_only_change_on_their_own_step(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)

    assert await wizard.select(ResourceKind.AD_ACCOUNT, "act_1") is False
    assert await wizard.decline_social_profile() is False
    assert isinstance(wizard.state.last_error, ValidationError)

    await _to_social_profile_step(wizard, "p1")
    assert await wizard.select(ResourceKind.PAGE, "p2") is False
    assert await wizard.clear(ResourceKind.PIXEL) is False
    assert wizard.state.selected[ResourceKind.PAGE] == "p1"
    assert wizard.state.selected[ResourceKind.PIXEL] == "px1"


@pytest.mark.anyio
async def test_retry_clears_selections_no_longer_discovered(credential, profiles_graph):
    wizard = _wizard(credential, profiles_graph)
    await _to_social_profile_step(wizard, "p1")
    await wizard.select(ResourceKind.SOCIAL_PROFILE, "ig1")

    profiles_graph.add("me/accounts", {"data": [{"id": "p2", "name": "Blog"}]})
    profiles_graph.add("me/adaccounts", {"data": [{"id": "act_1", "name": "Main"}]}, fields_contains="account_status")
    await wizard.retry_discovery()

    state = wizard.state
    assert [i.id for i in state.resources.pages] == ["p2"]
    assert state.selected[ResourceKind.PAGE] is None
    assert state.selected[ResourceKind.AD_ACCOUNT] == "act_1"
    assert state.selected[ResourceKind.PIXEL] is None
    assert state.selected[ResourceKind.SOCIAL_PROFILE] is None
    assert state.resources.social_profiles_page_id is None
    assert state.current_step == 1
    assert await wizard.next_step() is False


@pytest.mark.anyio
async def test_stale_page_id_does_not_pass_gate(credential, graph):
    wizard = _wizard(credential, graph)
    wizard.state.selected[ResourceKind.PAGE] = "gone"

    assert await wizard.next_step() is False
    assert wizard.state.last_error.message == "Please select a Page to continue."
    assert graph.calls == []


@pytest.mark.anyio
async def test_brief_id_is_carried_on_state(credential, graph):
    wizard = SelectionWizard(credential, discovery=ResourceDiscovery(graph.transport), brief_id="brief-7")

    assert wizard.state.brief_id == "brief-7"
    assert wizard.state.to_dict()["brief_id"] == "brief-7"
