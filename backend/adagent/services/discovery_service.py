"""
Discovery Service — lists the Meta assets a linked user can pick from.

One authenticated Graph GET per resource kind (no pagination; Graph default
page cap applies). Every fetch absorbs its own failures: callers always get a
FetchResult, never an exception.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from adagent.errors import LinkError, ReconnectRequired
from adagent.graph_client import GraphAPIError, create_graph_client
from adagent.services.credential_store import LinkedCredential
from adagent.utils import short_id

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100


class ResourceKind(str, enum.Enum):
    PAGE = "page"
    AD_ACCOUNT = "ad_account"
    PIXEL = "pixel"
    CATALOG = "catalog"
    SOCIAL_PROFILE = "social_profile"


_KIND_LABELS = {
    ResourceKind.PAGE: "Page",
    ResourceKind.AD_ACCOUNT: "Ad Account",
    ResourceKind.PIXEL: "Pixel",
    ResourceKind.CATALOG: "Catalog",
    ResourceKind.SOCIAL_PROFILE: "Instagram Account",
}


@dataclass(frozen=True)
class ResourceItem:
    kind: ResourceKind
    id: str
    display_name: str
    attributes: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "id": self.id,
            "display_name": self.display_name,
            "attributes": dict(self.attributes),
        }


@dataclass
class FetchResult:
    items: list[ResourceItem] = field(default_factory=list)
    found: bool = False
    error: Optional[LinkError] = None


# ── Payload schema ───────────────────────────────────────────────────
class GraphCollection(BaseModel):
    """A Graph edge: `{"data": [...]}` (a bare list is normalised into this)."""
    data: list[Any]


def extract_nodes(payload: Any, source: str) -> list[dict]:
    """Node dicts from a Graph edge payload; unknown shapes yield []."""
    if payload is None:
        return []
    if isinstance(payload, list):
        payload = {"data": payload}
    try:
        collection = GraphCollection.model_validate(payload)
    except PydanticValidationError:
        logger.warning(f"Unrecognised Graph payload shape for {source}: {type(payload).__name__}")
        return []
    return [node for node in collection.data if isinstance(node, dict)]


def _display_name(kind: ResourceKind, node: dict, node_id: str) -> str:
    for key in ("name", "username"):
        value = node.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return f"{_KIND_LABELS[kind]} ({node_id})"


def to_items(kind: ResourceKind, nodes: list[dict], attribute_keys: tuple[str, ...] = (), extra: Optional[dict] = None) -> list[ResourceItem]:
    """Convert Graph nodes to items. Nodes without an id are dropped; first occurrence of an id wins."""
    items: list[ResourceItem] = []
    seen: set[str] = set()
    for node in nodes:
        raw_id = node.get("id")
        if raw_id is None or str(raw_id).strip() == "":
            continue
        node_id = str(raw_id)
        if node_id in seen:
            continue
        seen.add(node_id)

        attributes = {k: str(node[k]) for k in attribute_keys if node.get(k) is not None}
        if extra:
            attributes.update({k: str(v) for k, v in extra.items() if v is not None})
        items.append(ResourceItem(
            kind=kind,
            id=node_id,
            display_name=_display_name(kind, node, node_id),
            attributes=attributes,
        ))
    return items


def _dedupe(items: list[ResourceItem]) -> list[ResourceItem]:
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


class ResourceDiscovery:
    """Fetches pages, ad accounts, pixels, catalogs and social profiles for a credential."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def _get(self, credential: LinkedCredential, path: str, fields: str) -> Any:
        client = create_graph_client(credential.access_token, transport=self.transport)
        return await client.get(path, params={"fields": fields, "limit": PAGE_LIMIT})

    async def _fetch(
        self,
        kind: ResourceKind,
        credential: LinkedCredential,
        path: str,
        fields: str,
        collect: Callable[[Any], list[ResourceItem]],
    ) -> FetchResult:
        try:
            payload = await self._get(credential, path, fields)
            items = collect(payload)
        except GraphAPIError as e:
            logger.warning(
                f"Fetch {kind.value} failed for user {short_id(credential.user_id)}: "
                f"status={e.status_code} code={e.code} {e.message}"
            )
            error = ReconnectRequired() if e.is_auth_error else None
            return FetchResult(items=[], found=False, error=error)
        except Exception as e:
            logger.error(f"Fetch {kind.value} failed for user {short_id(credential.user_id)}: {e}", exc_info=True)
            return FetchResult(items=[], found=False)

        logger.info(f"Fetched {len(items)} {kind.value} item(s) for user {short_id(credential.user_id)}")
        return FetchResult(items=items, found=bool(items))

    # ── Top-level collections ────────────────────────────────────────

    async def fetch_pages(self, credential: LinkedCredential) -> FetchResult:
        return await self._fetch(
            ResourceKind.PAGE, credential, "me/accounts", "id,name,category",
            lambda payload: to_items(ResourceKind.PAGE, extract_nodes(payload, "pages"), ("category",)),
        )

    async def fetch_ad_accounts(self, credential: LinkedCredential) -> FetchResult:
        return await self._fetch(
            ResourceKind.AD_ACCOUNT, credential, "me/adaccounts", "id,name,account_status,currency",
            lambda payload: to_items(
                ResourceKind.AD_ACCOUNT, extract_nodes(payload, "ad accounts"), ("account_status", "currency"),
            ),
        )

    async def fetch_pixels(self, credential: LinkedCredential) -> FetchResult:
        """Pixels of every ad account, read through one nested-field request."""

        def collect(payload: Any) -> list[ResourceItem]:
            items: list[ResourceItem] = []
            for account in extract_nodes(payload, "pixels"):
                items.extend(to_items(
                    ResourceKind.PIXEL,
                    extract_nodes(account.get("adspixels"), "adspixels"),
                    ("last_fired_time",),
                    extra={"ad_account_id": account.get("id")},
                ))
            return _dedupe(items)

        return await self._fetch(
            ResourceKind.PIXEL, credential, "me/adaccounts", "id,adspixels{id,name,last_fired_time}", collect,
        )

    async def fetch_catalogs(self, credential: LinkedCredential) -> FetchResult:
        """Product catalogs owned by the user's businesses."""

        def collect(payload: Any) -> list[ResourceItem]:
            items: list[ResourceItem] = []
            for business in extract_nodes(payload, "catalogs"):
                items.extend(to_items(
                    ResourceKind.CATALOG,
                    extract_nodes(business.get("owned_product_catalogs"), "owned_product_catalogs"),
                    ("product_count",),
                    extra={"business_id": business.get("id")},
                ))
            return _dedupe(items)

        return await self._fetch(
            ResourceKind.CATALOG, credential, "me/businesses",
            "id,name,owned_product_catalogs{id,name,product_count}", collect,
        )

    # ── Page-scoped ──────────────────────────────────────────────────

    async def fetch_social_profiles(self, credential: LinkedCredential, page_id: str) -> FetchResult:
        """
        Instagram accounts linked to one page.
        Connected accounts come first, then page-backed ones.
        An expired token is reported as ReconnectRequired in `error`.
        """
        if not page_id:
            logger.warning("fetch_social_profiles called without a page id")
            return FetchResult(items=[], found=False)

        def collect(payload: Any) -> list[ResourceItem]:
            if not isinstance(payload, dict):
                logger.warning(f"Unrecognised Graph payload shape for page {page_id}: {type(payload).__name__}")
                return []
            connected = to_items(
                ResourceKind.SOCIAL_PROFILE,
                extract_nodes(payload.get("instagram_accounts"), "instagram_accounts"),
                ("username",),
                extra={"type": "connected"},
            )
            page_backed = to_items(
                ResourceKind.SOCIAL_PROFILE,
                extract_nodes(payload.get("page_backed_instagram_accounts"), "page_backed_instagram_accounts"),
                ("username",),
                extra={"type": "page_backed"},
            )
            return _dedupe(connected + page_backed)

        return await self._fetch(
            ResourceKind.SOCIAL_PROFILE, credential, page_id,
            "instagram_accounts{id,username},page_backed_instagram_accounts{id,username}", collect,
        )
