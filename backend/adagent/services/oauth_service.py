"""
OAuth Service — completes the Meta authorization-code flow.

Handles:
- Authorization URL construction
- Callback validation (platform error codes, state/user match)
- Code → token exchange (optionally upgraded to a long-lived token)
- Identity lookup for the token owner
- Credential upsert
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.config import get_settings
from adagent.errors import (
    AuthorizationFailed,
    IdentityFetchFailed,
    LinkCancelled,
    SecurityError,
    TokenExchangeFailed,
)
from adagent.graph_client import GraphAPIError, create_graph_client
from adagent.models import ActivityLog
from adagent.services.credential_store import LinkedCredential, upsert_credential
from adagent.utils import short_id

logger = logging.getLogger(__name__)

# Error codes Meta appends to the redirect when the user declines the dialog
DENIAL_ERROR_CODES = {"access_denied", "user_denied"}


def _first_business_id(identity: dict) -> Optional[str]:
    """Id of the first business edge on /me, or None when absent or malformed."""
    businesses = identity.get("businesses")
    if not isinstance(businesses, dict) or not isinstance(businesses.get("data"), list):
        return None
    first = businesses["data"][0] if businesses["data"] else None
    if not isinstance(first, dict) or not first.get("id"):
        return None
    return str(first["id"])


class MetaOAuthService:
    """Service for linking a Meta identity to an app user."""

    def __init__(self, db: AsyncSession, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.settings = get_settings()
        self.transport = transport

    def build_authorization_url(self, user_id: str) -> str:
        """
        Meta OAuth dialog URL for the given user.

        The state parameter is the user id itself; `complete` only accepts a
        callback whose state equals the signed-in user.
        """
        params = {
            "client_id": self.settings.meta_app_id,
            "redirect_uri": self.settings.oauth_redirect_uri,
            "scope": self.settings.meta_oauth_scopes,
            "response_type": "code",
            "state": user_id,
        }
        return f"https://www.facebook.com/{self.settings.meta_graph_version}/dialog/oauth?{urlencode(params)}"

    async def complete(
        self,
        user_id: str,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> LinkedCredential:
        """
        Complete the callback: validate, exchange, resolve identity, store.

        Raises:
            LinkCancelled: user declined the permission dialog
            AuthorizationFailed: Meta reported another error code
            SecurityError: code/state missing or state does not match user_id
            TokenExchangeFailed: token endpoint failed
            IdentityFetchFailed: /me lookup failed
        """
        if error:
            if error in DENIAL_ERROR_CODES:
                logger.info(f"Meta OAuth cancelled by user {short_id(user_id)}")
                raise LinkCancelled()
            logger.warning(f"Meta OAuth returned error={error} for user {short_id(user_id)}")
            raise AuthorizationFailed(f"We could not complete the Meta connection. Please try again. ({error})")

        if not code or not state or not user_id:
            logger.warning(f"Meta OAuth callback missing code/state for user {short_id(user_id)}")
            raise SecurityError()
        if state != user_id:
            logger.warning(f"Meta OAuth state mismatch for user {short_id(user_id)}")
            raise SecurityError()

        access_token, expires_in = await self._exchange_code(code)
        identity = await self._resolve_identity(access_token)

        business_id = _first_business_id(identity)

        credential = await upsert_credential(
            self.db,
            user_id=user_id,
            access_token=access_token,
            meta_user_id=str(identity["id"]),
            meta_user_name=identity.get("name"),
            business_id=business_id,
            expires_in=expires_in,
        )

        self.db.add(ActivityLog(
            user_id=user_id,
            action="meta_connected",
            category="connection",
            description=f"Connected Meta identity {identity.get('name') or identity['id']}",
            entity_type="meta_credential",
            entity_id=str(identity["id"]),
            details={"business_id": business_id, "long_lived": self.settings.meta_exchange_long_lived_token},
        ))
        await self.db.commit()

        logger.info(f"Meta OAuth flow completed for user {short_id(user_id)}")
        return credential

    async def _exchange_code(self, code: str) -> tuple[str, Optional[int]]:
        client = create_graph_client(transport=self.transport)
        try:
            token_data = await client.exchange_code(
                client_id=self.settings.meta_app_id,
                client_secret=self.settings.meta_app_secret,
                redirect_uri=self.settings.oauth_redirect_uri,
                code=code,
            )
        except GraphAPIError as e:
            logger.error(f"Meta token exchange failed: status={e.status_code} code={e.code}")
            raise TokenExchangeFailed()

        short_token = token_data.get("access_token") if isinstance(token_data, dict) else None
        if not short_token:
            logger.error("Meta token response missing access_token")
            raise TokenExchangeFailed()

        if not self.settings.meta_exchange_long_lived_token:
            return short_token, token_data.get("expires_in")

        try:
            long_data = await client.exchange_long_lived_token(
                client_id=self.settings.meta_app_id,
                client_secret=self.settings.meta_app_secret,
                short_token=short_token,
            )
        except GraphAPIError as e:
            logger.error(f"Meta long-lived token exchange failed: status={e.status_code} code={e.code}")
            raise TokenExchangeFailed()

        long_token = long_data.get("access_token") if isinstance(long_data, dict) else None
        if not long_token:
            logger.error("Meta long-lived token response missing access_token")
            raise TokenExchangeFailed()
        return long_token, long_data.get("expires_in")

    async def _resolve_identity(self, access_token: str) -> dict:
        client = create_graph_client(access_token, transport=self.transport)
        try:
            identity = await client.get("me", params={"fields": "id,name,businesses.limit(1){id,name}"})
        except GraphAPIError as e:
            logger.error(f"Meta identity lookup failed: status={e.status_code} code={e.code}")
            raise IdentityFetchFailed()

        if not isinstance(identity, dict) or not identity.get("id"):
            logger.error("Meta identity response missing id")
            raise IdentityFetchFailed()
        return identity
