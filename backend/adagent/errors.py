"""
Error taxonomy for the Meta linking pipeline.

Every error carries a stable `code` (for the frontend to branch on) and a
`message` that can be shown to the user as-is.
"""

from typing import Optional


class LinkError(Exception):
    """Base exception for account-linking failures."""

    code = "link_error"
    default_message = "Something went wrong while connecting your Meta account."
    retryable = True

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class SecurityError(LinkError):
    """Callback state does not belong to the signed-in user."""

    code = "security_error"
    default_message = "This connection request could not be verified. Please start the Meta connection again."
    retryable = False


class LinkCancelled(LinkError):
    """User declined the Meta permission dialog."""

    code = "cancelled"
    default_message = "Meta connection was canceled. You can try again at any time."


class AuthorizationFailed(LinkError):
    code = "authorization_failed"
    default_message = "Meta could not authorize this connection. Please try again."


class TokenExchangeFailed(LinkError):
    code = "token_exchange_failed"
    default_message = "We could not complete the Meta connection. Please try again."


class IdentityFetchFailed(LinkError):
    code = "identity_fetch_failed"
    default_message = "We could not load your Meta profile. Please try again."


class DiscoveryEmpty(LinkError):
    code = "discovery_empty"
    default_message = "No Meta assets were found yet. Retry the connection in a moment."


class DiscoveryTimeout(LinkError):
    code = "discovery_timeout"
    default_message = "Meta did not respond in time. Please retry the connection."


class ReconnectRequired(LinkError):
    code = "reconnect_required"
    default_message = "Meta access token expired. Please reconnect your Meta account."


class ValidationError(LinkError):
    code = "validation_error"
    default_message = "Please complete this step before continuing."


class SubmissionError(LinkError):
    code = "submission_error"
    default_message = "Failed to save selections. Please try again."
