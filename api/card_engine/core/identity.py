"""
Request identity resolved at the trust boundary.

The gateway validates the JWT and forwards the principal as X-User-Id /
X-User-Email headers. They are read exactly once, here; services only ever
see the resulting AuthenticatedRequest.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from card_engine.core.exceptions import AuthenticationError


@dataclass(frozen=True)
class AuthenticatedRequest:
    """A verified principal for the current request."""
    owner_id: str
    email: Optional[str] = None


def get_authenticated_request(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> AuthenticatedRequest:
    """Dependency that builds the AuthenticatedRequest from gateway headers."""
    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise AuthenticationError(
            "No authenticated user. Call via the API gateway with a bearer token."
        )
    return AuthenticatedRequest(owner_id=owner_id, email=x_user_email)
