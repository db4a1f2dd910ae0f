"""Request context passed to every service call.

The context carries the calling principal.  API requests build it from the
verified JWT claims, scheduled jobs use :func:`system_request_context`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------


class Principal(BaseModel):
    """The user (or internal actor) performing a request."""

    uid: str
    username: str = ""
    ns: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    is_admin: bool = False
    user_role: str = "guest"
    status: str = "inactive"


class PrincipalIdentifier(BaseModel):
    uid: str


# ---------------------------------------------------------------------------
# RequestContext
# ---------------------------------------------------------------------------


class RequestContext(BaseModel):
    """Who is calling, and from where.

    Attributes:
        principal: Resolved principal, ``None`` for anonymous calls.
        principal_identifier: Stable identifier used for ``created_by`` fields.
        authenticated: True when a token (or system identity) was verified.
        ip_address: Source IP of the request when known.
        actions: Reserved for action based authorization.
        resources: Reserved for resource based authorization.
        attr: Free form attributes.
    """

    principal: Optional[Principal] = None
    principal_identifier: Optional[PrincipalIdentifier] = None
    authenticated: bool = False
    ip_address: Optional[str] = None
    actions: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    attr: Dict[str, Any] = Field(default_factory=dict)

    @property
    def uid(self) -> Optional[str]:
        if self.principal_identifier is not None:
            return self.principal_identifier.uid
        return None

    @property
    def is_admin(self) -> bool:
        return bool(self.principal and self.principal.is_admin)


SYSTEM_UID = "_system_"


def system_request_context() -> RequestContext:
    """Return the context used by internal jobs and workflow steps."""
    return RequestContext(
        principal=Principal(
            uid=SYSTEM_UID,
            username=SYSTEM_UID,
            ns="internal",
            is_admin=True,
            user_role="admin",
            status="active",
        ),
        principal_identifier=PrincipalIdentifier(uid=SYSTEM_UID),
        authenticated=True,
    )
