"""Condition based authorization.

A condition looks at the request context and returns an effect.  Conditions are
evaluated in order, the first ``deny`` wins and a list that never allows is an
implicit deny.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from workbench.context import RequestContext
from workbench.errors import forbidden

LOGGER = logging.getLogger("workbench.authorization")

ALLOW = "allow"
DENY = "deny"

Condition = Callable[[RequestContext, "AuthorizationRequest"], "AuthorizationResult"]


@dataclass
class AuthorizationRequest:
    """What is being attempted."""
    action: str
    resource: Optional[str] = None
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthorizationResult:
    effect: str
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.effect == ALLOW


def allow() -> AuthorizationResult:
    return AuthorizationResult(ALLOW)


def deny(reason: str) -> AuthorizationResult:
    return AuthorizationResult(DENY, reason)


def allow_if_active(request_context: RequestContext, request: AuthorizationRequest) -> AuthorizationResult:
    principal = request_context.principal
    if principal is None or principal.status != "active":
        return deny(f"principal is not active and cannot perform {request.action}")
    return allow()


def allow_if_admin(request_context: RequestContext, request: AuthorizationRequest) -> AuthorizationResult:
    if not request_context.is_admin:
        return deny(f"principal is not an admin and cannot perform {request.action}")
    return allow()


ADMIN_CONDITIONS: List[Condition] = [allow_if_active, allow_if_admin]


class AuthorizationService:
    """Evaluates condition lists for the services."""

    def authorize(
        self,
        request_context: RequestContext,
        request: AuthorizationRequest,
        conditions: Sequence[Condition],
    ) -> AuthorizationResult:
        """Evaluate ``conditions`` for ``request``.

        Args:
            request_context: Caller context
            request: Action (and optional resource) being attempted
            conditions: Ordered list of conditions

        Returns:
            The resulting effect. Denies short-circuit the remaining conditions.
        """
        result: Optional[AuthorizationResult] = None
        for condition in conditions:
            result = condition(request_context, request)
            if not result.allowed:
                return result

        if result is None:
            return deny("no condition granted access")
        return result

    def assert_authorized(
        self,
        request_context: RequestContext,
        request: AuthorizationRequest,
        conditions: Sequence[Condition],
    ) -> None:
        result = self.authorize(request_context, request, conditions)
        if not result.allowed:
            LOGGER.info(
                "Denied %s for %s: %s",
                request.action,
                request_context.uid,
                result.reason,
            )
            raise forbidden("You are not authorized to perform this operation", safe=True)
