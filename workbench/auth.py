"""AWS Cognito authentication for the workbench API.

Verifies Cognito issued JWTs against the user pool's JWKS and turns the
claims into a :class:`RequestContext`.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from workbench.context import Principal, PrincipalIdentifier, RequestContext

LOGGER = logging.getLogger("workbench.auth")

security = HTTPBearer(auto_error=False)

ADMIN_GROUP = "admin"
LOCAL_ADMIN_UID = "_local_admin_"


class CognitoAuth:
    """Validates tokens issued by one Cognito user pool and app client."""

    def __init__(
        self,
        region: str,
        user_pool_id: str,
        app_client_id: str,
        jwks: Optional[Dict[str, Any]] = None,
    ):
        """Initialize Cognito auth.

        Args:
            region: AWS region of the user pool
            user_pool_id: Cognito User Pool ID
            app_client_id: Cognito App Client ID
            jwks: Preloaded key set; fetched from the pool on first use otherwise
        """
        self.region = region
        self.user_pool_id = user_pool_id
        self.app_client_id = app_client_id
        self.issuer = f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"
        self.jwks_url = f"{self.issuer}/.well-known/jwks.json"
        self._jwks = jwks

    def _keys(self) -> List[Dict[str, Any]]:
        if self._jwks is None:
            response = requests.get(self.jwks_url, timeout=10)
            response.raise_for_status()
            self._jwks = response.json()
            LOGGER.info("Loaded JWKS from %s", self.jwks_url)
        return self._jwks.get("keys", [])

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify a JWT from Cognito.

        Args:
            token: JWT token string

        Returns:
            Decoded token claims

        Raises:
            HTTPException: 401 if the token is invalid, expired or for another client
        """
        try:
            header = jwt.get_unverified_header(token)
            key = next((k for k in self._keys() if k.get("kid") == header.get("kid")), None)
            if key is None:
                raise JWTError("signing key not found")
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"verify_aud": False, "verify_at_hash": False},
            )
        except (JWTError, requests.RequestException) as e:
            LOGGER.error("JWT validation error: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication token",
            )

        # id tokens carry "aud", access tokens carry "client_id"
        audience = claims.get("aud") or claims.get("client_id")
        if audience != self.app_client_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token audience",
            )
        return claims


def request_context_from_claims(claims: Dict[str, Any], ip_address: Optional[str] = None) -> RequestContext:
    groups = claims.get("cognito:groups") or []
    is_admin = ADMIN_GROUP in groups
    uid = claims["sub"]
    principal = Principal(
        uid=uid,
        username=claims.get("cognito:username") or claims.get("username") or uid,
        ns=claims.get("iss", ""),
        first_name=claims.get("given_name", ""),
        last_name=claims.get("family_name", ""),
        email=claims.get("email", ""),
        is_admin=is_admin,
        user_role="admin" if is_admin else claims.get("custom:userRole", "researcher"),
        status=claims.get("custom:status", "active"),
    )
    return RequestContext(
        principal=principal,
        principal_identifier=PrincipalIdentifier(uid=uid),
        authenticated=True,
        ip_address=ip_address,
    )


def create_auth_dependency(cognito_auth: CognitoAuth) -> Callable[..., RequestContext]:
    """Create a FastAPI dependency returning the caller's request context.

    Args:
        cognito_auth: CognitoAuth instance

    Returns:
        Dependency function
    """
    def get_request_context(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ) -> RequestContext:
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )
        claims = cognito_auth.verify_token(credentials.credentials)
        client_host = request.client.host if request.client else None
        return request_context_from_claims(claims, client_host)

    return get_request_context


def local_request_context(request: Request) -> RequestContext:
    """Context used when authentication is disabled: a local active admin."""
    return RequestContext(
        principal=Principal(
            uid=LOCAL_ADMIN_UID,
            username="local-admin",
            is_admin=True,
            user_role="admin",
            status="active",
        ),
        principal_identifier=PrincipalIdentifier(uid=LOCAL_ADMIN_UID),
        authenticated=False,
        ip_address=request.client.host if request.client else None,
    )
