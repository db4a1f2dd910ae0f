"""
Data source API endpoints.

Provides REST API for registering data source accounts, buckets and studies
and for checking their reachability.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, ConfigDict, StrictBool

from workbench.context import RequestContext
from workbench.services import WorkbenchServices

LOGGER = logging.getLogger("workbench.data_source_api")


class ReachabilityRequest(BaseModel):
    """Body of a reachability check. Other fields are passed through for validation."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    force_check_all: StrictBool = False


def create_data_source_router(
    services: WorkbenchServices,
    auth_dependency: Callable[..., RequestContext],
) -> APIRouter:
    """Create FastAPI router for data source endpoints.

    Args:
        services: Wired workbench services
        auth_dependency: Dependency resolving the caller's RequestContext

    Returns:
        APIRouter with data source endpoints
    """
    router = APIRouter(prefix="/api/data-sources", tags=["data-sources"])

    @router.get("/accounts")
    def list_accounts(
        request_context: RequestContext = Depends(auth_dependency),
    ) -> List[Dict[str, Any]]:
        """List data source accounts with their buckets."""
        return services.account_service.list(request_context)

    @router.post("/accounts/ops/reachability")
    def check_reachability(
        payload: ReachabilityRequest,
        request_context: RequestContext = Depends(auth_dependency),
    ) -> Optional[str]:
        """Check reachability of one account or study, or of all accounts with ``id="*"``."""
        params = payload.model_dump(exclude_none=True, exclude={"force_check_all"})
        return services.reachability_service.attempt_reach(request_context, params, payload.force_check_all)

    @router.post("/accounts", status_code=status.HTTP_201_CREATED)
    def register_account(
        payload: Dict[str, Any] = Body(...),
        request_context: RequestContext = Depends(auth_dependency),
    ) -> Dict[str, Any]:
        return services.registration_service.register_account(request_context, payload)

    @router.put("/accounts/{account_id}")
    def update_account(
        account_id: str,
        payload: Dict[str, Any] = Body(...),
        request_context: RequestContext = Depends(auth_dependency),
    ) -> Dict[str, Any]:
        """Update an account; the body must include the last seen ``rev``."""
        return services.account_service.update(request_context, {**payload, "id": account_id})

    @router.post("/accounts/{account_id}/buckets", status_code=status.HTTP_201_CREATED)
    def register_bucket(
        account_id: str,
        payload: Dict[str, Any] = Body(...),
        request_context: RequestContext = Depends(auth_dependency),
    ) -> Dict[str, Any]:
        return services.registration_service.register_bucket(request_context, account_id, payload)

    @router.post("/accounts/{account_id}/buckets/{bucket_name}/studies", status_code=status.HTTP_201_CREATED)
    def register_study(
        account_id: str,
        bucket_name: str,
        payload: Dict[str, Any] = Body(...),
        request_context: RequestContext = Depends(auth_dependency),
    ) -> Dict[str, Any]:
        return services.registration_service.register_study(request_context, account_id, bucket_name, payload)

    @router.get("/accounts/{account_id}/studies")
    def list_studies(
        account_id: str,
        request_context: RequestContext = Depends(auth_dependency),
    ) -> List[Dict[str, Any]]:
        return services.study_service.list_studies_for_account(request_context, account_id)

    return router
