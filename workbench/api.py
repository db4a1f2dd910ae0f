"""FastAPI application for the workbench backend."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workbench.auth import CognitoAuth, create_auth_dependency, local_request_context
from workbench.data_source_api import create_data_source_router
from workbench.errors import ServiceError
from workbench.services import WorkbenchServices

LOGGER = logging.getLogger("workbench.api")


def create_app(
    services: WorkbenchServices,
    cognito_auth: Optional[CognitoAuth] = None,
    enable_auth: bool = False,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        services: Wired workbench services
        cognito_auth: Optional Cognito authentication
        enable_auth: Enable authentication (requires cognito_auth)

    Returns:
        FastAPI application instance
    """
    logging.basicConfig(
        level=services.settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Service Workbench API",
        description="REST API for registering data sources and checking their reachability",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if enable_auth:
        if not cognito_auth:
            raise ValueError("enable_auth=True requires cognito_auth parameter")
        auth_dependency = create_auth_dependency(cognito_auth)
        LOGGER.info("Authentication enabled - API endpoints require a Cognito token")
    else:
        auth_dependency = local_request_context
        LOGGER.info("Authentication disabled - requests run as the local admin")

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        if exc.status >= 500:
            LOGGER.error("%s %s failed: %r", request.method, request.url.path, exc)
        else:
            LOGGER.info("%s %s rejected: %r", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status, content=exc.to_dict())

    @app.get("/")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "service-workbench"}

    app.include_router(create_data_source_router(services, auth_dependency))
    return app
