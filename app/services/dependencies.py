from __future__ import annotations

import aiohttp
from fastapi import FastAPI, Request

from app.services.application_service import ApplicationService
from app.services.config import TenantSetupConfig
from app.services.identity_service import IdentityService
from app.services.setup.progress_poller import ProvisioningProgressPoller
from app.services.setup.setup_orchestrator import SetupOrchestrator
from app.services.setup.setup_session import SetupSessionRegistry


def get_http_session_from_app(app: FastAPI) -> aiohttp.ClientSession:
    session = getattr(app.state, "http_session", None)
    if session is None:
        raise RuntimeError("HTTP session not initialized (app.state.http_session)")
    if not isinstance(session, aiohttp.ClientSession):
        raise RuntimeError("Unexpected http_session type")
    return session


def get_http_session(request: Request) -> aiohttp.ClientSession:
    return get_http_session_from_app(request.app)


def get_tenant_setup_config() -> TenantSetupConfig:
    return TenantSetupConfig.from_env()


def get_identity_service(request: Request) -> IdentityService:
    # One client per app so the admin token cache is shared between requests.
    identity = getattr(request.app.state, "identity_service", None)
    if identity is None:
        identity = IdentityService.from_env(session=get_http_session(request))
        request.app.state.identity_service = identity
    return identity


def get_application_service(request: Request) -> ApplicationService:
    return ApplicationService.from_env(session=get_http_session(request))


def get_setup_orchestrator(request: Request) -> SetupOrchestrator:
    """FastAPI dependency provider for the tenant setup saga."""

    return SetupOrchestrator.from_services(
        identity=get_identity_service(request),
        application=get_application_service(request),
        config=get_tenant_setup_config(),
    )


def build_setup_session_registry(app: FastAPI) -> SetupSessionRegistry:
    """Helper for non-request contexts (app lifespan startup)."""

    application = ApplicationService.from_env(session=get_http_session_from_app(app))
    poller = ProvisioningProgressPoller(
        application=application,
        interval_seconds=get_tenant_setup_config().poll_interval_seconds,
    )
    return SetupSessionRegistry(poller=poller, application=application)


def get_setup_session_registry(request: Request) -> SetupSessionRegistry:
    registry = getattr(request.app.state, "setup_sessions", None)
    if registry is None:
        raise RuntimeError("Setup session registry not initialized (app.state.setup_sessions)")
    return registry
