from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Response
from starlette import status

from app.models.tenant_setup import SetupSessionResponse, SetupTenantRequest, SetupTenantResponse
from app.services.dependencies import get_setup_orchestrator, get_setup_session_registry
from app.services.setup.errors import TenantSetupError
from app.services.setup.models import ProvisioningRequest
from app.services.setup.setup_orchestrator import SetupOrchestrator
from app.services.setup.setup_session import SetupSessionRegistry

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("/setup", response_model=SetupTenantResponse)
async def setup_tenant(
    payload: SetupTenantRequest,
    orchestrator: SetupOrchestrator = Depends(get_setup_orchestrator),
    sessions: SetupSessionRegistry = Depends(get_setup_session_registry),
) -> SetupTenantResponse:
    try:
        request = ProvisioningRequest(
            tenant_name=payload.tenant_name,
            acting_principal_id=payload.acting_principal_id,
            domain=payload.domain,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        outcome = await orchestrator.setup_tenant(request)
    except TenantSetupError as exc:
        sessions.record_failure(request.tenant_name, exc)
        raise

    # Schema setup continues in the backend either way; track it until terminal.
    sessions.start_polling(request.tenant_name, outcome)
    return SetupTenantResponse.from_outcome(outcome)


@router.get("/{tenant_name}/setup", response_model=SetupSessionResponse)
async def get_setup_session(
    tenant_name: str = Path(..., description="Tenant name used at setup"),
    sessions: SetupSessionRegistry = Depends(get_setup_session_registry),
) -> SetupSessionResponse:
    session = sessions.get(tenant_name)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No setup session for {tenant_name!r}")
    return SetupSessionResponse.from_session(session, polling=sessions.is_polling(tenant_name))


@router.delete("/{tenant_name}/setup/polling", status_code=status.HTTP_204_NO_CONTENT)
async def stop_setup_polling(
    tenant_name: str = Path(..., description="Tenant name used at setup"),
    sessions: SetupSessionRegistry = Depends(get_setup_session_registry),
) -> Response:
    if not sessions.stop_polling(tenant_name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No active polling for {tenant_name!r}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
