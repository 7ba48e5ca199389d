from __future__ import annotations

import logging
from dataclasses import dataclass

from app.services.application_service import (
    ApplicationService,
    ApplicationServiceError,
    ApplicationServiceTimeoutError,
)
from app.services.setup.errors import TenantCreationFailedError
from app.services.setup.models import IdentityOrgRef, ProvisioningRequest, SetupMode, TenantRef


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantProvisioningResult:
    tenant: TenantRef
    mode: SetupMode


class BackendTenantProvisioner:
    """Asks the application service to create the tenant and its schema.

    A timeout is not a failure: the service may finish out-of-band, so the result
    switches to AWAITING_PROGRESS instead. Creation is never retried here since a
    retry could create the tenant twice.
    """

    def __init__(self, *, application: ApplicationService) -> None:
        self._application = application

    async def provision(self, org: IdentityOrgRef, request: ProvisioningRequest) -> TenantProvisioningResult:
        try:
            tenant_id = await self._application.create_tenant(
                name=request.tenant_name,
                identity_org_id=org.org_id,
                domain=request.domain,
            )
        except ApplicationServiceTimeoutError:
            logger.info("Tenant creation for %s is still running; switching to progress polling", request.tenant_name)
            return TenantProvisioningResult(
                tenant=TenantRef(tenant_id=None, identity_org_id=org.org_id),
                mode=SetupMode.AWAITING_PROGRESS,
            )
        except ApplicationServiceError as exc:
            raise TenantCreationFailedError(
                f"Failed to create tenant {request.tenant_name!r}: {exc.reason}",
                reason=exc.reason,
                identity_org=org,
            ) from exc

        if tenant_id is None:
            raise TenantCreationFailedError(
                f"Failed to create tenant {request.tenant_name!r}: no id returned",
                reason="no id returned",
                identity_org=org,
            )

        logger.info("Tenant created (name=%s, id=%s)", request.tenant_name, tenant_id)
        return TenantProvisioningResult(
            tenant=TenantRef(tenant_id=tenant_id, identity_org_id=org.org_id),
            mode=SetupMode.SYNCHRONOUS_COMPLETE,
        )
