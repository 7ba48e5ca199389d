from __future__ import annotations

import logging

from app.services.application_service import ApplicationService
from app.services.config import TenantSetupConfig
from app.services.identity_service import IdentityService
from app.services.setup.admin_group_service import AdminGroupService
from app.services.setup.backend_tenant_provisioner import BackendTenantProvisioner
from app.services.setup.identity_org_provisioner import IdentityOrgProvisioner
from app.services.setup.membership_binder import MembershipBinder
from app.services.setup.models import ProvisioningRequest, SetupOutcome


logger = logging.getLogger(__name__)


class SetupOrchestrator:
    """Runs the tenant setup saga across the identity and application services.

    Steps, in order:
    1) Create the identity organization (fatal on failure; name conflict is its own error).
    2) Add the acting principal as a member (fatal on failure).
    3) Ensure the admin group and membership (never fatal; recorded in the outcome).
    4) Create the application tenant (fatal on explicit failure; a timeout returns
       an outcome in AWAITING_PROGRESS mode).

    Nothing is rolled back when a later step fails; identity-side resources stay.
    """

    def __init__(
        self,
        *,
        org_provisioner: IdentityOrgProvisioner,
        membership_binder: MembershipBinder,
        admin_groups: AdminGroupService,
        tenant_provisioner: BackendTenantProvisioner,
    ) -> None:
        self._org_provisioner = org_provisioner
        self._membership_binder = membership_binder
        self._admin_groups = admin_groups
        self._tenant_provisioner = tenant_provisioner

    @staticmethod
    def from_services(
        *,
        identity: IdentityService,
        application: ApplicationService,
        config: TenantSetupConfig,
    ) -> "SetupOrchestrator":
        return SetupOrchestrator(
            org_provisioner=IdentityOrgProvisioner(identity=identity),
            membership_binder=MembershipBinder(identity=identity),
            admin_groups=AdminGroupService(
                identity=identity,
                group_name=config.admin_group_name,
                backoff_seconds=config.admin_assignment_backoff_seconds,
            ),
            tenant_provisioner=BackendTenantProvisioner(application=application),
        )

    async def setup_tenant(self, request: ProvisioningRequest) -> SetupOutcome:
        """Public entry point.

        Raises:
            AlreadyExistsError, IdentityOrgCreationFailedError, MembershipFailedError,
            TenantCreationFailedError.
        """

        tenant_name = request.tenant_name

        logger.info("Tenant setup step 1/4: creating identity organization (tenant=%s)", tenant_name)
        org = await self._org_provisioner.provision(request)

        logger.info("Tenant setup step 2/4: adding principal to organization (org=%s)", org.org_id)
        await self._membership_binder.bind(org, request.acting_principal_id)

        logger.info("Tenant setup step 3/4: assigning admin group (org=%s)", org.org_id)
        admin_group = await self._admin_groups.ensure_admin_membership(org, request.acting_principal_id)
        if not admin_group.assignment_succeeded:
            logger.warning(
                "Tenant setup continues without admin group assignment (org=%s): %s", org.org_id, admin_group.error
            )

        logger.info("Tenant setup step 4/4: creating application tenant (tenant=%s)", tenant_name)
        result = await self._tenant_provisioner.provision(org, request)

        outcome = SetupOutcome(identity_org=org, admin_group=admin_group, tenant=result.tenant, mode=result.mode)
        logger.info(
            "Tenant setup finished (tenant=%s, org=%s, tenant_id=%s, mode=%s)",
            tenant_name,
            org.org_id,
            result.tenant.tenant_id,
            result.mode.value,
        )
        return outcome
