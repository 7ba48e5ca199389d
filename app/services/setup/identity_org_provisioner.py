from __future__ import annotations

import logging
from typing import Any, Optional

from app.services.identity_service import IdentityConflictError, IdentityService, IdentityServiceError
from app.services.setup.errors import AlreadyExistsError, IdentityOrgCreationFailedError
from app.services.setup.models import IdentityOrgRef, ProvisioningRequest


logger = logging.getLogger(__name__)


class IdentityOrgProvisioner:
    """Creates the identity-side organization and resolves its generated id."""

    def __init__(self, *, identity: IdentityService) -> None:
        self._identity = identity

    @staticmethod
    def _attributes(request: ProvisioningRequest) -> dict[str, str]:
        attributes = {
            "displayName": request.tenant_name,
            "description": f"Workspace organization for {request.tenant_name}",
        }
        if request.domain:
            attributes["domain"] = request.domain
        return attributes

    async def provision(self, request: ProvisioningRequest) -> IdentityOrgRef:
        """Create the organization for `request.tenant_name`.

        Raises:
            AlreadyExistsError: the name is taken; never retried with the same name.
            IdentityOrgCreationFailedError: any other failure, including a created
                org that cannot be found afterwards.
        """

        name = request.tenant_name
        try:
            await self._identity.create_organization(
                name=name,
                attributes=self._attributes(request),
                domain=request.domain,
            )
        except IdentityConflictError as exc:
            logger.info("Identity organization already exists (name=%s)", name)
            raise AlreadyExistsError(name) from exc
        except IdentityServiceError as exc:
            raise IdentityOrgCreationFailedError(f"Failed to create identity organization {name!r}: {exc}") from exc

        # The create call does not echo an id; look the org up by name.
        try:
            candidates = await self._identity.search_organizations(search=name)
        except IdentityServiceError as exc:
            raise IdentityOrgCreationFailedError(f"Failed to retrieve created organization {name!r}: {exc}") from exc

        org_id = self._match_org_id(candidates, name=name)
        if not org_id:
            raise IdentityOrgCreationFailedError(
                f"Identity organization {name!r} was created but could not be found",
                reason="identity service inconsistency",
            )

        logger.info("Identity organization created (name=%s, id=%s)", name, org_id)
        return IdentityOrgRef(org_id=org_id, name=name)

    @staticmethod
    def _match_org_id(candidates: list[dict[str, Any]], *, name: str) -> Optional[str]:
        for org in candidates:
            if isinstance(org, dict) and org.get("name") == name and org.get("id"):
                return str(org["id"])
        return None
