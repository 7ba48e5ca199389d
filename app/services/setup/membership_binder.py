from __future__ import annotations

import logging

from app.services.identity_service import IdentityConflictError, IdentityService, IdentityServiceError
from app.services.setup.errors import MembershipFailedError
from app.services.setup.models import IdentityOrgRef


logger = logging.getLogger(__name__)


class MembershipBinder:
    def __init__(self, *, identity: IdentityService) -> None:
        self._identity = identity

    async def bind(self, org: IdentityOrgRef, principal_id: str) -> None:
        """Add the acting principal to the org. Any failure is fatal to the saga."""

        try:
            await self._identity.add_organization_member(org_id=org.org_id, user_id=principal_id)
        except IdentityConflictError:
            logger.info("Principal %s is already a member of organization %s", principal_id, org.org_id)
            return
        except IdentityServiceError as exc:
            raise MembershipFailedError(
                f"Failed to add {principal_id} to organization {org.name!r}: {exc}",
                reason=str(exc),
            ) from exc

        logger.info("Principal %s added to organization %s", principal_id, org.org_id)
