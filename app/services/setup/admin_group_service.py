from __future__ import annotations

import asyncio
import logging
from typing import Optional

from app.services.identity_service import IdentityConflictError, IdentityService, IdentityServiceError
from app.services.setup.models import DEFAULT_ADMIN_GROUP_NAME, AdminGroupAssignmentOutcome, IdentityOrgRef


logger = logging.getLogger(__name__)


class AdminGroupError(RuntimeError):
    pass


class AdminGroupService:
    """Makes sure the org has a privileged group and the principal belongs to it.

    Best effort: every failure ends up in the returned outcome, nothing is raised
    for identity-service problems.

    - Find-or-create is safe to run more than once; a create conflict means a
      concurrent creator won, so we re-query.
    - Assignment gets exactly one retry after a fixed backoff.
    - A successful assignment is verified by re-reading the user's groups.
    """

    _ASSIGNMENT_ATTEMPTS: int = 2
    _DEFAULT_BACKOFF_SECONDS: float = 1.0

    def __init__(
        self,
        *,
        identity: IdentityService,
        group_name: str = DEFAULT_ADMIN_GROUP_NAME,
        backoff_seconds: float = _DEFAULT_BACKOFF_SECONDS,
    ) -> None:
        self._identity = identity
        self._group_name = group_name
        self._backoff_seconds = backoff_seconds

    @property
    def group_name(self) -> str:
        return self._group_name

    def group_path(self, org_id: str) -> str:
        return f"/{org_id}/{self._group_name}"

    async def ensure_admin_membership(self, org: IdentityOrgRef, principal_id: str) -> AdminGroupAssignmentOutcome:
        try:
            group_id, was_created = await self.find_or_create_group(org.org_id)
        except (AdminGroupError, IdentityServiceError) as exc:
            logger.warning("Could not find or create admin group for organization %s: %s", org.org_id, exc)
            return AdminGroupAssignmentOutcome(group_id=None, group_name=self._group_name, error=str(exc))

        assignment_error = await self._assign_with_retry(group_id=group_id, principal_id=principal_id)
        if assignment_error is not None:
            logger.warning(
                "Admin group assignment failed after %d attempts (group=%s, principal=%s): %s",
                self._ASSIGNMENT_ATTEMPTS,
                group_id,
                principal_id,
                assignment_error,
            )
            return AdminGroupAssignmentOutcome(
                group_id=group_id,
                group_name=self._group_name,
                was_created=was_created,
                assignment_succeeded=False,
                error=assignment_error,
            )

        verified = await self._verify_membership(group_id=group_id, principal_id=principal_id)
        return AdminGroupAssignmentOutcome(
            group_id=group_id,
            group_name=self._group_name,
            was_created=was_created,
            assignment_succeeded=True,
            verification_passed=verified,
        )

    async def find_or_create_group(self, org_id: str) -> tuple[str, bool]:
        """Return (group_id, was_created) for the admin group of `org_id`."""

        existing = await self._find_group_id(org_id)
        if existing:
            return (existing, False)

        path = self.group_path(org_id)
        try:
            created_id = await self._identity.create_group(org_id=org_id, name=self._group_name, path=path)
        except IdentityConflictError:
            logger.info("Admin group %s created concurrently; re-querying", path)
            concurrent = await self._find_group_id(org_id)
            if not concurrent:
                raise AdminGroupError(f"Group {path} reported as existing but could not be found")
            return (concurrent, False)

        if created_id:
            logger.info("Admin group created (path=%s, id=%s)", path, created_id)
            return (created_id, True)

        found = await self._find_group_id(org_id)
        if not found:
            raise AdminGroupError(f"Group {path} was created but could not be found")
        logger.info("Admin group created (path=%s, id=%s)", path, found)
        return (found, True)

    async def _find_group_id(self, org_id: str) -> Optional[str]:
        groups = await self._identity.search_groups(org_id=org_id, search=self._group_name)
        for group in groups:
            if isinstance(group, dict) and group.get("name") == self._group_name and group.get("id"):
                return str(group["id"])
        return None

    async def _assign_with_retry(self, *, group_id: str, principal_id: str) -> Optional[str]:
        """Returns None on success, otherwise the last error message."""

        last_error: Optional[str] = None
        for attempt in range(1, self._ASSIGNMENT_ATTEMPTS + 1):
            try:
                await self._identity.add_user_to_group(user_id=principal_id, group_id=group_id)
                logger.info("Principal %s assigned to admin group %s (attempt %d)", principal_id, group_id, attempt)
                return None
            except IdentityServiceError as exc:
                last_error = str(exc)
                logger.warning("Admin group assignment attempt %d failed: %s", attempt, exc)

            if attempt < self._ASSIGNMENT_ATTEMPTS:
                await asyncio.sleep(self._backoff_seconds)

        return last_error

    async def _verify_membership(self, *, group_id: str, principal_id: str) -> bool:
        try:
            groups = await self._identity.list_user_groups(user_id=principal_id)
        except IdentityServiceError as exc:
            logger.warning("Could not verify admin group membership (principal=%s): %s", principal_id, exc)
            return False

        verified = any(isinstance(g, dict) and str(g.get("id")) == group_id for g in groups)
        if not verified:
            logger.warning("Admin group %s not found in groups of principal %s after assignment", group_id, principal_id)
        return verified
