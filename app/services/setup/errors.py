"""Saga-fatal errors.

Each one unwinds out of the orchestrator as its own type so callers can branch
on it. Non-fatal problems (admin group) are never raised; see
AdminGroupAssignmentOutcome.
"""

from __future__ import annotations

from typing import Optional

from app.services.setup.models import IdentityOrgRef


class TenantSetupError(RuntimeError):
    error_code: str = "TENANT_SETUP_FAILED"

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason or message


class AlreadyExistsError(TenantSetupError):
    """The organization name is taken. The user must pick another name."""

    error_code = "ORGANIZATION_EXISTS"

    def __init__(self, tenant_name: str) -> None:
        super().__init__(f"An organization named {tenant_name!r} already exists")
        self.tenant_name = tenant_name


class IdentityOrgCreationFailedError(TenantSetupError):
    error_code = "IDENTITY_ORG_FAILED"


class MembershipFailedError(TenantSetupError):
    error_code = "MEMBERSHIP_FAILED"


class TenantCreationFailedError(TenantSetupError):
    """The application service rejected tenant creation.

    `identity_org` is left in place; it is attached so callers can clean it up.
    """

    error_code = "TENANT_CREATION_FAILED"

    def __init__(self, message: str, *, reason: Optional[str] = None, identity_org: Optional[IdentityOrgRef] = None) -> None:
        super().__init__(message, reason=reason)
        self.identity_org = identity_org
