from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.services.setup.models import AdminGroupAssignmentOutcome, ProvisioningProgress, SetupOutcome, phase_label
from app.services.setup.setup_session import SetupSession


class SetupTenantRequest(BaseModel):
    tenant_name: str = Field(..., min_length=1, description="Name of the new workspace/organization")
    acting_principal_id: str = Field(..., min_length=1, description="Identity-service user id performing setup")
    domain: Optional[str] = Field(default=None, description="Optional organization domain")


class AdminGroupResponse(BaseModel):
    group_id: Optional[str] = None
    group_name: str
    was_created: bool
    assignment_succeeded: bool
    verification_passed: bool
    error: Optional[str] = None

    @staticmethod
    def from_outcome(outcome: AdminGroupAssignmentOutcome) -> "AdminGroupResponse":
        return AdminGroupResponse(
            group_id=outcome.group_id,
            group_name=outcome.group_name,
            was_created=outcome.was_created,
            assignment_succeeded=outcome.assignment_succeeded,
            verification_passed=outcome.verification_passed,
            error=outcome.error,
        )


class SetupTenantResponse(BaseModel):
    tenant_name: str
    identity_org_id: str
    tenant_id: Optional[int] = None
    mode: str
    requires_polling: bool
    admin_group: AdminGroupResponse
    warnings: list[str] = Field(default_factory=list)

    @staticmethod
    def from_outcome(outcome: SetupOutcome) -> "SetupTenantResponse":
        return SetupTenantResponse(
            tenant_name=outcome.identity_org.name,
            identity_org_id=outcome.identity_org.org_id,
            tenant_id=outcome.tenant.tenant_id,
            mode=outcome.mode.value,
            requires_polling=outcome.requires_polling,
            admin_group=AdminGroupResponse.from_outcome(outcome.admin_group),
            warnings=outcome.warnings,
        )


class ProgressResponse(BaseModel):
    phase: str
    label: str
    overall_percent: int
    sub_percent: Optional[float] = None
    message: str = ""
    failure_reason: Optional[str] = None

    @staticmethod
    def from_progress(progress: ProvisioningProgress) -> "ProgressResponse":
        return ProgressResponse(
            phase=progress.phase.value,
            label=phase_label(progress.phase),
            overall_percent=progress.overall_percent,
            sub_percent=progress.sub_percent,
            message=progress.raw_message,
            failure_reason=progress.failure_reason,
        )


class SetupSessionResponse(BaseModel):
    tenant_name: str
    state: str
    polling: bool
    progress: ProgressResponse
    setup: Optional[SetupTenantResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def from_session(session: SetupSession, *, polling: bool) -> "SetupSessionResponse":
        return SetupSessionResponse(
            tenant_name=session.tenant_name,
            state=session.state.value,
            polling=polling,
            progress=ProgressResponse.from_progress(session.progress),
            setup=SetupTenantResponse.from_outcome(session.outcome) if session.outcome else None,
            error=session.error,
            error_code=session.error_code,
        )
