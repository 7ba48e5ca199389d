from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


DEFAULT_ADMIN_GROUP_NAME = "Admins"


@dataclass(frozen=True)
class ProvisioningRequest:
    """What the caller asked for. Validated on construction."""

    tenant_name: str
    acting_principal_id: str
    domain: Optional[str] = None

    def __post_init__(self) -> None:
        name = (self.tenant_name or "").strip()
        if not name:
            raise ValueError("tenant_name must be provided")
        principal = (self.acting_principal_id or "").strip()
        if not principal:
            raise ValueError("acting_principal_id must be provided")

        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "tenant_name", name)
        object.__setattr__(self, "acting_principal_id", principal)
        object.__setattr__(self, "domain", (self.domain or "").strip() or None)


@dataclass(frozen=True)
class IdentityOrgRef:
    org_id: str
    name: str


@dataclass(frozen=True)
class AdminGroupAssignmentOutcome:
    group_id: Optional[str]
    group_name: str = DEFAULT_ADMIN_GROUP_NAME
    was_created: bool = False
    assignment_succeeded: bool = False
    verification_passed: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class TenantRef:
    """Application-side tenant. `tenant_id` is None while creation is unconfirmed."""

    tenant_id: Optional[int]
    identity_org_id: str

    @property
    def is_provisional(self) -> bool:
        return self.tenant_id is None


class SetupMode(str, Enum):
    SYNCHRONOUS_COMPLETE = "SYNCHRONOUS_COMPLETE"
    AWAITING_PROGRESS = "AWAITING_PROGRESS"


class ProvisioningPhase(str, Enum):
    INITIALIZING = "INITIALIZING"
    CREATING_SCHEMA = "CREATING_SCHEMA"
    RUNNING_MIGRATIONS = "RUNNING_MIGRATIONS"
    LOADING_DEFAULT_DATA = "LOADING_DEFAULT_DATA"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def rank(self) -> int:
        return _PHASE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ProvisioningPhase.COMPLETED, ProvisioningPhase.FAILED)


_PHASE_RANK = {
    ProvisioningPhase.INITIALIZING: 0,
    ProvisioningPhase.CREATING_SCHEMA: 1,
    ProvisioningPhase.RUNNING_MIGRATIONS: 2,
    ProvisioningPhase.LOADING_DEFAULT_DATA: 3,
    ProvisioningPhase.COMPLETED: 4,
    ProvisioningPhase.FAILED: 4,
}

_PHASE_LABELS = {
    ProvisioningPhase.INITIALIZING: "Preparing setup",
    ProvisioningPhase.CREATING_SCHEMA: "Creating workspace schema",
    ProvisioningPhase.RUNNING_MIGRATIONS: "Running database migrations",
    ProvisioningPhase.LOADING_DEFAULT_DATA: "Loading default data",
    ProvisioningPhase.COMPLETED: "Setup complete",
    ProvisioningPhase.FAILED: "Setup failed",
}


def phase_label(phase: ProvisioningPhase) -> str:
    return _PHASE_LABELS[phase]


@dataclass(frozen=True)
class ProvisioningProgress:
    phase: ProvisioningPhase
    overall_percent: int
    raw_message: str = ""
    sub_percent: Optional[float] = None
    failure_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal


INITIAL_PROGRESS = ProvisioningProgress(phase=ProvisioningPhase.INITIALIZING, overall_percent=0)


ADMIN_NOT_ASSIGNED_WARNING = "Admin privileges were not assigned; fix the group membership later."


@dataclass(frozen=True)
class SetupOutcome:
    identity_org: IdentityOrgRef
    admin_group: AdminGroupAssignmentOutcome
    tenant: TenantRef
    mode: SetupMode

    @property
    def requires_polling(self) -> bool:
        return self.mode is SetupMode.AWAITING_PROGRESS

    @property
    def warnings(self) -> list[str]:
        warnings: list[str] = []
        if not self.admin_group.assignment_succeeded:
            warnings.append(ADMIN_NOT_ASSIGNED_WARNING)
        elif not self.admin_group.verification_passed:
            warnings.append("Admin group membership could not be verified.")
        return warnings
