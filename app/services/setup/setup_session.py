from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from app.services.application_service import ApplicationService, ApplicationServiceError
from app.services.setup.errors import TenantSetupError
from app.services.setup.models import (
    INITIAL_PROGRESS,
    ProvisioningPhase,
    ProvisioningProgress,
    SetupOutcome,
    TenantRef,
)
from app.services.setup.progress_poller import PollHandle, ProvisioningProgressPoller


logger = logging.getLogger(__name__)


class InvalidSessionTransition(RuntimeError):
    pass


class SetupState(str, Enum):
    SUBMITTED = "SUBMITTED"
    AWAITING_PROGRESS = "AWAITING_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SetupSession:
    """Caller-side view of one tenant setup, as an immutable state value.

    It only moves through the event methods below; each returns a new session:

        SUBMITTED --outcome_received--> AWAITING_PROGRESS --terminal_reached--> COMPLETED | FAILED
        SUBMITTED --setup_failed--> FAILED

    `tenant_resolved` fills in a provisional tenant id without changing state.
    """

    tenant_name: str
    state: SetupState = SetupState.SUBMITTED
    outcome: Optional[SetupOutcome] = None
    progress: ProvisioningProgress = INITIAL_PROGRESS
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.state in (SetupState.COMPLETED, SetupState.FAILED)

    @property
    def tenant(self) -> Optional[TenantRef]:
        return self.outcome.tenant if self.outcome else None

    def _require(self, *allowed: SetupState, event: str) -> None:
        if self.state not in allowed:
            raise InvalidSessionTransition(f"Cannot apply {event} to a session in state {self.state.value}")

    def outcome_received(self, outcome: SetupOutcome) -> "SetupSession":
        self._require(SetupState.SUBMITTED, event="outcome_received")
        return replace(self, state=SetupState.AWAITING_PROGRESS, outcome=outcome)

    def setup_failed(self, error: TenantSetupError) -> "SetupSession":
        self._require(SetupState.SUBMITTED, event="setup_failed")
        return replace(self, state=SetupState.FAILED, error=error.reason, error_code=error.error_code)

    def progress_updated(self, progress: ProvisioningProgress) -> "SetupSession":
        self._require(SetupState.AWAITING_PROGRESS, event="progress_updated")
        return replace(self, progress=progress)

    def terminal_reached(self, progress: ProvisioningProgress) -> "SetupSession":
        self._require(SetupState.AWAITING_PROGRESS, event="terminal_reached")
        if progress.phase is ProvisioningPhase.COMPLETED:
            return replace(self, state=SetupState.COMPLETED, progress=progress)
        if progress.phase is ProvisioningPhase.FAILED:
            return replace(
                self,
                state=SetupState.FAILED,
                progress=progress,
                error=progress.failure_reason,
                error_code="TENANT_PROVISIONING_FAILED",
            )
        raise InvalidSessionTransition(f"Progress phase {progress.phase.value} is not terminal")

    def tenant_resolved(self, tenant_id: int) -> "SetupSession":
        """Record the application tenant id learned after an AWAITING_PROGRESS setup."""

        self._require(SetupState.AWAITING_PROGRESS, SetupState.COMPLETED, event="tenant_resolved")
        if self.outcome is None:
            raise InvalidSessionTransition("Cannot resolve a tenant id without a setup outcome")
        tenant = replace(self.outcome.tenant, tenant_id=tenant_id)
        return replace(self, outcome=replace(self.outcome, tenant=tenant))


class SetupSessionRegistry:
    """In-memory sessions per tenant name plus their background polls.

    Sessions are only written once the saga has returned: a successful outcome
    replaces whatever was there, a failure is recorded only when no live or
    finished setup exists for the name. Owned by the app lifespan; `shutdown()`
    cancels every poll.
    """

    def __init__(
        self,
        *,
        poller: ProvisioningProgressPoller,
        application: Optional[ApplicationService] = None,
    ) -> None:
        self._poller = poller
        self._application = application
        self._sessions: dict[str, SetupSession] = {}
        self._polls: dict[str, PollHandle] = {}

    def get(self, tenant_name: str) -> Optional[SetupSession]:
        return self._sessions.get(tenant_name)

    def is_polling(self, tenant_name: str) -> bool:
        handle = self._polls.get(tenant_name)
        return handle is not None and not handle.done

    def record_failure(self, tenant_name: str, error: TenantSetupError) -> SetupSession:
        """Record a saga failure unless a setup for this name is already tracked."""

        existing = self._sessions.get(tenant_name)
        if existing is not None and existing.state is not SetupState.FAILED:
            logger.info(
                "Keeping %s setup session for %s; not recording %s",
                existing.state.value,
                tenant_name,
                error.error_code,
            )
            return existing

        session = SetupSession(tenant_name=tenant_name).setup_failed(error)
        self._sessions[tenant_name] = session
        return session

    def start_polling(self, tenant_name: str, outcome: SetupOutcome) -> SetupSession:
        self.stop_polling(tenant_name)
        session = SetupSession(tenant_name=tenant_name).outcome_received(outcome)
        self._sessions[tenant_name] = session

        def _current() -> Optional[SetupSession]:
            current = self._sessions.get(tenant_name)
            # A later setup for the same name owns the slot now.
            if current is None or current.outcome is not outcome:
                return None
            return current

        def _on_update(progress: ProvisioningProgress) -> None:
            current = _current()
            if current is not None and current.state is SetupState.AWAITING_PROGRESS:
                self._sessions[tenant_name] = current.progress_updated(progress)

        async def _on_terminal(progress: ProvisioningProgress) -> None:
            tenant_id = None
            if progress.phase is ProvisioningPhase.COMPLETED and outcome.tenant.is_provisional:
                tenant_id = await self._resolve_tenant_id(tenant_name, outcome.tenant)

            current = _current()
            if current is not None and current.state is SetupState.AWAITING_PROGRESS:
                current = current.terminal_reached(progress)
                if tenant_id is not None:
                    current = current.tenant_resolved(tenant_id)
                self._sessions[tenant_name] = current
            if self._polls.get(tenant_name) is handle:
                self._polls.pop(tenant_name, None)

        handle = self._poller.poll_progress(tenant_name, on_update=_on_update, on_terminal=_on_terminal)
        self._polls[tenant_name] = handle
        return session

    async def _resolve_tenant_id(self, tenant_name: str, tenant: TenantRef) -> Optional[int]:
        if self._application is None:
            return None
        try:
            tenant_id = await self._application.find_tenant_id(identity_org_id=tenant.identity_org_id)
        except ApplicationServiceError as exc:
            logger.warning("Could not resolve tenant id after setup (tenant=%s): %s", tenant_name, exc)
            return None
        if tenant_id is None:
            logger.warning("Tenant %s completed setup but was not found by organization id", tenant_name)
        else:
            logger.info("Tenant id resolved after setup (tenant=%s, id=%s)", tenant_name, tenant_id)
        return tenant_id

    def stop_polling(self, tenant_name: str) -> bool:
        handle = self._polls.pop(tenant_name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    async def shutdown(self) -> None:
        handles = list(self._polls.values())
        self._polls.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(handle.wait() for handle in handles), return_exceptions=True)
            logger.info("Stopped %d setup progress poll(s)", len(handles))
