from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Union

from app.services.application_service import ApplicationService, ApplicationServiceError
from app.services.setup.models import INITIAL_PROGRESS, ProvisioningPhase, ProvisioningProgress


logger = logging.getLogger(__name__)


COMPLETED_TOKEN = "COMPLETED"
FAILED_PREFIX = "FAILED:"

# (base, span, checkpoint) of the overall percentage per phase.
_SCHEMA_CHECKPOINT = 25
_MIGRATIONS_RANGE = (25, 35, 60)
_DEFAULT_DATA_RANGE = (85, 10, 85)

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")


@dataclass(frozen=True)
class PhaseSignal:
    """A status text that names a phase."""

    phase: ProvisioningPhase
    overall_percent: Optional[int]
    raw_message: str
    sub_percent: Optional[float] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class UnrecognizedSignal:
    """A status text with no recognizable phase. Applying it changes nothing."""

    raw_message: str


ProgressSignal = Union[PhaseSignal, UnrecognizedSignal]


def _embedded_percent(text: str) -> Optional[float]:
    match = _PERCENT_RE.search(text)
    if not match:
        return None
    return min(max(float(match.group(1)), 0.0), 100.0)


def _interpolate(sub_percent: Optional[float], *, base: int, span: int, checkpoint: int) -> int:
    if sub_percent is None:
        return checkpoint
    return int(round(base + span * sub_percent / 100))


def parse_progress_signal(raw: Optional[str]) -> ProgressSignal:
    text = (raw or "").strip()
    lowered = text.lower()

    if text == COMPLETED_TOKEN:
        return PhaseSignal(phase=ProvisioningPhase.COMPLETED, overall_percent=100, raw_message=text)

    if text.startswith(FAILED_PREFIX):
        reason = text[len(FAILED_PREFIX):].strip() or "unknown error"
        # Failure keeps whatever percentage was reached.
        return PhaseSignal(
            phase=ProvisioningPhase.FAILED,
            overall_percent=None,
            raw_message=text,
            failure_reason=reason,
        )

    if "creating workspace schema" in lowered or "creating schema" in lowered:
        return PhaseSignal(
            phase=ProvisioningPhase.CREATING_SCHEMA, overall_percent=_SCHEMA_CHECKPOINT, raw_message=text
        )

    if "initializing setup" in lowered:
        return PhaseSignal(phase=ProvisioningPhase.INITIALIZING, overall_percent=_SCHEMA_CHECKPOINT, raw_message=text)

    if "running migrations" in lowered:
        sub = _embedded_percent(text)
        base, span, checkpoint = _MIGRATIONS_RANGE
        return PhaseSignal(
            phase=ProvisioningPhase.RUNNING_MIGRATIONS,
            overall_percent=_interpolate(sub, base=base, span=span, checkpoint=checkpoint),
            raw_message=text,
            sub_percent=sub,
        )

    if "loading" in lowered and "data" in lowered:
        sub = _embedded_percent(text)
        base, span, checkpoint = _DEFAULT_DATA_RANGE
        return PhaseSignal(
            phase=ProvisioningPhase.LOADING_DEFAULT_DATA,
            overall_percent=_interpolate(sub, base=base, span=span, checkpoint=checkpoint),
            raw_message=text,
            sub_percent=sub,
        )

    return UnrecognizedSignal(raw_message=text)


class ProgressTracker:
    """Folds successive status texts for one tenant into a ProvisioningProgress.

    The overall percentage never goes down and a phase never moves back to an
    earlier one. Once terminal, further signals are ignored.
    """

    def __init__(self, initial: ProvisioningProgress = INITIAL_PROGRESS) -> None:
        self._current = initial

    @property
    def current(self) -> ProvisioningProgress:
        return self._current

    def apply(self, raw: Optional[str]) -> ProvisioningProgress:
        if self._current.is_terminal:
            return self._current

        signal = parse_progress_signal(raw)
        if isinstance(signal, UnrecognizedSignal):
            logger.debug("Unrecognized setup progress signal: %r", signal.raw_message)
            self._current = replace(self._current, raw_message=signal.raw_message)
            return self._current

        previous = self._current
        percent = previous.overall_percent
        if signal.overall_percent is not None:
            percent = max(percent, signal.overall_percent)

        if signal.phase.is_terminal or signal.phase.rank >= previous.phase.rank:
            phase = signal.phase
            sub_percent = signal.sub_percent
        else:
            phase = previous.phase
            sub_percent = previous.sub_percent

        self._current = ProvisioningProgress(
            phase=phase,
            overall_percent=min(percent, 100),
            raw_message=signal.raw_message,
            sub_percent=sub_percent,
            failure_reason=signal.failure_reason,
        )
        return self._current


ProgressCallback = Callable[[ProvisioningProgress], Union[None, Awaitable[None]]]


async def _invoke(callback: Optional[ProgressCallback], progress: ProvisioningProgress, *, tenant_name: str) -> None:
    """Run a progress callback. A failing callback is logged and never ends the poll."""

    if callback is None:
        return
    try:
        result: Any = callback(progress)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception(
            "Setup progress callback failed (tenant=%s, phase=%s)", tenant_name, progress.phase.value
        )


class PollHandle:
    """Handle to one background polling loop. `cancel()` stops it."""

    def __init__(self, *, tenant_name: str, task: asyncio.Task, tracker: ProgressTracker) -> None:
        self.tenant_name = tenant_name
        self._task = task
        self._tracker = tracker

    @property
    def progress(self) -> ProvisioningProgress:
        return self._tracker.current

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()

    async def wait(self) -> ProvisioningProgress:
        """Wait for the loop to end (terminal phase or cancellation)."""

        try:
            await self._task
        except asyncio.CancelledError:
            # Re-raise if we were the ones cancelled, not the poll task.
            if not self._task.cancelled():
                raise
        return self._tracker.current


class ProvisioningProgressPoller:
    """Polls the application service's progress channel on a fixed interval.

    Read errors and failing callbacks are logged and polling continues; the loop
    only ends on a terminal phase or when cancelled.
    """

    _DEFAULT_POLL_INTERVAL_SECONDS: float = 2.0

    def __init__(
        self,
        *,
        application: ApplicationService,
        interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._application = application
        self._interval_seconds = interval_seconds

    def poll_progress(
        self,
        tenant_name: str,
        on_update: Optional[ProgressCallback] = None,
        on_terminal: Optional[ProgressCallback] = None,
    ) -> PollHandle:
        """Start polling in the background. Must be called from a running event loop."""

        if not tenant_name or not tenant_name.strip():
            raise ValueError("tenant_name must be provided")

        tracker = ProgressTracker()
        task = asyncio.create_task(
            self._poll_loop(tenant_name=tenant_name, tracker=tracker, on_update=on_update, on_terminal=on_terminal),
            name=f"setup-progress:{tenant_name}",
        )
        logger.info("Setup progress polling started (tenant=%s, interval=%.1fs)", tenant_name, self._interval_seconds)
        return PollHandle(tenant_name=tenant_name, task=task, tracker=tracker)

    async def _poll_loop(
        self,
        *,
        tenant_name: str,
        tracker: ProgressTracker,
        on_update: Optional[ProgressCallback],
        on_terminal: Optional[ProgressCallback],
    ) -> None:
        try:
            while True:
                try:
                    raw = await self._application.read_progress(tenant_name=tenant_name)
                except ApplicationServiceError as exc:
                    logger.warning("Setup progress read failed (tenant=%s): %s", tenant_name, exc)
                else:
                    progress = tracker.apply(raw)
                    await _invoke(on_update, progress, tenant_name=tenant_name)
                    if progress.is_terminal:
                        logger.info(
                            "Setup progress reached %s (tenant=%s)", progress.phase.value, tenant_name
                        )
                        await _invoke(on_terminal, progress, tenant_name=tenant_name)
                        return

                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.info("Setup progress polling cancelled (tenant=%s)", tenant_name)
            raise
