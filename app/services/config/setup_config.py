from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar

from app.services.config.env import float_from_env


@dataclass(frozen=True)
class TenantSetupConfig:
    """Tuning knobs for the setup saga and its progress polling.

    This is service wiring, not an API schema, so it stays a plain dataclass.
    """

    _DEFAULT_ADMIN_GROUP_NAME: ClassVar[str] = "Admins"
    _DEFAULT_BACKOFF_SECONDS: ClassVar[float] = 1.0
    _DEFAULT_POLL_INTERVAL_SECONDS: ClassVar[float] = 2.0
    admin_group_name: str = _DEFAULT_ADMIN_GROUP_NAME
    admin_assignment_backoff_seconds: float = _DEFAULT_BACKOFF_SECONDS
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS

    @staticmethod
    def from_env() -> "TenantSetupConfig":
        admin_group_name = (
            os.getenv("ADMIN_GROUP_NAME") or ""
        ).strip() or TenantSetupConfig._DEFAULT_ADMIN_GROUP_NAME

        backoff = float_from_env("ADMIN_ASSIGNMENT_BACKOFF_SECONDS", TenantSetupConfig._DEFAULT_BACKOFF_SECONDS)
        if backoff < 0:
            raise ValueError("Invalid ADMIN_ASSIGNMENT_BACKOFF_SECONDS; must not be negative")

        interval = float_from_env(
            "SETUP_PROGRESS_POLL_INTERVAL_SECONDS", TenantSetupConfig._DEFAULT_POLL_INTERVAL_SECONDS
        )
        if interval <= 0:
            raise ValueError("Invalid SETUP_PROGRESS_POLL_INTERVAL_SECONDS; must be positive")

        return TenantSetupConfig(
            admin_group_name=admin_group_name,
            admin_assignment_backoff_seconds=backoff,
            poll_interval_seconds=interval,
        )
