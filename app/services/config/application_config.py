from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar, Optional

from app.services.config.env import float_from_env


@dataclass(frozen=True)
class ApplicationServiceConfig:
    """Runtime configuration for the application backend.

    Tenant creation provisions a schema and loads default data, so it gets its own
    (longer) client-side deadline: `setup_timeout_seconds`. Everything else uses
    `timeout_seconds`.
    """

    base_url: str
    api_token: Optional[str] = None
    _DEFAULT_TIMEOUT_SECONDS: ClassVar[float] = 30.0
    _DEFAULT_SETUP_TIMEOUT_SECONDS: ClassVar[float] = 60.0
    timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS
    setup_timeout_seconds: float = _DEFAULT_SETUP_TIMEOUT_SECONDS

    @staticmethod
    def from_env() -> "ApplicationServiceConfig":
        base_url = (os.getenv("APPLICATION_SERVICE_URL") or "").strip()
        if not base_url:
            raise ValueError("Missing required environment variable: APPLICATION_SERVICE_URL")

        api_token = (os.getenv("APPLICATION_SERVICE_TOKEN") or "").strip() or None

        return ApplicationServiceConfig(
            base_url=base_url.rstrip("/"),
            api_token=api_token,
            timeout_seconds=float_from_env(
                "APPLICATION_TIMEOUT_SECONDS", ApplicationServiceConfig._DEFAULT_TIMEOUT_SECONDS
            ),
            setup_timeout_seconds=float_from_env(
                "APPLICATION_SETUP_TIMEOUT_SECONDS", ApplicationServiceConfig._DEFAULT_SETUP_TIMEOUT_SECONDS
            ),
        )
