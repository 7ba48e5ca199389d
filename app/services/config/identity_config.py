from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar

from app.services.config.env import float_from_env


@dataclass(frozen=True)
class IdentityServiceConfig:
    """Runtime configuration for the identity (Keycloak admin) API.

    `base_url` is the server root without the realm path, e.g.
    "https://auth.example.com". Admin calls go to `{base_url}/admin/realms/{realm}`.
    """

    base_url: str
    realm: str
    client_id: str
    client_secret: str
    token_realm: str = "master"
    _DEFAULT_TIMEOUT_SECONDS: ClassVar[float] = 30.0
    timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS

    @property
    def admin_url(self) -> str:
        return f"{self.base_url}/admin/realms/{self.realm}"

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/realms/{self.token_realm}/protocol/openid-connect/token"

    @staticmethod
    def _required(name: str) -> str:
        value = (os.getenv(name) or "").strip()
        if not value:
            raise ValueError(f"Missing required environment variable: {name}")
        return value

    @staticmethod
    def from_env() -> "IdentityServiceConfig":
        base_url = IdentityServiceConfig._required("IDENTITY_BASE_URL")
        realm = IdentityServiceConfig._required("IDENTITY_REALM")
        client_id = IdentityServiceConfig._required("IDENTITY_CLIENT_ID")
        client_secret = IdentityServiceConfig._required("IDENTITY_CLIENT_SECRET")

        timeout_seconds = float_from_env(
            "IDENTITY_TIMEOUT_SECONDS", IdentityServiceConfig._DEFAULT_TIMEOUT_SECONDS
        )

        return IdentityServiceConfig(
            base_url=base_url.rstrip("/"),
            realm=realm,
            client_id=client_id,
            client_secret=client_secret,
            token_realm=(os.getenv("IDENTITY_TOKEN_REALM") or "master").strip() or "master",
            timeout_seconds=timeout_seconds,
        )
