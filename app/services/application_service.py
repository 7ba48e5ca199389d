from __future__ import annotations

import asyncio
import json
import logging
from http import HTTPStatus
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from app.services.config import ApplicationServiceConfig


logger = logging.getLogger(__name__)


class ApplicationServiceError(RuntimeError):
    def __init__(self, message: str, *, status: Optional[int] = None, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason or message


class ApplicationServiceTimeoutError(ApplicationServiceError):
    """The client-side deadline passed before the service answered.

    The request may still be processed server-side.
    """


class ApplicationService:
    """Async client for the application backend's tenant setup endpoints."""

    def __init__(self, config: ApplicationServiceConfig, *, session: aiohttp.ClientSession) -> None:
        self._config = config
        self._session = session

    @staticmethod
    def from_env(*, session: aiohttp.ClientSession) -> "ApplicationService":
        return ApplicationService(ApplicationServiceConfig.from_env(), session=session)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._config.api_token:
            headers["Authorization"] = f"Bearer {self._config.api_token}"
        return headers

    @staticmethod
    def _extract_reason(text: str) -> str:
        if not text:
            return ""
        try:
            parsed = json.loads(text)
        except ValueError:
            return text.strip()
        if isinstance(parsed, dict):
            for key in ("detail", "message", "title", "error"):
                value = parsed.get(key)
                if value:
                    return str(value)
        return text.strip()

    async def create_tenant(self, *, name: str, identity_org_id: str, domain: Optional[str] = None) -> Optional[int]:
        """Create the tenant record and start schema provisioning.

        Uses `setup_timeout_seconds` as the client-side deadline.

        Returns:
            The tenant id from the response body (None if the body carried none).

        Raises:
            ApplicationServiceTimeoutError: the deadline passed; the work may still complete.
            ApplicationServiceError: the service rejected the request or the call failed.
        """

        body: dict[str, Any] = {"name": name, "keycloakOrgId": identity_org_id, "isActive": True}
        if domain:
            body["domain"] = domain

        url = f"{self._config.base_url}/api/organizations/setup"
        try:
            async with self._session.post(
                url,
                json=body,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._config.setup_timeout_seconds),
            ) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ConnectionTimeoutError as exc:
            # No connection was made, so the request never reached the service.
            logger.warning("Tenant creation could not connect in time (tenant=%s)", name)
            raise ApplicationServiceError(
                f"Tenant creation could not connect to the application service (tenant={name})",
                reason="application service unreachable",
            ) from exc
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Tenant creation timed out after %.1fs (tenant=%s); backend may still be processing",
                self._config.setup_timeout_seconds,
                name,
            )
            raise ApplicationServiceTimeoutError(f"Tenant creation timed out (tenant={name})") from exc
        except Exception as exc:
            logger.exception("Tenant creation request failed (tenant=%s)", name)
            raise ApplicationServiceError(f"Tenant creation request failed (tenant={name})") from exc

        if status not in (HTTPStatus.OK, HTTPStatus.CREATED):
            reason = self._extract_reason(text)
            raise ApplicationServiceError(
                f"Failed to create tenant (tenant={name}) HTTP {status} {reason}".strip(),
                status=status,
                reason=reason or f"HTTP {status}",
            )

        try:
            parsed = json.loads(text) if text else {}
        except ValueError:
            parsed = {}

        tenant_id = parsed.get("id") if isinstance(parsed, dict) else None
        if tenant_id is None:
            return None
        try:
            return int(tenant_id)
        except (TypeError, ValueError) as exc:
            raise ApplicationServiceError(f"Unexpected tenant id in response: {tenant_id!r}") from exc

    async def read_progress(self, *, tenant_name: str) -> str:
        """Read the current free-form setup status text for a tenant."""

        url = f"{self._config.base_url}/api/organizations/setup-progress/{quote(tenant_name, safe='')}"
        try:
            async with self._session.get(
                url,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            ) as resp:
                text = await resp.text()
                status = resp.status
        except Exception as exc:
            raise ApplicationServiceError(f"Setup progress request failed (tenant={tenant_name})") from exc

        if status != HTTPStatus.OK:
            raise ApplicationServiceError(
                f"Unexpected response reading setup progress (tenant={tenant_name}) HTTP {status}",
                status=status,
                reason=self._extract_reason(text),
            )

        # Some deployments return the status as a JSON string literal.
        stripped = text.strip()
        if stripped.startswith('"') and stripped.endswith('"'):
            try:
                decoded = json.loads(stripped)
            except ValueError:
                decoded = stripped
            if isinstance(decoded, str):
                return decoded
        return stripped

    async def find_tenant_id(self, *, identity_org_id: str) -> Optional[int]:
        """Look up the tenant id linked to an identity organization.

        Returns:
            The id of the first matching tenant, or None when there is no match.
        """

        url = f"{self._config.base_url}/api/organizations"
        try:
            async with self._session.get(
                url,
                params={"keycloakOrgId.equals": identity_org_id},
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            ) as resp:
                text = await resp.text()
                status = resp.status
        except Exception as exc:
            raise ApplicationServiceError(f"Tenant lookup failed (org={identity_org_id})") from exc

        if status != HTTPStatus.OK:
            raise ApplicationServiceError(
                f"Unexpected response looking up tenant (org={identity_org_id}) HTTP {status}",
                status=status,
                reason=self._extract_reason(text),
            )

        try:
            parsed = json.loads(text) if text else []
        except ValueError as exc:
            raise ApplicationServiceError(f"Tenant lookup returned invalid JSON (org={identity_org_id})") from exc

        for tenant in parsed if isinstance(parsed, list) else []:
            if isinstance(tenant, dict) and tenant.get("id") is not None:
                try:
                    return int(tenant["id"])
                except (TypeError, ValueError) as exc:
                    raise ApplicationServiceError(f"Unexpected tenant id in response: {tenant['id']!r}") from exc
        return None
