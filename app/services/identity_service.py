from __future__ import annotations

import json
import logging
import time
from http import HTTPStatus
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from app.services.config import IdentityServiceConfig


logger = logging.getLogger(__name__)


class IdentityServiceError(RuntimeError):
    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class IdentityConflictError(IdentityServiceError):
    """The resource already exists (HTTP 409)."""


class IdentityService:
    """Minimal async client for a Keycloak-style admin REST API.

    Only the handful of calls tenant setup needs: organizations, org members,
    org-scoped groups and user group membership. Authenticates with the OpenID
    `client_credentials` grant and caches the token until shortly before expiry.
    """

    _TOKEN_REFRESH_MARGIN_SECONDS: float = 30.0

    def __init__(self, config: IdentityServiceConfig, *, session: aiohttp.ClientSession) -> None:
        self._config = config
        self._session = session
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0

    @staticmethod
    def from_env(*, session: aiohttp.ClientSession) -> "IdentityService":
        return IdentityService(IdentityServiceConfig.from_env(), session=session)

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        form = {
            "grant_type": "client_credentials",
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }
        try:
            async with self._session.post(
                self._config.token_url,
                data=form,
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            ) as resp:
                if resp.status != HTTPStatus.OK:
                    details = await resp.text()
                    raise IdentityServiceError(
                        f"Failed to obtain identity admin token: HTTP {resp.status} {details}".strip(),
                        status=resp.status,
                    )
                payload = await resp.json(content_type=None)
        except IdentityServiceError:
            raise
        except Exception as exc:
            logger.exception("Identity token request failed")
            raise IdentityServiceError("Identity token request failed") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise IdentityServiceError("Identity token response did not contain an access_token")

        expires_in = float(payload.get("expires_in") or 60)
        self._access_token = token
        self._token_expires_at = time.monotonic() + max(expires_in - self._TOKEN_REFRESH_MARGIN_SECONDS, 0.0)
        return token

    async def _request(
        self,
        *,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        json_body: Any = None,
    ) -> tuple[int, Any, Optional[str]]:
        """Send an admin API request.

        Returns:
            (status, parsed JSON body or None, Location header or None). Non-2xx
            statuses are returned, not raised; transport failures raise
            IdentityServiceError.
        """

        if not path.startswith("/"):
            path = "/" + path

        token = await self._get_access_token()
        url = f"{self._config.admin_url}{path}"
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        try:
            async with self._session.request(
                method.upper(),
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            ) as resp:
                text = await resp.text()
                body: Any = None
                if text and "json" in (resp.headers.get("Content-Type") or ""):
                    try:
                        body = json.loads(text)
                    except ValueError:
                        body = None
                elif text:
                    body = text
                return (resp.status, body, resp.headers.get("Location"))
        except Exception as exc:
            logger.exception("Identity request failed (method=%s path=%s)", method, path)
            raise IdentityServiceError("Identity request failed") from exc

    @staticmethod
    def _raise_for_status(status: int, body: Any, *, action: str) -> None:
        if HTTPStatus.OK <= status < HTTPStatus.MULTIPLE_CHOICES:
            return

        details = ""
        if isinstance(body, dict):
            details = str(body.get("errorMessage") or body.get("error") or body)
        elif body:
            details = str(body)

        message = f"Failed to {action}: HTTP {status} {details}".strip()
        if status == HTTPStatus.CONFLICT:
            raise IdentityConflictError(message, status=status)
        raise IdentityServiceError(message, status=status)

    # -----------------
    # Organizations
    # -----------------

    async def create_organization(
        self,
        *,
        name: str,
        attributes: Optional[dict[str, str]] = None,
        domain: Optional[str] = None,
    ) -> None:
        """Create an organization. The API does not echo the new id.

        Raises:
            IdentityConflictError: if an organization with this name exists.
        """

        if not name or not name.strip():
            raise ValueError("name must be provided")

        body: dict[str, Any] = {
            "name": name,
            "enabled": True,
            "attributes": {key: [value] for key, value in (attributes or {}).items()},
        }
        if domain:
            body["domains"] = [{"name": domain, "verified": False}]

        status, payload, _ = await self._request(method="POST", path="/organizations", json_body=body)
        self._raise_for_status(status, payload, action=f"create organization {name!r}")

    async def search_organizations(self, *, search: str) -> list[dict[str, Any]]:
        status, payload, _ = await self._request(
            method="GET", path="/organizations", params={"search": search, "briefRepresentation": "false"}
        )
        self._raise_for_status(status, payload, action="search organizations")
        return payload if isinstance(payload, list) else []

    async def add_organization_member(self, *, org_id: str, user_id: str) -> None:
        """Add a user to an organization.

        Raises:
            IdentityConflictError: if the user is already a member.
        """

        # The members endpoint takes the bare user id as a JSON string.
        status, payload, _ = await self._request(
            method="POST", path=f"/organizations/{quote(org_id, safe='')}/members", json_body=user_id
        )
        self._raise_for_status(status, payload, action=f"add member {user_id} to organization {org_id}")

    # -----------------
    # Groups
    # -----------------

    async def search_groups(self, *, org_id: str, search: str) -> list[dict[str, Any]]:
        status, payload, _ = await self._request(
            method="GET",
            path=f"/organizations/{quote(org_id, safe='')}/groups",
            params={"search": search},
        )
        self._raise_for_status(status, payload, action=f"search groups of organization {org_id}")
        return payload if isinstance(payload, list) else []

    async def create_group(self, *, org_id: str, name: str, path: str) -> Optional[str]:
        """Create an org-scoped group.

        Returns:
            The new group id when the server echoes it in the `Location` header,
            otherwise None (callers re-query).

        Raises:
            IdentityConflictError: if the group already exists.
        """

        status, payload, location = await self._request(
            method="POST",
            path=f"/organizations/{quote(org_id, safe='')}/groups",
            json_body={"name": name, "path": path, "attributes": {"organization": [org_id]}},
        )
        self._raise_for_status(status, payload, action=f"create group {path}")

        if location:
            return location.rstrip("/").rsplit("/", 1)[-1] or None
        return None

    async def add_user_to_group(self, *, user_id: str, group_id: str) -> None:
        status, payload, _ = await self._request(
            method="PUT",
            path=f"/users/{quote(user_id, safe='')}/groups/{quote(group_id, safe='')}",
        )
        self._raise_for_status(status, payload, action=f"add user {user_id} to group {group_id}")

    async def list_user_groups(self, *, user_id: str) -> list[dict[str, Any]]:
        status, payload, _ = await self._request(method="GET", path=f"/users/{quote(user_id, safe='')}/groups")
        self._raise_for_status(status, payload, action=f"list groups of user {user_id}")
        return payload if isinstance(payload, list) else []
