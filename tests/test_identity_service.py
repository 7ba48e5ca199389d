"""Tests for the identity admin client against a local aiohttp server."""

from __future__ import annotations

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from app.services.config import IdentityServiceConfig
from app.services.identity_service import IdentityConflictError, IdentityService, IdentityServiceError

REALM = "workspaces"
ADMIN = f"/admin/realms/{REALM}"


class FakeIdentityServer:
    """Records requests and serves canned Keycloak-style responses."""

    def __init__(self) -> None:
        self.token_requests = 0
        self.requests: list[tuple[str, str, object]] = []
        self.org_status = 201
        self.member_status = 204
        self.group_location: str | None = "groups/new-group-id"

    def build(self) -> web.Application:
        web_app = web.Application()
        web_app.router.add_post("/realms/master/protocol/openid-connect/token", self.token)
        web_app.router.add_post(f"{ADMIN}/organizations", self.create_org)
        web_app.router.add_get(f"{ADMIN}/organizations", self.search_orgs)
        web_app.router.add_post(f"{ADMIN}/organizations/{{org_id}}/members", self.add_member)
        web_app.router.add_get(f"{ADMIN}/organizations/{{org_id}}/groups", self.search_groups)
        web_app.router.add_post(f"{ADMIN}/organizations/{{org_id}}/groups", self.create_group)
        web_app.router.add_put(f"{ADMIN}/users/{{user_id}}/groups/{{group_id}}", self.add_to_group)
        web_app.router.add_get(f"{ADMIN}/users/{{user_id}}/groups", self.user_groups)
        return web_app

    async def _record(self, request: web.Request) -> None:
        body = await request.json() if request.can_read_body else None
        self.requests.append((request.method, request.path, body))
        assert request.headers["Authorization"] == "Bearer token-1"

    async def token(self, request: web.Request) -> web.Response:
        form = await request.post()
        assert form["grant_type"] == "client_credentials"
        assert form["client_id"] == "setup-client"
        self.token_requests += 1
        return web.json_response({"access_token": "token-1", "expires_in": 300})

    async def create_org(self, request: web.Request) -> web.Response:
        await self._record(request)
        if self.org_status == 409:
            return web.json_response({"errorMessage": "Organization exists"}, status=409)
        return web.Response(status=self.org_status)

    async def search_orgs(self, request: web.Request) -> web.Response:
        await self._record(request)
        assert request.query["search"] == "acme"
        return web.json_response([{"id": "org-1", "name": "acme"}])

    async def add_member(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(status=self.member_status)

    async def search_groups(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response([{"id": "grp-1", "name": request.query["search"]}])

    async def create_group(self, request: web.Request) -> web.Response:
        await self._record(request)
        headers = {}
        if self.group_location:
            headers["Location"] = f"http://localhost{ADMIN}/{self.group_location}"
        return web.Response(status=201, headers=headers)

    async def add_to_group(self, request: web.Request) -> web.Response:
        await self._record(request)
        if request.match_info["group_id"] == "missing":
            return web.json_response({"error": "Group not found"}, status=404)
        return web.Response(status=204)

    async def user_groups(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response([{"id": "grp-1", "name": "Admins"}])


@pytest.fixture()
def fake() -> FakeIdentityServer:
    return FakeIdentityServer()


@pytest_asyncio.fixture
async def identity_client(fake):
    async with TestServer(fake.build()) as server:
        config = IdentityServiceConfig(
            base_url=str(server.make_url("")).rstrip("/"),
            realm=REALM,
            client_id="setup-client",
            client_secret="secret",
            timeout_seconds=5,
        )
        async with aiohttp.ClientSession() as session:
            yield IdentityService(config, session=session)


@pytest.mark.asyncio
async def test_create_organization_sends_attributes_and_domain(identity_client, fake):
    await identity_client.create_organization(
        name="acme", attributes={"displayName": "acme"}, domain="acme.example"
    )

    method, path, body = fake.requests[0]
    assert (method, path) == ("POST", f"{ADMIN}/organizations")
    assert body["name"] == "acme"
    assert body["enabled"] is True
    assert body["attributes"] == {"displayName": ["acme"]}
    assert body["domains"] == [{"name": "acme.example", "verified": False}]


@pytest.mark.asyncio
async def test_create_organization_conflict(identity_client, fake):
    fake.org_status = 409

    with pytest.raises(IdentityConflictError) as excinfo:
        await identity_client.create_organization(name="acme")

    assert excinfo.value.status == 409
    assert "Organization exists" in str(excinfo.value)


@pytest.mark.asyncio
async def test_token_is_cached_between_calls(identity_client, fake):
    await identity_client.search_organizations(search="acme")
    await identity_client.list_user_groups(user_id="user-1")

    assert fake.token_requests == 1


@pytest.mark.asyncio
async def test_search_organizations_returns_list(identity_client):
    orgs = await identity_client.search_organizations(search="acme")

    assert orgs == [{"id": "org-1", "name": "acme"}]


@pytest.mark.asyncio
async def test_add_member_posts_bare_user_id(identity_client, fake):
    await identity_client.add_organization_member(org_id="org-1", user_id="user-1")

    assert fake.requests[0] == ("POST", f"{ADMIN}/organizations/org-1/members", "user-1")


@pytest.mark.asyncio
async def test_add_member_conflict(identity_client, fake):
    fake.member_status = 409

    with pytest.raises(IdentityConflictError):
        await identity_client.add_organization_member(org_id="org-1", user_id="user-1")


@pytest.mark.asyncio
async def test_create_group_returns_id_from_location(identity_client, fake):
    group_id = await identity_client.create_group(org_id="org-1", name="Admins", path="/org-1/Admins")

    assert group_id == "new-group-id"
    _, path, body = fake.requests[0]
    assert path == f"{ADMIN}/organizations/org-1/groups"
    assert body["name"] == "Admins"
    assert body["path"] == "/org-1/Admins"


@pytest.mark.asyncio
async def test_create_group_without_location_returns_none(identity_client, fake):
    fake.group_location = None

    assert await identity_client.create_group(org_id="org-1", name="Admins", path="/org-1/Admins") is None


@pytest.mark.asyncio
async def test_search_groups_and_membership(identity_client, fake):
    groups = await identity_client.search_groups(org_id="org-1", search="Admins")
    await identity_client.add_user_to_group(user_id="user-1", group_id="grp-1")
    user_groups = await identity_client.list_user_groups(user_id="user-1")

    assert groups == [{"id": "grp-1", "name": "Admins"}]
    assert user_groups == [{"id": "grp-1", "name": "Admins"}]
    assert fake.requests[1][:2] == ("PUT", f"{ADMIN}/users/user-1/groups/grp-1")


@pytest.mark.asyncio
async def test_non_2xx_raises_with_status(identity_client):
    with pytest.raises(IdentityServiceError) as excinfo:
        await identity_client.add_user_to_group(user_id="user-1", group_id="missing")

    assert excinfo.value.status == 404
    assert not isinstance(excinfo.value, IdentityConflictError)
    assert "Group not found" in str(excinfo.value)


@pytest.mark.asyncio
async def test_create_organization_requires_name(identity_client):
    with pytest.raises(ValueError):
        await identity_client.create_organization(name="  ")


@pytest.mark.asyncio
async def test_token_failure_is_identity_error():
    async def deny(request: web.Request) -> web.Response:
        return web.Response(status=401, text="bad credentials")

    web_app = web.Application()
    web_app.router.add_post("/realms/master/protocol/openid-connect/token", deny)

    async with TestServer(web_app) as server:
        config = IdentityServiceConfig(
            base_url=str(server.make_url("")).rstrip("/"),
            realm=REALM,
            client_id="setup-client",
            client_secret="wrong",
        )
        async with aiohttp.ClientSession() as session:
            client = IdentityService(config, session=session)
            with pytest.raises(IdentityServiceError) as excinfo:
                await client.search_organizations(search="acme")

    assert excinfo.value.status == 401
