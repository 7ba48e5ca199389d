"""Shared fixtures for tenant setup tests.

Collaborating services are replaced with ``AsyncMock`` objects specced on the real
clients, so a test only wires up the calls it cares about.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.services.application_service import ApplicationService
from app.services.identity_service import IdentityService
from app.services.setup.models import IdentityOrgRef, ProvisioningRequest

ORG_ID = "org-123"
GROUP_ID = "grp-456"
PRINCIPAL_ID = "user-789"
TENANT_NAME = "acme"


@pytest.fixture()
def identity() -> AsyncMock:
    """Identity service where every call succeeds and the org/group already resolve."""
    mock = AsyncMock(spec=IdentityService)
    mock.create_organization.return_value = None
    mock.search_organizations.return_value = [{"id": ORG_ID, "name": TENANT_NAME}]
    mock.add_organization_member.return_value = None
    mock.search_groups.return_value = []
    mock.create_group.return_value = GROUP_ID
    mock.add_user_to_group.return_value = None
    mock.list_user_groups.return_value = [{"id": GROUP_ID, "name": "Admins"}]
    return mock


@pytest.fixture()
def application() -> AsyncMock:
    mock = AsyncMock(spec=ApplicationService)
    mock.create_tenant.return_value = 42
    mock.read_progress.return_value = "COMPLETED"
    mock.find_tenant_id.return_value = 42
    return mock


@pytest.fixture()
def org() -> IdentityOrgRef:
    return IdentityOrgRef(org_id=ORG_ID, name=TENANT_NAME)


@pytest.fixture()
def provisioning_request() -> ProvisioningRequest:
    return ProvisioningRequest(tenant_name=TENANT_NAME, acting_principal_id=PRINCIPAL_ID, domain="acme.example")
