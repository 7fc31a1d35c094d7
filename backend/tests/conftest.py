# tests/conftest.py
"""
Pytest fixtures for the agency backend.

Every organization is created through accounts.commands.register_owner and
every team member through create_team_member, so fixtures hold the same
invariants production data does (owner role coupling, one active
membership per account).
"""

from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from accounts.authz import ActorContext
from accounts.commands import create_team_member, register_owner
from accounts.identity import issue_tokens
from accounts.membership import membership_of
from accounts.models import Membership
from ledger.engine import get_engine
from projects.commands import create_project


@pytest.fixture(autouse=True, scope="session")
def _testing_settings(django_db_setup, django_db_blocker):
    """Test-only settings for the write barrier and RLS."""
    from django.conf import settings

    settings.TESTING = True
    settings.RLS_BYPASS = True


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache."""
    cache.clear()
    yield
    cache.clear()


def make_actor(user) -> ActorContext:
    info = membership_of(user.pk)
    assert info is not None, f"{user} has no active membership"
    return ActorContext(user=user, membership=info)


def auth_client(user) -> APIClient:
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_tokens(user)['access']}")
    return client


# =============================================================================
# Organizations & accounts
# =============================================================================

@pytest.fixture
def signup(db):
    result = register_owner(
        email="owner@studio.test",
        password="testpass123",
        organization_name="Pixel Studio",
        name="Olive Owner",
    )
    assert result.success, result.error
    return result.data


@pytest.fixture
def owner(signup):
    return signup["user"]


@pytest.fixture
def organization(signup):
    return signup["organization"]


@pytest.fixture
def owner_actor(owner):
    return make_actor(owner)


@pytest.fixture
def other_signup(db):
    result = register_owner(
        email="owner@rival.test",
        password="testpass123",
        organization_name="Rival Agency",
        name="Rita Rival",
    )
    assert result.success, result.error
    return result.data


@pytest.fixture
def other_owner(other_signup):
    return other_signup["user"]


@pytest.fixture
def other_organization(other_signup):
    return other_signup["organization"]


def _team_member(actor, email, role, name="Team Member"):
    result = create_team_member(
        actor,
        email=email,
        name=name,
        password="testpass123",
        role=role,
    )
    assert result.success, result.error
    return result.data["user"]


@pytest.fixture
def admin(owner_actor):
    return _team_member(owner_actor, "admin@studio.test", Membership.Role.ADMIN, "Ada Admin")


@pytest.fixture
def designer(owner_actor):
    return _team_member(owner_actor, "designer@studio.test", Membership.Role.DESIGNER, "Dina Designer")


@pytest.fixture
def developer(owner_actor):
    return _team_member(owner_actor, "developer@studio.test", Membership.Role.DEVELOPER, "Dev Eloper")


@pytest.fixture
def admin_actor(admin):
    return make_actor(admin)


@pytest.fixture
def designer_actor(designer):
    return make_actor(designer)


@pytest.fixture
def developer_actor(developer):
    return make_actor(developer)


@pytest.fixture
def other_member(other_owner):
    return _team_member(make_actor(other_owner), "dev@rival.test", Membership.Role.DEVELOPER)


# =============================================================================
# Projects & assignments
# =============================================================================

@pytest.fixture
def project(owner_actor):
    result = create_project(owner_actor, name="Website Redesign", budget=Decimal("100000.00"))
    assert result.success, result.error
    return result.data


@pytest.fixture
def other_project(other_owner):
    result = create_project(make_actor(other_owner), name="Rival Launch", budget=Decimal("5000.00"))
    assert result.success, result.error
    return result.data


@pytest.fixture
def assignment(owner_actor, project, designer):
    result = get_engine().assign_team_member(
        owner_actor,
        project.pk,
        designer.pk,
        role="Lead designer",
        allocated_budget=Decimal("50000.00"),
    )
    assert result.success, result.error
    return result.data


@pytest.fixture
def developer_assignment(owner_actor, project, developer):
    result = get_engine().assign_team_member(owner_actor, project.pk, developer.pk, role="Frontend")
    assert result.success, result.error
    return result.data


# =============================================================================
# API clients
# =============================================================================

@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def owner_client(owner):
    return auth_client(owner)


@pytest.fixture
def admin_client(admin):
    return auth_client(admin)


@pytest.fixture
def designer_client(designer):
    return auth_client(designer)


@pytest.fixture
def other_owner_client(other_owner):
    return auth_client(other_owner)


@pytest.fixture
def actor_for():
    """Build an ActorContext for any account with an active membership."""
    return make_actor


@pytest.fixture
def client_for():
    """Build a JWT-authenticated API client for any account."""
    return auth_client


@pytest.fixture
def app_logs(caplog):
    """caplog for the app loggers, which do not propagate to the root."""
    import logging

    from ops.logging_config import APP_LOGGERS

    loggers = [logging.getLogger(name) for name in APP_LOGGERS]
    for logger in loggers:
        logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG)
    yield caplog
    for logger in loggers:
        logger.removeHandler(caplog.handler)
