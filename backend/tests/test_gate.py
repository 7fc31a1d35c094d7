# tests/test_gate.py
"""
Route/access gate: the pure decision table and the middleware around it.
"""

import pytest
from django.conf import settings

from accounts.commands import deactivate_membership
from accounts.gate import (
    PROCEED,
    Area,
    Deny,
    Redirect,
    area_of,
    decide,
    owner_equivalent,
    team_equivalent,
)
from accounts.identity import issue_tokens
from accounts.models import Membership


OWNER = "owner"
TEAM = "team_member"


class TestAreas:

    @pytest.mark.parametrize(
        "path, area",
        [
            ("/", Area.PUBLIC),
            ("/api/projects/", Area.PUBLIC),
            ("/_health/live", Area.PUBLIC),
            ("/dashboard", Area.OWNER),
            ("/projects/12", Area.OWNER),
            ("/team", Area.OWNER),
            ("/team/7/", Area.OWNER),
            ("/team-dashboard", Area.TEAM),
            ("/team-dashboard/", Area.TEAM),
            ("/teammate/projects/3", Area.TEAM),
            ("/login", Area.OWNER_ENTRY),
            ("/signup", Area.OWNER_ENTRY),
            ("/team-login", Area.TEAM_ENTRY),
            ("/teamwork", Area.PUBLIC),
        ],
    )
    def test_area_of(self, path, area):
        assert area_of(path) == area

    def test_equivalents(self):
        assert team_equivalent("/projects/12") == "/teammate/projects/12"
        assert team_equivalent("/clients") == "/team-dashboard"
        assert owner_equivalent("/teammate/tasks") == "/tasks"
        assert owner_equivalent("/team-dashboard") == "/dashboard"


class TestDecide:

    def test_public_always_proceeds(self):
        assert decide(None, False, "/") == PROCEED
        assert decide(TEAM, False, "/api/auth/me/") == PROCEED

    def test_unauthenticated_owner_area(self):
        assert decide(None, False, "/projects") == Redirect("/login", "unauthenticated")

    def test_unauthenticated_team_area(self):
        assert decide(None, False, "/teammate/tasks") == Redirect("/team-login", "unauthenticated")

    def test_unauthenticated_sign_in_pages(self):
        assert decide(None, False, "/login") == PROCEED
        assert decide(None, False, "/signup") == PROCEED
        assert decide(None, False, "/team-login") == PROCEED

    def test_signed_in_owner_on_entry(self):
        assert decide(OWNER, True, "/login") == Redirect("/dashboard", "already_authenticated")
        assert decide(OWNER, True, "/team-login") == Redirect("/dashboard", "already_authenticated")

    def test_signed_in_team_member_on_entry(self):
        assert decide(TEAM, True, "/login") == Redirect("/team-dashboard", "already_authenticated")

    def test_owner_in_team_area(self):
        assert decide(OWNER, True, "/teammate/projects/5") == Redirect("/projects/5", "wrong_area")
        assert decide(OWNER, True, "/team-dashboard") == Redirect("/dashboard", "wrong_area")

    def test_team_member_in_owner_area(self):
        assert decide(TEAM, True, "/projects/5") == Redirect("/teammate/projects/5", "wrong_area")
        assert decide(TEAM, True, "/expenses") == Redirect("/team-dashboard", "wrong_area")

    def test_right_area_proceeds(self):
        assert decide(OWNER, True, "/dashboard") == PROCEED
        assert decide(TEAM, True, "/teammate/tasks") == PROCEED

    def test_no_tenant_is_denied(self):
        assert decide(TEAM, False, "/team-dashboard") == Deny("no_tenant")
        assert decide(OWNER, False, "/dashboard") == Deny("no_tenant")

    def test_kind_checked_before_tenant(self):
        # Wrong area redirects even without a membership.
        assert decide(TEAM, False, "/dashboard") == Redirect("/team-dashboard", "wrong_area")


@pytest.mark.django_db
class TestMiddleware:

    def _cookie_client(self, client, user):
        client.cookies[settings.AUTH_COOKIE_NAME] = issue_tokens(user)["access"]
        return client

    def test_unauthenticated_page_redirects(self, client):
        response = client.get("/dashboard")
        assert response.status_code == 302
        assert response["Location"] == "/login"

    def test_unauthenticated_team_page_redirects(self, client):
        response = client.get("/team-dashboard/")
        assert response.status_code == 302
        assert response["Location"] == "/team-login"

    def test_team_member_sent_to_team_area(self, client, designer):
        response = self._cookie_client(client, designer).get("/projects/4")
        assert response.status_code == 302
        assert response["Location"] == "/teammate/projects/4"

    def test_owner_sent_to_owner_area(self, client, owner):
        response = self._cookie_client(client, owner).get("/team-dashboard")
        assert response.status_code == 302
        assert response["Location"] == "/dashboard"

    def test_bearer_header_counts(self, client, owner):
        token = issue_tokens(owner)["access"]
        response = client.get("/login", HTTP_AUTHORIZATION=f"Bearer {token}")
        assert response.status_code == 302
        assert response["Location"] == "/dashboard"

    def test_right_area_reaches_routing(self, client, owner):
        # No page views are mounted; passing the gate means a routing 404.
        response = self._cookie_client(client, owner).get("/dashboard")
        assert response.status_code == 404

    def test_no_tenant_gets_403(self, client, owner_actor, designer):
        deactivate_membership(owner_actor, Membership.objects.get(user=designer))
        response = self._cookie_client(client, designer).get("/team-dashboard")
        assert response.status_code == 403
        assert response.json() == {"detail": "no_tenant"}

    def test_expired_session_is_unauthenticated(self, client):
        client.cookies[settings.AUTH_COOKIE_NAME] = "expired.or.forged"
        response = client.get("/teammate/tasks")
        assert response.status_code == 302
        assert response["Location"] == "/team-login"

    def test_context_cleared_after_request(self, client, owner):
        from tenant.context import get_current_tenant

        self._cookie_client(client, owner).get("/dashboard")
        assert get_current_tenant() is None
