# tests/test_authz.py
"""
Authorization policy evaluator.

Rules are checked in order; the first match decides. These tests walk
each rule and then sweep every role, resource and action across two
organizations for the tenancy property.
"""

from decimal import Decimal

import pytest
from django.contrib.auth.models import AnonymousUser

from accounts.authz import (
    CREATE,
    DELETE,
    UPDATE,
    VIEW,
    Allow,
    Deny,
    authorize,
    require,
)
from accounts.commands import deactivate_membership
from accounts.errors import Unauthorized
from accounts.models import Membership
from accounts.resources import Kind, ResourceRef
from ledger.engine import get_engine
from projects.commands import create_client, create_task
from projects.models import Task


ACTIONS = (VIEW, CREATE, UPDATE, DELETE)


@pytest.fixture
def client_row(owner_actor):
    return create_client(owner_actor, name="Acme").data


@pytest.fixture
def designer_task(owner_actor, project, designer, assignment):
    return create_task(owner_actor, project, title="Moodboard", assigned_to_id=designer.pk).data


@pytest.fixture
def developer_task(owner_actor, project, developer):
    return create_task(owner_actor, project, title="Build header", assigned_to_id=developer.pk).data


@pytest.fixture
def assignment_payment(owner_actor, assignment):
    return get_engine().record_payment(owner_actor, "team_assignment", assignment.pk, "1000").data


@pytest.fixture
def project_payment(owner_actor, project):
    return get_engine().record_payment(owner_actor, "project", project.pk, "2000").data


@pytest.fixture
def team_expense(owner_actor, designer):
    return get_engine().create_expense(
        owner_actor,
        title="Illustrations",
        amount="3000",
        expense_type="team",
        team_member_id=designer.pk,
        total_amount="3000",
    ).data


# =============================================================================
# Rules 1-3
# =============================================================================

@pytest.mark.django_db
class TestPreconditions:

    def test_no_account(self, project):
        assert authorize(None, project, VIEW) == Deny("unauthenticated")

    def test_anonymous_user(self, project):
        assert authorize(AnonymousUser(), project, VIEW) == Deny("unauthenticated")

    def test_no_tenant(self, owner_actor, designer, project):
        deactivate_membership(owner_actor, Membership.objects.get(user=designer))
        assert authorize(designer, project, VIEW) == Deny("no_tenant")

    def test_cross_organization_beats_owner_role(self, owner, other_project):
        for action in ACTIONS:
            assert authorize(owner, other_project, action) == Deny("cross_organization")

    def test_cross_organization_ref(self, owner, other_organization):
        ref = ResourceRef(Kind.PROJECT, other_organization.pk)
        assert authorize(owner, ref, CREATE) == Deny("cross_organization")

    def test_unknown_action(self, owner, project):
        with pytest.raises(ValueError):
            authorize(owner, project, "archive")

    def test_decisions_are_truthy_only_when_allowed(self, owner, project, other_project):
        assert isinstance(authorize(owner, project, VIEW), Allow)
        assert authorize(owner, project, VIEW)
        assert not authorize(owner, other_project, VIEW)


# =============================================================================
# Rules 4-5: owner and admin
# =============================================================================

@pytest.mark.django_db
class TestOwnerAndAdmin:

    def test_owner_may_do_everything(self, owner, organization, project, assignment, client_row):
        for resource in (organization, project, assignment, client_row):
            for action in ACTIONS:
                assert authorize(owner, resource, action), (resource, action)

    def test_admin_manages_projects_and_ledger(self, admin, project, assignment, assignment_payment, team_expense):
        for resource in (project, assignment, assignment_payment, team_expense):
            for action in ACTIONS:
                assert authorize(admin, resource, action), (resource, action)

    def test_admin_cannot_delete_organization(self, admin, organization):
        assert authorize(admin, organization, VIEW)
        assert authorize(admin, organization, UPDATE)
        assert authorize(admin, organization, DELETE) == Deny("admin_cannot_delete_organization")

    def test_admin_cannot_modify_owner_membership(self, admin, owner):
        owner_membership = Membership.objects.get(user=owner)
        assert authorize(admin, owner_membership, VIEW)
        assert authorize(admin, owner_membership, UPDATE) == Deny("admin_cannot_modify_owner")
        assert authorize(admin, owner_membership, DELETE) == Deny("admin_cannot_modify_owner")

    def test_admin_cannot_modify_owner_account(self, admin, owner):
        assert authorize(admin, owner, VIEW)
        assert authorize(admin, owner, UPDATE) == Deny("admin_cannot_modify_owner")

    def test_admin_may_modify_other_members(self, admin, designer):
        assert authorize(admin, designer, UPDATE)
        assert authorize(admin, Membership.objects.get(user=designer), DELETE)


# =============================================================================
# Rule 6: functional roles
# =============================================================================

@pytest.mark.django_db
class TestFunctionalRoles:

    def test_view_assigned_project(self, designer, project, assignment):
        assert authorize(designer, project, VIEW)

    def test_unassigned_project(self, developer, project, assignment):
        assert authorize(developer, project, VIEW) == Deny("not_assigned")

    def test_removed_assignment_loses_project(self, owner_actor, designer, project, assignment):
        get_engine().remove_assignment(owner_actor, assignment.pk)
        assert authorize(designer, project, VIEW) == Deny("not_assigned")

    def test_no_writes_on_projects(self, designer, project, assignment):
        for action in (UPDATE, DELETE):
            assert authorize(designer, project, action) == Deny("role_not_permitted")
        ref = ResourceRef(Kind.PROJECT, project.organization_id)
        assert authorize(designer, ref, CREATE) == Deny("role_not_permitted")

    def test_no_payments_or_expenses(self, designer, assignment, team_expense):
        ref = ResourceRef(Kind.PAYMENT, assignment.organization_id)
        assert authorize(designer, ref, CREATE) == Deny("role_not_permitted")
        # Even an expense naming the designer is owner/admin territory.
        assert authorize(designer, team_expense, VIEW) == Deny("role_not_permitted")

    def test_clients_hidden(self, designer, client_row):
        assert authorize(designer, client_row, VIEW) == Deny("role_not_permitted")

    def test_lists_by_reference_denied(self, designer, organization):
        ref = ResourceRef(Kind.CLIENT, organization.pk)
        assert authorize(designer, ref, VIEW) == Deny("role_not_permitted")

    def test_organization_view(self, designer, organization):
        assert authorize(designer, organization, VIEW)
        assert authorize(designer, organization, UPDATE) == Deny("role_not_permitted")

    def test_own_account_and_membership(self, designer, developer):
        assert authorize(designer, designer, VIEW)
        assert authorize(designer, Membership.objects.get(user=designer), VIEW)
        assert authorize(designer, developer, VIEW) == Deny("not_assigned")
        assert authorize(designer, designer, UPDATE) == Deny("role_not_permitted")

    def test_own_assignment_payment(self, designer, developer, assignment_payment):
        assert authorize(designer, assignment_payment, VIEW)
        assert authorize(developer, assignment_payment, VIEW) == Deny("not_assigned")
        assert authorize(designer, assignment_payment, DELETE) == Deny("role_not_permitted")

    def test_project_payment_not_visible(self, designer, project_payment, assignment):
        assert authorize(designer, project_payment, VIEW) == Deny("not_assigned")

    def test_update_own_task(self, designer, designer_task, developer_task):
        assert authorize(designer, designer_task, UPDATE)
        assert authorize(designer, developer_task, UPDATE) == Deny("not_assigned")
        assert authorize(designer, designer_task, DELETE) == Deny("role_not_permitted")

    def test_view_tasks(self, designer, designer_task, developer_task):
        assert authorize(designer, designer_task, VIEW)
        assert authorize(designer, developer_task, VIEW) == Deny("not_assigned")

    def test_role_change_applies_immediately(self, owner_actor, designer, project, assignment):
        from accounts.commands import update_membership

        assert not authorize(designer, project, UPDATE)
        update_membership(owner_actor, Membership.objects.get(user=designer), role=Membership.Role.ADMIN)
        assert authorize(designer, project, UPDATE)


# =============================================================================
# Tenancy sweep
# =============================================================================

@pytest.mark.django_db
def test_never_allows_another_organization(
    owner, admin, designer, developer, other_owner, other_member, other_organization, other_project
):
    other_assignment = get_engine().assign_team_member(
        _actor(other_owner), other_project.pk, other_member.pk, allocated_budget=Decimal("1000")
    ).data
    other_payment = get_engine().record_payment(
        _actor(other_owner), "team_assignment", other_assignment.pk, "100"
    ).data
    other_task = Task.objects.create(project=other_project, title="Rival task", assigned_to=other_member)

    resources = [
        other_organization,
        other_owner,
        other_member,
        Membership.objects.get(user=other_member),
        other_project,
        other_assignment,
        other_payment,
        other_task,
    ] + [ResourceRef(kind, other_organization.pk) for kind in sorted(Kind.ALL)]

    for account in (owner, admin, designer, developer):
        for resource in resources:
            for action in ACTIONS:
                decision = authorize(account, resource, action)
                assert not decision, (account, resource, action)
                assert decision.reason == "cross_organization"


def _actor(user):
    from accounts.authz import ActorContext
    from accounts.membership import membership_of

    return ActorContext(user=user, membership=membership_of(user.pk))


# =============================================================================
# require()
# =============================================================================

@pytest.mark.django_db
def test_require_raises_with_reason(designer, project, app_logs):
    with pytest.raises(Unauthorized) as excinfo:
        require(designer, project, DELETE)
    assert excinfo.value.reason == "role_not_permitted"
    assert excinfo.value.status_code == 403
    assert "Access denied" in app_logs.text


@pytest.mark.django_db
def test_require_passes(owner_actor, project):
    assert require(owner_actor, project, DELETE) is None
