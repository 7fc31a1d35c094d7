# tests/test_write_barrier.py
"""
Tests for write barrier enforcement on ledger-owned rows.
"""

from datetime import date
from decimal import Decimal

import pytest
from rest_framework import serializers

from ledger.models import Expense, Payment
from ledger.write_barrier import admin_emergency_writes_allowed, ledger_writes_allowed
from projects.models import ProjectTeamMember


class PaymentWriteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ("organization", "scope", "project", "amount", "payment_date")


@pytest.mark.django_db
def test_direct_payment_create_raises(settings, project):
    settings.TESTING = False

    with pytest.raises(RuntimeError, match="ledger_writes_allowed"):
        Payment.objects.create(
            organization_id=project.organization_id,
            scope=Payment.Scope.PROJECT,
            project=project,
            amount=Decimal("10"),
            payment_date=date.today(),
        )


@pytest.mark.django_db
def test_payment_create_in_serializer_raises(settings, project):
    settings.TESTING = False

    serializer = PaymentWriteSerializer(
        data={
            "organization": project.organization_id,
            "scope": "project",
            "project": project.pk,
            "amount": "10.00",
            "payment_date": "2026-01-05",
        },
    )
    serializer.is_valid(raise_exception=True)

    with pytest.raises(RuntimeError, match="owned by the ledger engine"):
        serializer.save()


@pytest.mark.django_db
def test_allocation_edit_outside_engine_raises(settings, assignment):
    settings.TESTING = False

    assignment.allocated_budget = Decimal("1")
    with pytest.raises(RuntimeError):
        assignment.save()

    assignment.refresh_from_db()
    assert assignment.allocated_budget == Decimal("50000.00")


@pytest.mark.django_db
def test_expense_delete_outside_engine_raises(settings, owner_actor):
    from ledger.engine import get_engine

    expense = get_engine().create_expense(owner_actor, title="Rent", amount="100").data
    settings.TESTING = False

    with pytest.raises(RuntimeError):
        expense.delete()
    assert Expense.objects.filter(pk=expense.pk).exists()


@pytest.mark.django_db
def test_engine_writes_pass(settings, owner_actor, project, designer):
    from ledger.engine import get_engine

    settings.TESTING = False
    engine = get_engine()

    assignment = engine.assign_team_member(owner_actor, project.pk, designer.pk, allocated_budget="100").data
    assert engine.record_payment(owner_actor, "team_assignment", assignment.pk, "60").success
    assert engine.update_assignment_allocation(owner_actor, assignment.pk, allocated_budget="80").success
    assert ProjectTeamMember.objects.get(pk=assignment.pk).total_paid == Decimal("60.00")


@pytest.mark.django_db
def test_ledger_context_allows_writes(settings, project):
    settings.TESTING = False

    with ledger_writes_allowed():
        payment = Payment.objects.create(
            organization_id=project.organization_id,
            scope=Payment.Scope.PROJECT,
            project=project,
            amount=Decimal("10"),
            payment_date=date.today(),
        )
    assert payment.pk


@pytest.mark.django_db
def test_admin_emergency_needs_setting(settings, project):
    settings.TESTING = False
    settings.ALLOW_ADMIN_EMERGENCY_WRITES = False

    with pytest.raises(RuntimeError, match="disabled"):
        with admin_emergency_writes_allowed():
            pass

    settings.ALLOW_ADMIN_EMERGENCY_WRITES = True
    with admin_emergency_writes_allowed():
        payment = Payment(
            organization_id=project.organization_id,
            scope=Payment.Scope.PROJECT,
            project=project,
            amount=Decimal("1"),
            payment_date=date.today(),
        )
        payment.save()
    assert Payment.objects.filter(pk=payment.pk).exists()
