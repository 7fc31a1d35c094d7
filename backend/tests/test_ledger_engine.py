# tests/test_ledger_engine.py
"""
Ledger engine invariants.

The stored aggregates must always equal a fresh re-sum of the payments
they are derived from, whatever order inserts and deletes arrive in.
"""

import random
import threading
from decimal import Decimal

import pytest
from django.db import connection
from django.db.models import Sum

from accounts.errors import Unauthorized
from ledger import status as payment_status
from ledger.engine import LedgerEngine, get_engine
from ledger.models import Expense, Payment
from projects.models import Project, ProjectTeamMember


def _paid(**filters) -> Decimal:
    return Payment.objects.filter(**filters).aggregate(total=Sum("amount"))["total"] or Decimal("0.00")


def _assert_consistent(project, assignments, expenses=()):
    project.refresh_from_db()
    assert project.total_paid == _paid(project=project)
    for assignment in assignments:
        assignment.refresh_from_db()
        assert assignment.total_paid == _paid(assignment=assignment)
        if assignment.allocated_budget is not None:
            assert assignment.total_paid <= assignment.allocated_budget
    for expense in expenses:
        expense.refresh_from_db()
        assert expense.paid_amount == _paid(expense=expense)
        assert expense.payment_status == payment_status.derive_payment_status(
            expense.paid_amount, expense.total_amount
        )


@pytest.fixture
def engine():
    return get_engine()


@pytest.fixture
def team_expense(engine, owner_actor, designer):
    return engine.create_expense(
        owner_actor,
        title="Logo work",
        amount="8000",
        expense_type="team",
        team_member_id=designer.pk,
        total_amount="8000",
    ).data


# =============================================================================
# Payments
# =============================================================================

@pytest.mark.django_db
class TestRecordPayment:

    def test_project_payment(self, engine, owner_actor, project):
        result = engine.record_payment(owner_actor, "project", project.pk, "25000", payment_type="advance")
        assert result.success, result.error

        project.refresh_from_db()
        assert project.total_paid == Decimal("25000.00")
        assert project.pending_amount == Decimal("75000.00")
        assert result.data.payment_type == "advance"
        assert result.data.organization_id == project.organization_id

    def test_assignment_payment_leaves_project_total_alone(self, engine, owner_actor, project, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "1000")

        assignment.refresh_from_db()
        project.refresh_from_db()
        assert assignment.total_paid == Decimal("1000.00")
        assert project.total_paid == Decimal("0.00")

    def test_admin_may_record(self, engine, admin_actor, project):
        assert engine.record_payment(admin_actor, "project", project.pk, "10").success

    def test_functional_role_is_unauthorized(self, engine, designer_actor, assignment):
        with pytest.raises(Unauthorized) as excinfo:
            engine.record_payment(designer_actor, "team_assignment", assignment.pk, "10")
        assert excinfo.value.reason == "role_not_permitted"
        assert Payment.objects.count() == 0

    def test_accepts_bare_account(self, engine, owner, project):
        assert engine.record_payment(owner, "project", project.pk, "10").success

    def test_other_organization_is_not_found(self, engine, owner_actor, other_project):
        result = engine.record_payment(owner_actor, "project", other_project.pk, "10")
        assert not result.success
        assert result.code == "not_found"
        other_project.refresh_from_db()
        assert other_project.total_paid == Decimal("0.00")

    def test_missing_target(self, engine, owner_actor, db):
        result = engine.record_payment(owner_actor, "project", 424242, "10")
        assert result.code == "not_found"

    @pytest.mark.parametrize(
        "amount",
        ["0", "-5", "abc", "", None, "NaN", "Infinity", "10.001", Decimal("-1"), "1e30", "1e13", "1e-30"],
    )
    def test_rejects_bad_amounts(self, engine, owner_actor, project, amount):
        result = engine.record_payment(owner_actor, "project", project.pk, amount)
        assert not result.success
        assert result.code == "validation"
        assert Payment.objects.count() == 0

    def test_accepts_numbers(self, engine, owner_actor, project):
        assert engine.record_payment(owner_actor, "project", project.pk, 12.5).success
        assert engine.record_payment(owner_actor, "project", project.pk, 3).success
        project.refresh_from_db()
        assert project.total_paid == Decimal("15.50")

    def test_rejects_bad_type_and_scope(self, engine, owner_actor, project):
        assert engine.record_payment(owner_actor, "project", project.pk, "1", payment_type="bonus").code == "validation"
        assert engine.record_payment(owner_actor, "invoice", project.pk, "1").code == "validation"
        assert Payment.objects.count() == 0

    def test_removed_assignment_takes_no_payments(self, engine, owner_actor, assignment):
        engine.remove_assignment(owner_actor, assignment.pk)
        result = engine.record_payment(owner_actor, "team_assignment", assignment.pk, "10")
        assert not result.success
        assert "removed" in result.error

    def test_logs_mutation(self, engine, owner_actor, project, app_logs):
        engine.record_payment(owner_actor, "project", project.pk, "10")
        record = next(r for r in app_logs.records if r.name == "ledger.engine")
        assert record.levelname == "INFO"
        assert record.amount == "10.00"
        assert record.organization_id == project.organization_id


@pytest.mark.django_db
class TestAllocationCeiling:

    def test_exact_fill(self, engine, owner_actor, assignment):
        assert engine.record_payment(owner_actor, "team_assignment", assignment.pk, "50000").success
        assignment.refresh_from_db()
        assert assignment.payment_status == payment_status.COMPLETED

    def test_over_allocation_rejected(self, engine, owner_actor, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "49999.99")
        result = engine.record_payment(owner_actor, "team_assignment", assignment.pk, "0.02")
        assert not result.success
        assert result.code == "validation"
        assignment.refresh_from_db()
        assert assignment.total_paid == Decimal("49999.99")

    def test_no_allocation_is_unconstrained(self, engine, owner_actor, developer_assignment):
        assert engine.record_payment(owner_actor, "team_assignment", developer_assignment.pk, "999999").success
        developer_assignment.refresh_from_db()
        assert developer_assignment.payment_status == payment_status.PARTIAL

    def test_random_attempts_never_exceed(self, engine, owner_actor, assignment):
        rng = random.Random(7)
        for _ in range(60):
            amount = Decimal(rng.randint(1, 900000)) / 100
            engine.record_payment(owner_actor, "team_assignment", assignment.pk, amount)
            assignment.refresh_from_db()
            assert assignment.total_paid <= assignment.allocated_budget
            assert assignment.total_paid == _paid(assignment=assignment)


@pytest.mark.django_db
class TestDeletePayment:

    def test_delete_recomputes(self, engine, owner_actor, project, assignment):
        first = engine.record_payment(owner_actor, "team_assignment", assignment.pk, "100").data
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "40")

        result = engine.delete_payment(owner_actor, first.pk)
        assert result.success
        assert result.data == {"payment_id": first.pk, "scope": "team_assignment", "target_id": assignment.pk}

        assignment.refresh_from_db()
        assert assignment.total_paid == Decimal("40.00")

    def test_delete_last_payment_resets_to_zero(self, engine, owner_actor, project):
        payment = engine.record_payment(owner_actor, "project", project.pk, "10").data
        engine.delete_payment(owner_actor, payment.pk)
        project.refresh_from_db()
        assert project.total_paid == Decimal("0.00")

    def test_delete_twice(self, engine, owner_actor, project):
        payment = engine.record_payment(owner_actor, "project", project.pk, "10").data
        assert engine.delete_payment(owner_actor, payment.pk).success
        assert engine.delete_payment(owner_actor, payment.pk).code == "not_found"

    def test_other_organization_payment(self, engine, owner_actor, other_owner, other_project, actor_for):
        payment = engine.record_payment(actor_for(other_owner), "project", other_project.pk, "10").data
        assert engine.delete_payment(owner_actor, payment.pk).code == "not_found"
        assert Payment.objects.filter(pk=payment.pk).exists()

    def test_payments_are_immutable(self, engine, owner_actor, project):
        payment = engine.record_payment(owner_actor, "project", project.pk, "10").data
        payment.amount = Decimal("20")
        with pytest.raises(RuntimeError):
            payment.save()


@pytest.mark.django_db
class TestInterleaving:

    def test_random_insert_delete_sequence(self, engine, owner_actor, project, assignment, developer_assignment, team_expense):
        rng = random.Random(2024)
        targets = [
            ("project", project.pk),
            ("team_assignment", assignment.pk),
            ("team_assignment", developer_assignment.pk),
            ("expense", team_expense.pk),
        ]
        live = []

        for _ in range(120):
            if live and rng.random() < 0.4:
                payment_id = live.pop(rng.randrange(len(live)))
                assert engine.delete_payment(owner_actor, payment_id).success
            else:
                scope, target_id = rng.choice(targets)
                amount = Decimal(rng.randint(1, 500000)) / 100
                result = engine.record_payment(owner_actor, scope, target_id, amount)
                if result.success:
                    live.append(result.data.pk)

            _assert_consistent(project, [assignment, developer_assignment], [team_expense])

        assert Payment.objects.count() == len(live)

    def test_interleaved_targets_do_not_leak(self, engine, owner_actor, project, assignment):
        p1 = engine.record_payment(owner_actor, "project", project.pk, "100").data
        a1 = engine.record_payment(owner_actor, "team_assignment", assignment.pk, "30").data
        engine.record_payment(owner_actor, "project", project.pk, "5")
        engine.delete_payment(owner_actor, a1.pk)
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "7")
        engine.delete_payment(owner_actor, p1.pk)

        project.refresh_from_db()
        assignment.refresh_from_db()
        assert project.total_paid == Decimal("5.00")
        assert assignment.total_paid == Decimal("7.00")


@pytest.mark.django_db
class TestRecompute:

    def test_idempotent(self, engine, owner_actor, project, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "1234.56")
        engine.record_payment(owner_actor, "project", project.pk, "10")

        first = engine.recompute_assignment(assignment.pk)
        second = engine.recompute_assignment(assignment.pk)
        assert first == second == Decimal("1234.56")
        assert engine.recompute_project(project.pk) == engine.recompute_project(project.pk) == Decimal("10.00")

    def test_repairs_drift(self, engine, owner_actor, project, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "20")
        ProjectTeamMember.objects.filter(pk=assignment.pk).update(total_paid=Decimal("999"))

        assert engine.recompute_assignment(assignment.pk) == Decimal("20.00")
        assignment.refresh_from_db()
        assert assignment.total_paid == Decimal("20.00")

    def test_expense_status_rederived(self, engine, owner_actor, team_expense):
        engine.record_payment(owner_actor, "expense", team_expense.pk, "8000")
        Expense.objects.filter(pk=team_expense.pk).update(payment_status=payment_status.PENDING)

        engine.recompute_expense(team_expense.pk)
        team_expense.refresh_from_db()
        assert team_expense.payment_status == payment_status.COMPLETED


@pytest.mark.django_db
class TestConsistencyViolation:

    def test_negative_resum_rolls_back(self, owner_actor, project, app_logs):
        engine = LedgerEngine()
        engine._sum = lambda **filters: Decimal("-1")

        result = engine.record_payment(owner_actor, "project", project.pk, "10")

        assert not result.success
        assert result.code == "consistency"
        assert Payment.objects.count() == 0
        project.refresh_from_db()
        assert project.total_paid == Decimal("0.00")
        assert any(r.levelname == "ERROR" for r in app_logs.records)

    def test_non_finite_resum_rolls_back_delete(self, owner_actor, project):
        payment = get_engine().record_payment(owner_actor, "project", project.pk, "10").data

        engine = LedgerEngine()
        engine._sum = lambda **filters: Decimal("NaN")
        result = engine.delete_payment(owner_actor, payment.pk)

        assert result.code == "consistency"
        assert Payment.objects.filter(pk=payment.pk).exists()
        project.refresh_from_db()
        assert project.total_paid == Decimal("10.00")

    def test_total_beyond_column_rolls_back(self, engine, owner_actor, project):
        largest = "999999999999.99"
        assert engine.record_payment(owner_actor, "project", project.pk, largest).success

        result = engine.record_payment(owner_actor, "project", project.pk, "1")

        assert result.code == "consistency"
        assert Payment.objects.count() == 1
        project.refresh_from_db()
        assert project.total_paid == Decimal(largest)


# =============================================================================
# Expenses
# =============================================================================

@pytest.mark.django_db
class TestExpenses:

    def test_other_expense(self, engine, owner_actor):
        result = engine.create_expense(owner_actor, title="Office rent", amount="20000")
        assert result.success, result.error
        assert result.data.expense_type == "other"
        assert result.data.payment_status == payment_status.PENDING

    def test_other_expense_takes_no_payments(self, engine, owner_actor):
        expense = engine.create_expense(owner_actor, title="Hosting", amount="900").data
        result = engine.record_payment(owner_actor, "expense", expense.pk, "100")
        assert not result.success
        assert "team expenses" in result.error

    def test_team_expense_status_progression(self, engine, owner_actor, team_expense):
        assert team_expense.payment_status == payment_status.PENDING

        engine.record_payment(owner_actor, "expense", team_expense.pk, "3000")
        team_expense.refresh_from_db()
        assert team_expense.paid_amount == Decimal("3000.00")
        assert team_expense.payment_status == payment_status.PARTIAL

        engine.record_payment(owner_actor, "expense", team_expense.pk, "5000")
        team_expense.refresh_from_db()
        assert team_expense.payment_status == payment_status.COMPLETED

    def test_team_expense_requires_member_and_total(self, engine, owner_actor, designer):
        assert not engine.create_expense(owner_actor, title="x", amount="1", expense_type="team").success
        assert not engine.create_expense(
            owner_actor, title="x", amount="1", expense_type="team", team_member_id=designer.pk
        ).success

    def test_other_expense_cannot_name_member(self, engine, owner_actor, designer):
        result = engine.create_expense(owner_actor, title="x", amount="1", team_member_id=designer.pk)
        assert not result.success

    def test_member_from_other_organization(self, engine, owner_actor, other_member):
        result = engine.create_expense(
            owner_actor,
            title="x",
            amount="1",
            expense_type="team",
            team_member_id=other_member.pk,
            total_amount="1",
        )
        assert not result.success

    def test_functional_role_cannot_create(self, engine, designer_actor):
        with pytest.raises(Unauthorized):
            engine.create_expense(designer_actor, title="Snacks", amount="10")

    def test_delete_takes_payments_along(self, engine, owner_actor, team_expense):
        engine.record_payment(owner_actor, "expense", team_expense.pk, "100")
        assert engine.delete_expense(owner_actor, team_expense.pk).success
        assert not Expense.objects.filter(pk=team_expense.pk).exists()
        assert not Payment.objects.filter(scope="expense").exists()


# =============================================================================
# Assignments
# =============================================================================

@pytest.mark.django_db
class TestAssignments:

    def test_assign(self, assignment, designer, project):
        assert assignment.team_member_id == designer.pk
        assert assignment.organization_id == project.organization_id
        assert assignment.allocated_budget == Decimal("50000.00")
        assert assignment.status == ProjectTeamMember.Status.ACTIVE

    def test_assign_twice(self, engine, owner_actor, project, designer, assignment):
        result = engine.assign_team_member(owner_actor, project.pk, designer.pk)
        assert not result.success

    def test_assign_outsider(self, engine, owner_actor, project, other_member):
        assert not engine.assign_team_member(owner_actor, project.pk, other_member.pk).success

    def test_assign_on_other_organization_project(self, engine, owner_actor, other_project, designer):
        assert engine.assign_team_member(owner_actor, other_project.pk, designer.pk).code == "not_found"

    def test_lower_allocation_below_paid(self, engine, owner_actor, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "30000")
        result = engine.update_assignment_allocation(owner_actor, assignment.pk, allocated_budget="20000")
        assert not result.success
        assignment.refresh_from_db()
        assert assignment.allocated_budget == Decimal("50000.00")

    def test_lower_allocation_to_paid(self, engine, owner_actor, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "30000")
        result = engine.update_assignment_allocation(owner_actor, assignment.pk, allocated_budget="30000")
        assert result.success
        assert result.data.payment_status == payment_status.COMPLETED

    def test_clear_allocation(self, engine, owner_actor, assignment):
        result = engine.update_assignment_allocation(owner_actor, assignment.pk, allocated_budget=None)
        assert result.success
        assert result.data.allocated_budget is None

    def test_role_only_keeps_allocation(self, engine, owner_actor, assignment):
        result = engine.update_assignment_allocation(owner_actor, assignment.pk, role="Art director")
        assert result.data.role == "Art director"
        assert result.data.allocated_budget == Decimal("50000.00")

    def test_remove_keeps_payments(self, engine, owner_actor, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "500")
        result = engine.remove_assignment(owner_actor, assignment.pk)
        assert result.success
        assignment.refresh_from_db()
        assert assignment.status == ProjectTeamMember.Status.REMOVED
        assert assignment.total_paid == Decimal("500.00")
        assert engine.remove_assignment(owner_actor, assignment.pk).code == "validation"

    def test_reassign_reactivates(self, engine, owner_actor, project, designer, assignment):
        engine.record_payment(owner_actor, "team_assignment", assignment.pk, "500")
        engine.remove_assignment(owner_actor, assignment.pk)

        result = engine.assign_team_member(owner_actor, project.pk, designer.pk, allocated_budget="1000")
        assert result.success
        assert result.data.pk == assignment.pk
        assert result.data.status == ProjectTeamMember.Status.ACTIVE
        assert result.data.allocated_budget == Decimal("1000.00")

    def test_functional_role_cannot_change_allocation(self, engine, designer_actor, assignment):
        with pytest.raises(Unauthorized):
            engine.update_assignment_allocation(designer_actor, assignment.pk, allocated_budget="1")


# =============================================================================
# Real concurrency (row locks need PostgreSQL)
# =============================================================================

@pytest.mark.skipif(connection.vendor != "postgresql", reason="select_for_update is a no-op on SQLite")
@pytest.mark.django_db(transaction=True)
def test_concurrent_payments_respect_allocation(owner_actor, assignment):
    engine = get_engine()
    results = []
    barrier = threading.Barrier(4)

    def pay():
        from django.db import connections

        barrier.wait()
        try:
            results.append(engine.record_payment(owner_actor, "team_assignment", assignment.pk, "20000"))
        finally:
            connections.close_all()

    threads = [threading.Thread(target=pay) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for r in results if r.success) == 2
    assignment.refresh_from_db()
    assert assignment.total_paid == Decimal("40000.00") == _paid(assignment=assignment)
    assert Project.objects.get(pk=assignment.project_id).total_paid == Decimal("0.00")
