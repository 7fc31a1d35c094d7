# ledger/engine.py
"""
Ledger engine: payments, expenses, assignments and their derived totals.

Derived aggregates and the payments they sum:

    ProjectTeamMember.total_paid   <- payments with scope=team_assignment
    Project.total_paid             <- payments with scope=project
    Expense.paid_amount / status   <- payments with scope=expense

Every mutation that can change one of those sums runs in one transaction:

    1. lock the target row (select_for_update)
    2. insert / delete the payment
    3. re-sum the target's live payments and write the result with one UPDATE
    4. for an assignment, lock its project and recompute it as well

The aggregate is always a full re-sum, never "old total + amount", so two
concurrent writers against the same target serialize on the row lock and
the second one sums what the first one committed. Locks are taken child
first, parent second (assignment, then project) in every code path.

A re-sum that comes out negative or non-finite raises ConsistencyViolation,
which rolls the whole transaction back: the payment change is undone and
no aggregate is written.

The engine is constructed once in LedgerConfig.ready() and holds no
mutable state; get_engine() returns it.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.apps import apps
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from accounts.authz import ActorContext, CREATE, DELETE, UPDATE, authorize
from accounts.commands import CommandResult
from accounts.errors import Unauthorized
from accounts.membership import default_resolver
from accounts.models import Membership
from accounts.resources import Kind, ResourceRef
from ledger import policies
from ledger.errors import ConsistencyViolation
from ledger.models import Expense, Payment
from ledger.status import derive_payment_status
from ledger.write_barrier import ledger_writes_allowed
from projects.models import Project, ProjectTeamMember


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Keep "not passed" apart from an explicit None (clear the allocation).
UNSET = object()


def get_engine() -> "LedgerEngine":
    return apps.get_app_config("ledger").engine


class LedgerEngine:

    TARGET_MODELS = {
        Payment.Scope.PROJECT: Project,
        Payment.Scope.TEAM_ASSIGNMENT: ProjectTeamMember,
        Payment.Scope.EXPENSE: Expense,
    }

    def __init__(self, resolver=default_resolver):
        self.resolver = resolver

    # =========================================================================
    # Access
    # =========================================================================

    @staticmethod
    def _account(actor):
        return actor.user if isinstance(actor, ActorContext) else actor

    def _organization_id(self, actor) -> Optional[int]:
        if isinstance(actor, ActorContext):
            return actor.organization_id
        info = self.resolver.cached_membership_of(actor.pk)
        return info.organization_id if info else None

    def _check_access(self, actor, resource, action: str) -> Optional[CommandResult]:
        """
        None when allowed. A resource in another organization answers
        not_found so its existence is not revealed; every other Deny raises.
        """
        account = self._account(actor)
        decision = authorize(account, resource, action, resolver=self.resolver)
        if decision:
            return None
        if decision.reason == "cross_organization":
            return CommandResult.fail("Not found.", code="not_found")

        logger.warning(
            "Ledger access denied: account %s %s %s (%s)",
            getattr(account, "pk", None),
            action,
            type(resource).__name__,
            decision.reason,
            extra={"action": action, "reason": decision.reason},
        )
        raise Unauthorized(decision.reason)

    # =========================================================================
    # Sums and recomputation
    # =========================================================================

    @staticmethod
    def _sum(**filters) -> Decimal:
        total = Payment.objects.filter(**filters).aggregate(total=Sum("amount"))["total"]
        return total if total is not None else ZERO

    @staticmethod
    def _check(value: Decimal, target: str) -> Decimal:
        if not value.is_finite() or value < 0 or value > policies.MAX_AMOUNT:
            raise ConsistencyViolation(target, value)
        return value

    def _recompute_assignment_locked(self, assignment_id: int) -> Decimal:
        total = self._check(self._sum(assignment_id=assignment_id), f"assignment {assignment_id}")
        ProjectTeamMember.objects.filter(pk=assignment_id).update(total_paid=total)
        return total

    def _recompute_project_locked(self, project_id: int) -> Decimal:
        total = self._check(self._sum(project_id=project_id), f"project {project_id}")
        Project.objects.filter(pk=project_id).update(total_paid=total, updated_at=timezone.now())
        return total

    def _recompute_expense_locked(self, expense: Expense) -> Decimal:
        paid = self._check(self._sum(expense_id=expense.pk), f"expense {expense.pk}")
        Expense.objects.filter(pk=expense.pk).update(
            paid_amount=paid,
            payment_status=derive_payment_status(paid, expense.total_amount),
            updated_at=timezone.now(),
        )
        return paid

    def _recompute_from(self, scope: str, target) -> None:
        """Recompute every aggregate reachable from a locked target."""
        if scope == Payment.Scope.TEAM_ASSIGNMENT:
            self._recompute_assignment_locked(target.pk)
            Project.objects.select_for_update().get(pk=target.project_id)
            self._recompute_project_locked(target.project_id)
        elif scope == Payment.Scope.PROJECT:
            self._recompute_project_locked(target.pk)
        else:
            self._recompute_expense_locked(target)

    def recompute_assignment(self, assignment_id: int) -> Decimal:
        """Re-sum one assignment (and its project). Idempotent."""
        with transaction.atomic():
            assignment = ProjectTeamMember.objects.select_for_update().get(pk=assignment_id)
            total = self._recompute_assignment_locked(assignment.pk)
            Project.objects.select_for_update().get(pk=assignment.project_id)
            self._recompute_project_locked(assignment.project_id)
        return total

    def recompute_project(self, project_id: int) -> Decimal:
        """Re-sum one project's project-scoped payments. Idempotent."""
        with transaction.atomic():
            Project.objects.select_for_update().get(pk=project_id)
            return self._recompute_project_locked(project_id)

    def recompute_expense(self, expense_id: int) -> Decimal:
        """Re-sum one expense and re-derive its status. Idempotent."""
        with transaction.atomic():
            expense = Expense.objects.select_for_update().get(pk=expense_id)
            return self._recompute_expense_locked(expense)

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        actor,
        scope: str,
        target_id: int,
        amount,
        payment_type: str = Payment.PaymentType.REGULAR,
        payment_date=None,
        notes: str = "",
    ) -> CommandResult:
        """
        Record a payment against one target and recompute its totals.

        Returns:
            CommandResult with the new Payment
        """
        allowed, reason = policies.check_scope(scope)
        if not allowed:
            return CommandResult.fail(reason)

        allowed, reason = policies.check_payment_type(payment_type)
        if not allowed:
            return CommandResult.fail(reason)

        amount, reason = policies.parse_amount(amount)
        if amount is None:
            return CommandResult.fail(reason)

        model = self.TARGET_MODELS[scope]
        target = model.objects.filter(pk=target_id).first()
        if target is None:
            return CommandResult.fail(f"{model.__name__} not found.", code="not_found")

        denied = self._check_access(actor, ResourceRef(Kind.PAYMENT, target.organization_id), CREATE)
        if denied:
            return denied

        if scope == Payment.Scope.EXPENSE:
            allowed, reason = policies.can_pay_expense(target)
            if not allowed:
                return CommandResult.fail(reason)

        account = self._account(actor)
        field = Payment.TARGET_FIELDS[scope]

        try:
            with transaction.atomic(), ledger_writes_allowed():
                locked = model.objects.select_for_update().get(pk=target.pk)

                if scope == Payment.Scope.TEAM_ASSIGNMENT:
                    existing = self._sum(assignment_id=locked.pk)
                    allowed, reason = policies.can_pay_assignment(locked, amount, existing)
                    if not allowed:
                        return CommandResult.fail(reason)

                payment = Payment.objects.create(
                    organization_id=locked.organization_id,
                    scope=scope,
                    amount=amount,
                    payment_date=payment_date or timezone.localdate(),
                    payment_type=payment_type,
                    notes=notes or "",
                    created_by=account,
                    **{field: locked},
                )
                self._recompute_from(scope, locked)
        except ConsistencyViolation as exc:
            logger.error(
                "Payment on %s %s rolled back: %s",
                scope,
                target_id,
                exc,
                extra={"organization_id": target.organization_id, "target": exc.target},
            )
            return CommandResult.fail(str(exc), code="consistency")

        logger.info(
            "Payment %s recorded: %s %s amount=%s type=%s",
            payment.pk,
            scope,
            target_id,
            amount,
            payment_type,
            extra={
                "organization_id": payment.organization_id,
                "target": f"{scope}:{target_id}",
                "amount": str(amount),
            },
        )
        return CommandResult.ok(payment)

    def delete_payment(self, actor, payment_id: int) -> CommandResult:
        """
        Delete a payment and recompute its target's totals.

        Returns:
            CommandResult with {"payment_id", "scope", "target_id"}
        """
        payment = Payment.objects.filter(pk=payment_id).first()
        if payment is None:
            return CommandResult.fail("Payment not found.", code="not_found")

        denied = self._check_access(actor, payment, DELETE)
        if denied:
            return denied

        scope = payment.scope
        target_id = payment.target_id
        model = self.TARGET_MODELS[scope]

        try:
            with transaction.atomic(), ledger_writes_allowed():
                locked = model.objects.select_for_update().get(pk=target_id)
                # Someone may have deleted it while we waited for the lock.
                deleted, _ = Payment.objects.filter(pk=payment_id).delete()
                if not deleted:
                    return CommandResult.fail("Payment not found.", code="not_found")
                self._recompute_from(scope, locked)
        except ConsistencyViolation as exc:
            logger.error(
                "Deleting payment %s rolled back: %s",
                payment_id,
                exc,
                extra={"organization_id": payment.organization_id, "target": exc.target},
            )
            return CommandResult.fail(str(exc), code="consistency")

        logger.info(
            "Payment %s deleted: %s %s amount=%s",
            payment_id,
            scope,
            target_id,
            payment.amount,
            extra={
                "organization_id": payment.organization_id,
                "target": f"{scope}:{target_id}",
                "amount": str(payment.amount),
            },
        )
        return CommandResult.ok({"payment_id": payment_id, "scope": scope, "target_id": target_id})

    # =========================================================================
    # Expenses
    # =========================================================================

    def create_expense(
        self,
        actor,
        title: str,
        amount,
        expense_date=None,
        expense_type: str = Expense.ExpenseType.OTHER,
        team_member_id: Optional[int] = None,
        project_id: Optional[int] = None,
        total_amount=None,
        description: str = "",
    ) -> CommandResult:
        organization_id = self._organization_id(actor)
        denied = self._check_access(actor, ResourceRef(Kind.EXPENSE, organization_id), CREATE)
        if denied:
            return denied

        if not title or not title.strip():
            return CommandResult.fail("Title is required.")

        amount, reason = policies.parse_amount(amount)
        if amount is None:
            return CommandResult.fail(reason)

        total_amount, reason = policies.parse_optional_amount(total_amount, "Total amount")
        if reason:
            return CommandResult.fail(reason)

        team_member = None
        if team_member_id is not None:
            membership = (
                Membership.objects.for_organization(organization_id)
                .active()
                .select_related("user")
                .filter(user_id=team_member_id)
                .first()
            )
            if membership is None:
                return CommandResult.fail("Team member is not an active member of this organization.")
            team_member = membership.user

        allowed, reason = policies.check_expense_fields(expense_type, team_member, total_amount)
        if not allowed:
            return CommandResult.fail(reason)

        project = None
        if project_id is not None:
            project = Project.objects.for_organization(organization_id).filter(pk=project_id).first()
            if project is None:
                return CommandResult.fail("Project not found.", code="not_found")

        with transaction.atomic(), ledger_writes_allowed():
            expense = Expense.objects.create(
                organization_id=organization_id,
                title=title.strip(),
                description=description or "",
                amount=amount,
                expense_date=expense_date or timezone.localdate(),
                expense_type=expense_type,
                team_member=team_member,
                project=project,
                total_amount=total_amount,
                paid_amount=ZERO,
                payment_status=derive_payment_status(ZERO, total_amount),
                created_by=self._account(actor),
            )

        logger.info(
            "Expense %s created: %s amount=%s",
            expense.pk,
            expense_type,
            amount,
            extra={"organization_id": organization_id, "amount": str(amount)},
        )
        return CommandResult.ok(expense)

    def delete_expense(self, actor, expense_id: int) -> CommandResult:
        """Delete an expense together with its payments."""
        expense = Expense.objects.filter(pk=expense_id).first()
        if expense is None:
            return CommandResult.fail("Expense not found.", code="not_found")

        denied = self._check_access(actor, expense, DELETE)
        if denied:
            return denied

        with transaction.atomic(), ledger_writes_allowed():
            locked = Expense.objects.select_for_update().get(pk=expense.pk)
            locked.payments.all().delete()
            locked.delete()

        logger.info(
            "Expense %s deleted",
            expense_id,
            extra={"organization_id": expense.organization_id},
        )
        return CommandResult.ok({"expense_id": expense_id})

    # =========================================================================
    # Assignments
    # =========================================================================

    def assign_team_member(
        self,
        actor,
        project_id: int,
        team_member_id: int,
        role: str = "",
        allocated_budget=None,
    ) -> CommandResult:
        """
        Put a team member on a project. Re-assigning a removed member
        reactivates the old assignment, keeping its payments.
        """
        project = Project.objects.filter(pk=project_id).first()
        if project is None:
            return CommandResult.fail("Project not found.", code="not_found")

        denied = self._check_access(actor, ResourceRef(Kind.ASSIGNMENT, project.organization_id), CREATE)
        if denied:
            return denied

        allocation, reason = policies.parse_optional_amount(allocated_budget, "Allocated budget")
        if reason:
            return CommandResult.fail(reason)

        is_member = (
            Membership.objects.for_organization(project.organization_id)
            .active()
            .filter(user_id=team_member_id)
            .exists()
        )
        if not is_member:
            return CommandResult.fail("Team member is not an active member of this organization.")

        with transaction.atomic(), ledger_writes_allowed():
            existing = (
                ProjectTeamMember.objects.select_for_update()
                .filter(project_id=project.pk, team_member_id=team_member_id)
                .first()
            )
            if existing is not None:
                if existing.status != ProjectTeamMember.Status.REMOVED:
                    return CommandResult.fail("Team member is already assigned to this project.")
                paid = self._sum(assignment_id=existing.pk)
                if allocation is not None and allocation < paid:
                    return CommandResult.fail(
                        f"Allocation cannot be lower than the amount already paid ({paid})."
                    )
                existing.status = ProjectTeamMember.Status.ACTIVE
                existing.role = role or existing.role
                existing.allocated_budget = allocation
                existing.save(update_fields=["status", "role", "allocated_budget"])
                assignment = existing
            else:
                assignment = ProjectTeamMember.objects.create(
                    organization_id=project.organization_id,
                    project=project,
                    team_member_id=team_member_id,
                    role=role or "",
                    allocated_budget=allocation,
                )

        logger.info(
            "Account %s assigned to project %s (allocation=%s)",
            team_member_id,
            project.pk,
            allocation,
            extra={"organization_id": project.organization_id},
        )
        return CommandResult.ok(assignment)

    def update_assignment_allocation(
        self,
        actor,
        assignment_id: int,
        allocated_budget=UNSET,
        role: Optional[str] = None,
        status: Optional[str] = None,
    ) -> CommandResult:
        """
        Change an assignment's allocation (and optionally role or status).

        The allocation is checked against the amount already paid while the
        assignment row is locked.
        """
        assignment = ProjectTeamMember.objects.filter(pk=assignment_id).first()
        if assignment is None:
            return CommandResult.fail("Assignment not found.", code="not_found")

        denied = self._check_access(actor, assignment, UPDATE)
        if denied:
            return denied

        allocation = UNSET
        if allocated_budget is not UNSET:
            allocation, reason = policies.parse_optional_amount(allocated_budget, "Allocated budget")
            if reason:
                return CommandResult.fail(reason)

        if status is not None and status not in (
            ProjectTeamMember.Status.ACTIVE,
            ProjectTeamMember.Status.COMPLETED,
        ):
            return CommandResult.fail("Status must be active or completed; use removal to remove.")

        with transaction.atomic(), ledger_writes_allowed():
            locked = ProjectTeamMember.objects.select_for_update().get(pk=assignment.pk)
            update_fields = []

            if allocation is not UNSET:
                paid = self._sum(assignment_id=locked.pk)
                allowed, reason = policies.can_change_allocation(locked, allocation, paid)
                if not allowed:
                    return CommandResult.fail(reason)
                locked.allocated_budget = allocation
                update_fields.append("allocated_budget")

            if role is not None:
                locked.role = role
                update_fields.append("role")

            if status is not None:
                if locked.status == ProjectTeamMember.Status.REMOVED:
                    return CommandResult.fail("Re-assign a removed team member instead.")
                locked.status = status
                update_fields.append("status")

            if update_fields:
                locked.save(update_fields=update_fields)

        return CommandResult.ok(locked)

    def remove_assignment(self, actor, assignment_id: int) -> CommandResult:
        """
        Take a team member off a project. Payments stay and keep counting;
        the assignment takes no new ones.
        """
        assignment = ProjectTeamMember.objects.filter(pk=assignment_id).first()
        if assignment is None:
            return CommandResult.fail("Assignment not found.", code="not_found")

        denied = self._check_access(actor, assignment, DELETE)
        if denied:
            return denied

        with transaction.atomic(), ledger_writes_allowed():
            locked = ProjectTeamMember.objects.select_for_update().get(pk=assignment.pk)
            if locked.status == ProjectTeamMember.Status.REMOVED:
                return CommandResult.fail("Assignment is already removed.")
            locked.status = ProjectTeamMember.Status.REMOVED
            locked.save(update_fields=["status"])

        logger.info(
            "Assignment %s removed",
            assignment_id,
            extra={"organization_id": assignment.organization_id},
        )
        return CommandResult.ok(locked)
