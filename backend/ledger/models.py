import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from accounts.models import Organization, OrganizationScopedQuerySet
from ledger import status as payment_status
from ledger.write_barrier import ensure_ledger_write


class LedgerOwnedModel(models.Model):
    """Rows whose saves and deletes must come from the ledger engine."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        ensure_ledger_write(self.__class__.__name__)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        ensure_ledger_write(self.__class__.__name__)
        return super().delete(*args, **kwargs)


class Expense(LedgerOwnedModel):
    """
    Organization-level expense.

    A ``team`` expense is money owed to a team member (optionally for a
    project): total_amount is what is owed, paid_amount is derived from its
    expense-scoped payments, payment_status from both. ``other`` expenses
    carry no team member and take no payments.
    """

    class ExpenseType(models.TextChoices):
        TEAM = "team", _("Team")
        OTHER = "other", _("Other")

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="expenses",
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    expense_date = models.DateField()
    expense_type = models.CharField(
        max_length=10,
        choices=ExpenseType.choices,
        default=ExpenseType.OTHER,
    )
    team_member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="expenses",
    )
    project = models.ForeignKey(
        "projects.Project",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="expenses",
    )
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    payment_status = models.CharField(
        max_length=10,
        choices=payment_status.CHOICES,
        default=payment_status.PENDING,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrganizationScopedQuerySet.as_manager()

    class Meta:
        ordering = ["-expense_date", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="expense_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0),
                name="expense_paid_non_negative",
            ),
            models.CheckConstraint(
                condition=(
                    Q(expense_type="team", team_member__isnull=False, total_amount__isnull=False)
                    | Q(expense_type="other", team_member__isnull=True)
                ),
                name="expense_team_fields_match_type",
            ),
        ]

    def __str__(self):
        return self.title


class Payment(LedgerOwnedModel):
    """
    One money movement against exactly one target.

    The scope says which target column is set. Payments are insert/delete
    only; every change goes through the ledger engine, which recomputes the
    target's derived totals in the same transaction.
    """

    class Scope(models.TextChoices):
        PROJECT = "project", _("Project")
        TEAM_ASSIGNMENT = "team_assignment", _("Team assignment")
        EXPENSE = "expense", _("Expense")

    class PaymentType(models.TextChoices):
        ADVANCE = "advance", _("Advance")
        MILESTONE = "milestone", _("Milestone")
        REGULAR = "regular", _("Regular")
        FINAL = "final", _("Final")

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="payments",
    )
    scope = models.CharField(max_length=20, choices=Scope.choices)
    project = models.ForeignKey(
        "projects.Project",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="payments",
    )
    assignment = models.ForeignKey(
        "projects.ProjectTeamMember",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="payments",
    )
    expense = models.ForeignKey(
        Expense,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    payment_date = models.DateField()
    payment_type = models.CharField(
        max_length=10,
        choices=PaymentType.choices,
        default=PaymentType.REGULAR,
    )
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = OrganizationScopedQuerySet.as_manager()

    TARGET_FIELDS = {
        Scope.PROJECT: "project",
        Scope.TEAM_ASSIGNMENT: "assignment",
        Scope.EXPENSE: "expense",
    }

    class Meta:
        ordering = ["-payment_date", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=(
                    Q(scope="project", project__isnull=False, assignment__isnull=True, expense__isnull=True)
                    | Q(scope="team_assignment", project__isnull=True, assignment__isnull=False, expense__isnull=True)
                    | Q(scope="expense", project__isnull=True, assignment__isnull=True, expense__isnull=False)
                ),
                name="payment_exactly_one_target",
            ),
        ]
        indexes = [
            models.Index(fields=["organization", "scope"], name="payment_org_scope_idx"),
        ]

    def __str__(self):
        return f"{self.get_scope_display()} payment {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise RuntimeError("Payments are immutable; delete and record a new one.")
        super().save(*args, **kwargs)

    @property
    def target_id(self):
        return getattr(self, f"{self.TARGET_FIELDS[self.scope]}_id")
