import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils.translation import gettext_lazy as _

from accounts.models import Organization, OrganizationScopedQuerySet
from ledger.status import derive_payment_status
from ledger.write_barrier import ensure_ledger_write


class Client(models.Model):
    """A customer of the agency. Only what projects need."""

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="clients",
    )
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = OrganizationScopedQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Project(models.Model):
    """
    Client work with an optional budget.

    total_paid is derived: the sum of project-scoped payments, written only
    by the ledger engine.
    """

    class Status(models.TextChoices):
        NEW = "new", _("New")
        ONGOING = "ongoing", _("Ongoing")
        COMPLETED = "completed", _("Completed")

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="projects",
    )
    client = models.ForeignKey(
        Client,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="projects",
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NEW)
    budget = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    total_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    order = models.PositiveIntegerField(default=0)
    start_date = models.DateField(null=True, blank=True)
    deadline = models.DateField(null=True, blank=True)
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
        ordering = ["order", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_paid__gte=0),
                name="project_total_paid_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(budget__isnull=True) | Q(budget__gte=0),
                name="project_budget_non_negative",
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def pending_amount(self) -> Decimal:
        if self.budget is None:
            return Decimal("0.00")
        return self.budget - self.total_paid


class ProjectTeamMember(models.Model):
    """
    Assignment of a team member to a project, with an optional allocation.

    total_paid is derived from assignment-scoped payments and never exceeds
    allocated_budget.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        COMPLETED = "completed", _("Completed")
        REMOVED = "removed", _("Removed")

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="+",
    )
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="assignments",
    )
    team_member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="assignments",
    )
    role = models.CharField(max_length=100, blank=True, default="")
    allocated_budget = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    total_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    assigned_at = models.DateTimeField(auto_now_add=True)

    objects = OrganizationScopedQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["project", "team_member"],
                name="uniq_project_team_member",
            ),
            models.CheckConstraint(
                condition=Q(total_paid__gte=0),
                name="assignment_total_paid_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(allocated_budget__isnull=True) | Q(total_paid__lte=F("allocated_budget")),
                name="assignment_paid_within_allocation",
            ),
        ]

    def __str__(self):
        return f"{self.team_member} on {self.project}"

    def save(self, *args, **kwargs):
        if self.organization_id is None:
            self.organization_id = self.project.organization_id
        # Allocation and totals feed the ledger invariants.
        ensure_ledger_write(self.__class__.__name__)
        super().save(*args, **kwargs)

    @property
    def payment_status(self) -> str:
        return derive_payment_status(self.total_paid, self.allocated_budget)

    @property
    def pending_amount(self) -> Decimal:
        if self.allocated_budget is None:
            return Decimal("0.00")
        return self.allocated_budget - self.total_paid


class Task(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        IN_PROGRESS = "in_progress", _("In progress")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    class Priority(models.TextChoices):
        LOW = "low", _("Low")
        MEDIUM = "medium", _("Medium")
        HIGH = "high", _("High")
        URGENT = "urgent", _("Urgent")

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="+",
    )
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="tasks",
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tasks",
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    due_date = models.DateField(null=True, blank=True)
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
        ordering = ["due_date", "-created_at"]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        if self.organization_id is None:
            self.organization_id = self.project.organization_id
        super().save(*args, **kwargs)
