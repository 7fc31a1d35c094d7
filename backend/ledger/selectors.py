"""
Read-side views over the ledger for reporting.

These read stored aggregates; they never recompute. Callers authorize
first (the account or project must be visible to the actor).
"""
from decimal import Decimal

from django.db.models import Count, Q

from ledger.models import Expense, Payment
from projects.models import ProjectTeamMember, Task


ZERO = Decimal("0.00")

ACTIVE_TASK_STATUSES = (Task.Status.PENDING, Task.Status.IN_PROGRESS)


def _in_organization(queryset, organization_id):
    if organization_id is None:
        return queryset
    return queryset.filter(organization_id=organization_id)


def account_earnings(account, organization_id=None) -> dict:
    """
    Earnings of one team member: their active assignments plus the team
    expenses booked to them, and their task counts.

    pending only counts assignments that have an allocation. Team expenses
    always have a total_amount, so they count in full.

    Returns:
        {
            "allocated": "50000.00",
            "received": "15000.00",
            "pending": "35000.00",
            "projects": [{"assignment_id", "project_id", "project_name", ...}],
            "expenses": [{"expense_id", "title", "total_amount", ...}],
            "tasks": {"total": 4, "completed": 1, "active": 3},
        }
    """
    assignments = _in_organization(
        ProjectTeamMember.objects.filter(
            team_member=account,
            status=ProjectTeamMember.Status.ACTIVE,
        ),
        organization_id,
    ).select_related("project").order_by("assigned_at")

    expenses = _in_organization(
        Expense.objects.filter(team_member=account, expense_type=Expense.ExpenseType.TEAM),
        organization_id,
    ).select_related("project").order_by("-expense_date", "-created_at")

    allocated = ZERO
    received = ZERO
    pending = ZERO
    projects = []

    for assignment in assignments:
        received += assignment.total_paid
        if assignment.allocated_budget is not None:
            allocated += assignment.allocated_budget
            pending += assignment.allocated_budget - assignment.total_paid

        projects.append({
            "assignment_id": assignment.pk,
            "project_id": assignment.project_id,
            "project_name": assignment.project.name,
            "role": assignment.role,
            "status": assignment.status,
            "allocated_budget": _money(assignment.allocated_budget),
            "total_paid": _money(assignment.total_paid),
            "payment_status": assignment.payment_status,
        })

    expense_rows = []
    for expense in expenses:
        received += expense.paid_amount
        allocated += expense.total_amount
        pending += expense.total_amount - expense.paid_amount

        expense_rows.append({
            "expense_id": expense.pk,
            "title": expense.title,
            "project_id": expense.project_id,
            "project_name": expense.project.name if expense.project_id else None,
            "expense_date": expense.expense_date,
            "total_amount": _money(expense.total_amount),
            "paid_amount": _money(expense.paid_amount),
            "payment_status": expense.payment_status,
        })

    tasks = _in_organization(Task.objects.filter(assigned_to=account), organization_id).aggregate(
        total=Count("id"),
        completed=Count("id", filter=Q(status=Task.Status.COMPLETED)),
        active=Count("id", filter=Q(status__in=ACTIVE_TASK_STATUSES)),
    )

    return {
        "allocated": _money(allocated),
        "received": _money(received),
        "pending": _money(pending),
        "projects": projects,
        "expenses": expense_rows,
        "tasks": tasks,
    }


def project_summary(project) -> dict:
    team_count = ProjectTeamMember.objects.filter(
        project=project,
        status=ProjectTeamMember.Status.ACTIVE,
    ).count()
    tasks = Task.objects.filter(project=project).aggregate(
        total=Count("id"),
        completed=Count("id", filter=Q(status=Task.Status.COMPLETED)),
    )
    return {
        "project_id": project.pk,
        "budget": _money(project.budget),
        "total_paid": _money(project.total_paid),
        "pending_amount": _money(project.pending_amount),
        "team_count": team_count,
        "task_count": tasks["total"],
        "completed_tasks": tasks["completed"],
    }


def payment_history(account, organization_id=None):
    """
    Payments made to ``account``, newest first: those on their assignments
    and those on team expenses booked to them.
    """
    payments = Payment.objects.filter(
        Q(scope=Payment.Scope.TEAM_ASSIGNMENT, assignment__team_member=account)
        | Q(scope=Payment.Scope.EXPENSE, expense__team_member=account)
    )
    return (
        _in_organization(payments, organization_id)
        .select_related("assignment__project", "expense__project")
        .order_by("-payment_date", "-created_at")
    )


def _money(value):
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))
