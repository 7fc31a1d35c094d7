"""
Ledger verification.

Payments are the source of truth. verify_ledger() re-sums them for every
target in an organization and compares against the stored aggregates,
without writing anything. The recompute_ledger management command fixes
what it reports.
"""
from decimal import Decimal
from typing import Any, Dict

from django.db.models import Sum

from ledger.models import Expense, Payment
from ledger.status import derive_payment_status
from projects.models import Project, ProjectTeamMember


def _sums_by(organization_id: int, field: str) -> Dict[int, Decimal]:
    rows = (
        Payment.objects.filter(organization_id=organization_id, **{f"{field}__isnull": False})
        .values(field)
        .annotate(total=Sum("amount"))
    )
    return {row[field]: row["total"] for row in rows}


def verify_ledger(organization) -> Dict[str, Any]:
    """
    Compare stored aggregates with fresh sums.

    Returns:
        {
            "organization_id": 3,
            "checked": 12,
            "mismatches": [
                {"target": "assignment", "id": 7, "stored": "100.00", "expected": "150.00"},
            ],
        }
    """
    organization_id = getattr(organization, "pk", organization)
    zero = Decimal("0.00")
    checked = 0
    mismatches = []

    def compare(target, pk, stored, expected):
        if stored != expected:
            mismatches.append({
                "target": target,
                "id": pk,
                "stored": str(stored),
                "expected": str(expected),
            })

    project_sums = _sums_by(organization_id, "project")
    for pk, stored in Project.objects.filter(organization_id=organization_id).values_list("pk", "total_paid"):
        checked += 1
        compare("project", pk, stored, project_sums.get(pk, zero))

    assignment_sums = _sums_by(organization_id, "assignment")
    for pk, stored in ProjectTeamMember.objects.filter(organization_id=organization_id).values_list(
        "pk", "total_paid"
    ):
        checked += 1
        compare("assignment", pk, stored, assignment_sums.get(pk, zero))

    expense_sums = _sums_by(organization_id, "expense")
    expenses = Expense.objects.filter(organization_id=organization_id).values_list(
        "pk", "paid_amount", "total_amount", "payment_status"
    )
    for pk, stored, total, status in expenses:
        checked += 1
        expected = expense_sums.get(pk, zero)
        compare("expense", pk, stored, expected)
        expected_status = derive_payment_status(expected, total)
        if status != expected_status:
            mismatches.append({
                "target": "expense_status",
                "id": pk,
                "stored": status,
                "expected": expected_status,
            })

    return {
        "organization_id": organization_id,
        "checked": checked,
        "mismatches": mismatches,
    }


def recompute_organization(engine, organization) -> Dict[str, Any]:
    """
    Recompute every aggregate of one organization through the engine.

    Returns the verification report taken before recomputing, so callers
    can show what was fixed.
    """
    organization_id = getattr(organization, "pk", organization)
    report = verify_ledger(organization_id)

    for pk in ProjectTeamMember.objects.filter(organization_id=organization_id).values_list("pk", flat=True):
        engine.recompute_assignment(pk)
    for pk in Project.objects.filter(organization_id=organization_id).values_list("pk", flat=True):
        engine.recompute_project(pk)
    for pk in Expense.objects.filter(organization_id=organization_id).values_list("pk", flat=True):
        engine.recompute_expense(pk)

    return report
