# ledger/policies.py
"""
Validation policies for ledger operations.

Policies answer: "Is this mutation valid given the current state?"
They do NOT perform it; the engine does, and only after every policy
it composes has passed. A failed policy means nothing is written.

Design Principles:
1. Policies are pure functions (no writes)
2. Policies return (bool, str) tuples, or (value, error) for parsers
3. The engine turns a failure into CommandResult.fail(reason)
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from ledger.models import Expense, Payment


MONEY_Q = Decimal("0.01")

# Largest value a numeric(14, 2) money column holds.
MAX_AMOUNT = Decimal("999999999999.99")


# =============================================================================
# Amounts and enums
# =============================================================================

def parse_amount(value, field: str = "Amount") -> Tuple[Optional[Decimal], str]:
    """
    Parse a positive money amount with at most two decimal places.

    Returns:
        (amount, "") when valid
        (None, reason) otherwise
    """
    if value is None or value == "":
        return None, f"{field} is required."
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return None, f"{field} must be a number."

    if not amount.is_finite():
        return None, f"{field} must be a finite number."
    if amount <= 0:
        return None, f"{field} must be greater than zero."
    if amount > MAX_AMOUNT:
        return None, f"{field} cannot exceed {MAX_AMOUNT}."
    try:
        quantized = amount.quantize(MONEY_Q)
    except InvalidOperation:
        return None, f"{field} must have at most two decimal places."
    if amount != quantized:
        return None, f"{field} must have at most two decimal places."
    return quantized, ""


def parse_optional_amount(value, field: str) -> Tuple[Optional[Decimal], str]:
    """Like parse_amount, but empty means None and zero is allowed."""
    if value is None or value == "":
        return None, ""
    try:
        if Decimal(str(value).strip()) == 0:
            return Decimal("0.00"), ""
    except (InvalidOperation, ValueError):
        pass
    return parse_amount(value, field)


def check_payment_type(payment_type: str) -> Tuple[bool, str]:
    if payment_type not in Payment.PaymentType.values:
        return False, f"Invalid payment type. Must be one of: {Payment.PaymentType.values}"
    return True, ""


def check_scope(scope: str) -> Tuple[bool, str]:
    if scope not in Payment.Scope.values:
        return False, f"Invalid scope. Must be one of: {Payment.Scope.values}"
    return True, ""


# =============================================================================
# Target policies
# =============================================================================

def can_pay_assignment(assignment, amount: Decimal, existing_total: Decimal) -> Tuple[bool, str]:
    """
    Rules:
    - Removed assignments take no new payments
    - existing_total + amount may not exceed allocated_budget
      (no allocation means no ceiling)

    ``existing_total`` must be summed while the assignment row is locked.
    """
    if assignment.status == assignment.Status.REMOVED:
        return False, "Cannot record a payment for a removed assignment."

    if assignment.allocated_budget is not None:
        if existing_total + amount > assignment.allocated_budget:
            remaining = assignment.allocated_budget - existing_total
            return False, (
                f"Payment of {amount} exceeds the remaining allocation of {remaining} "
                f"(allocated {assignment.allocated_budget}, paid {existing_total})."
            )
    return True, ""


def can_pay_expense(expense) -> Tuple[bool, str]:
    if expense.expense_type != Expense.ExpenseType.TEAM:
        return False, "Payments can only be recorded against team expenses."
    return True, ""


def can_change_allocation(assignment, new_allocation: Optional[Decimal], paid: Decimal) -> Tuple[bool, str]:
    """An allocation may not drop below what has already been paid out."""
    if assignment.status == assignment.Status.REMOVED:
        return False, "Cannot change the allocation of a removed assignment."
    if new_allocation is not None and new_allocation < paid:
        return False, f"Allocation cannot be lower than the amount already paid ({paid})."
    return True, ""


def check_expense_fields(expense_type: str, team_member, total_amount) -> Tuple[bool, str]:
    """
    Rules:
    - team expenses need a team member and a total amount
    - other expenses carry no team member
    """
    if expense_type not in Expense.ExpenseType.values:
        return False, f"Invalid expense type. Must be one of: {Expense.ExpenseType.values}"

    if expense_type == Expense.ExpenseType.TEAM:
        if team_member is None:
            return False, "Team expenses require a team member."
        if total_amount is None:
            return False, "Team expenses require a total amount."
    elif team_member is not None:
        return False, "Only team expenses can name a team member."
    return True, ""
