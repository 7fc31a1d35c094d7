# ledger/admin.py
"""
Django admin for ledger models.

Payments and expenses are written only by the ledger engine, which keeps
the derived totals in step. The admin is for viewing; changes go through
the API or ledger.engine.
"""

from django.contrib import admin

from .models import Expense, Payment


class ReadOnlyModelAdmin(admin.ModelAdmin):
    """Base admin class for engine-owned models."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyModelAdmin):
    list_display = ("id", "organization", "scope", "amount", "payment_type", "payment_date")
    list_filter = ("scope", "payment_type")
    search_fields = ("notes",)


@admin.register(Expense)
class ExpenseAdmin(ReadOnlyModelAdmin):
    list_display = ("title", "organization", "expense_type", "amount", "paid_amount", "payment_status")
    list_filter = ("expense_type", "payment_status")
    search_fields = ("title",)
