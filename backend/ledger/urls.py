# ledger/urls.py
"""
URL configuration for the ledger API (mounted at /api/ledger/).
"""

from django.urls import path

from .views import (
    ExpenseDetailView,
    ExpenseListCreateView,
    PaymentDetailView,
    PaymentListCreateView,
)

app_name = "ledger"

urlpatterns = [
    path("payments/", PaymentListCreateView.as_view(), name="payment-list"),
    path("payments/<int:pk>/", PaymentDetailView.as_view(), name="payment-detail"),
    path("expenses/", ExpenseListCreateView.as_view(), name="expense-list"),
    path("expenses/<int:pk>/", ExpenseDetailView.as_view(), name="expense-detail"),
]
