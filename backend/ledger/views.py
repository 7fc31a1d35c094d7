# ledger/views.py
"""
Payments and expenses API.

Every write goes through the ledger engine; these views only parse input
and shape output.
"""

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import VIEW, resolve_actor, require
from accounts.resources import Kind, ResourceRef
from accounts.responses import failure_response

from .engine import get_engine
from .models import Expense, Payment
from .serializers import (
    ExpenseCreateSerializer,
    ExpenseSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
)


# =============================================================================
# Payments
# =============================================================================

class PaymentListCreateView(APIView):
    """
    GET /api/ledger/payments/?scope=&target_id=
        Owners and admins see every payment in the organization; other
        roles see the payments on their own assignments.
    POST /api/ledger/payments/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)

        payments = Payment.objects.visible_to(actor.membership).select_related(
            "project", "assignment__project"
        )
        if not actor.is_admin:
            payments = payments.filter(
                scope=Payment.Scope.TEAM_ASSIGNMENT,
                assignment__team_member=actor.user,
            )

        scope = request.query_params.get("scope")
        if scope:
            if scope not in Payment.Scope.values:
                return Response(
                    {"detail": f"Invalid scope. Must be one of: {Payment.Scope.values}"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            payments = payments.filter(scope=scope)

            target_id = request.query_params.get("target_id")
            if target_id:
                if not target_id.isdigit():
                    return Response(
                        {"detail": "target_id must be an integer."},
                        status=status.HTTP_400_BAD_REQUEST,
                    )
                payments = payments.filter(**{f"{Payment.TARGET_FIELDS[scope]}_id": int(target_id)})

        return Response(PaymentSerializer(payments, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)

        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().record_payment(actor, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(PaymentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class PaymentDetailView(APIView):
    """DELETE /api/ledger/payments/<id>/"""
    permission_classes = [IsAuthenticated]

    def delete(self, request, pk):
        actor = resolve_actor(request)

        if not Payment.objects.visible_to(actor.membership).filter(pk=pk).exists():
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)

        result = get_engine().delete_payment(actor, pk)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Expenses
# =============================================================================

class ExpenseListCreateView(APIView):
    """
    GET /api/ledger/expenses/?type=team|other
    POST /api/ledger/expenses/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, ResourceRef(Kind.EXPENSE, actor.organization_id), VIEW)

        expenses = Expense.objects.visible_to(actor.membership).select_related("team_member")
        expense_type = request.query_params.get("type")
        if expense_type:
            expenses = expenses.filter(expense_type=expense_type)
        return Response(ExpenseSerializer(expenses, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)

        serializer = ExpenseCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().create_expense(actor, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(ExpenseSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ExpenseDetailView(APIView):
    """
    GET /api/ledger/expenses/<id>/
    DELETE /api/ledger/expenses/<id>/
    """
    permission_classes = [IsAuthenticated]

    def _get(self, actor, pk):
        return Expense.objects.visible_to(actor.membership).filter(pk=pk).first()

    def get(self, request, pk):
        actor = resolve_actor(request)
        expense = self._get(actor, pk)
        if expense is None:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)
        require(actor, expense, VIEW)
        return Response(ExpenseSerializer(expense).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        if self._get(actor, pk) is None:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)

        result = get_engine().delete_expense(actor, pk)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
