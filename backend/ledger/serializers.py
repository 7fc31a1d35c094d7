# ledger/serializers.py
"""
Serializers for the ledger API.

Amounts come in as strings or numbers and are validated by the engine
(ledger.policies.parse_amount), so a rejected amount is reported the same
way whether it arrived over HTTP or from code.
"""

from rest_framework import serializers

from .models import Expense, Payment


class PaymentSerializer(serializers.ModelSerializer):
    target_id = serializers.IntegerField(read_only=True)
    project_name = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = (
            "id",
            "public_id",
            "scope",
            "target_id",
            "project",
            "assignment",
            "expense",
            "project_name",
            "amount",
            "payment_date",
            "payment_type",
            "notes",
            "created_at",
        )
        read_only_fields = fields

    def get_project_name(self, obj):
        if obj.project_id:
            return obj.project.name
        if obj.assignment_id:
            return obj.assignment.project.name
        if obj.expense_id and obj.expense.project_id:
            return obj.expense.project.name
        return None


class PaymentCreateSerializer(serializers.Serializer):
    scope = serializers.CharField()
    target_id = serializers.IntegerField()
    amount = serializers.CharField()
    payment_type = serializers.CharField(required=False, default=Payment.PaymentType.REGULAR)
    payment_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ExpenseSerializer(serializers.ModelSerializer):
    team_member_email = serializers.EmailField(source="team_member.email", read_only=True, default=None)

    class Meta:
        model = Expense
        fields = (
            "id",
            "public_id",
            "title",
            "description",
            "amount",
            "expense_date",
            "expense_type",
            "team_member",
            "team_member_email",
            "project",
            "total_amount",
            "paid_amount",
            "payment_status",
            "created_at",
        )
        read_only_fields = fields


class ExpenseCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    amount = serializers.CharField()
    expense_date = serializers.DateField(required=False, allow_null=True)
    expense_type = serializers.CharField(required=False, default=Expense.ExpenseType.OTHER)
    team_member_id = serializers.IntegerField(required=False, allow_null=True)
    project_id = serializers.IntegerField(required=False, allow_null=True)
    total_amount = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True, default="")
