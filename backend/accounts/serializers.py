from rest_framework import serializers

from .commands import ASSIGNABLE_ROLES
from .models import Membership, Organization, User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email", "name", "account_kind")


class OrganizationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = ("id", "public_id", "name", "currency", "created_at")


class MembershipSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = Membership
        fields = (
            "id",
            "public_id",
            "user",
            "role",
            "status",
            "monthly_salary",
            "notes",
            "created_at",
        )


# =============================================================================
# Auth input
# =============================================================================

class SignupSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    password = serializers.CharField(min_length=8, write_only=True)
    organization_name = serializers.CharField(max_length=255)
    currency = serializers.CharField(max_length=3, required=False, default="INR")

    def validate_currency(self, value: str):
        return value.upper()


class SignInSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


# =============================================================================
# Team management input
# =============================================================================

class TeamMemberCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField(max_length=150)
    password = serializers.CharField(min_length=8, write_only=True)
    role = serializers.ChoiceField(choices=ASSIGNABLE_ROLES)
    monthly_salary = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class MembershipUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=ASSIGNABLE_ROLES, required=False)
    monthly_salary = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True)
