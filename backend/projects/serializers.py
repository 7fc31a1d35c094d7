# projects/serializers.py
"""
Serializers for the projects API.

Input serializers only validate shape; business rules live in
projects.commands and ledger.engine.
"""

from rest_framework import serializers

from accounts.serializers import UserSerializer

from .models import Client, Project, ProjectTeamMember, Task


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ("id", "public_id", "name", "email", "phone", "created_at")


class ClientCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")


# =============================================================================
# Projects
# =============================================================================

class ProjectSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.name", read_only=True, default=None)
    pending_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Project
        fields = (
            "id",
            "public_id",
            "client",
            "client_name",
            "name",
            "description",
            "status",
            "budget",
            "total_paid",
            "pending_amount",
            "order",
            "start_date",
            "deadline",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ProjectCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    client_id = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(choices=Project.Status.choices, required=False, default=Project.Status.NEW)
    budget = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    start_date = serializers.DateField(required=False, allow_null=True)
    deadline = serializers.DateField(required=False, allow_null=True)
    order = serializers.IntegerField(required=False, min_value=0)


class ProjectUpdateSerializer(ProjectCreateSerializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Project.Status.choices, required=False)


# =============================================================================
# Assignments
# =============================================================================

class AssignmentSerializer(serializers.ModelSerializer):
    team_member = UserSerializer(read_only=True)
    payment_status = serializers.CharField(read_only=True)
    pending_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = ProjectTeamMember
        fields = (
            "id",
            "public_id",
            "project",
            "team_member",
            "role",
            "allocated_budget",
            "total_paid",
            "pending_amount",
            "payment_status",
            "status",
            "assigned_at",
        )
        read_only_fields = fields


class AssignmentCreateSerializer(serializers.Serializer):
    team_member_id = serializers.IntegerField()
    role = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    allocated_budget = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)


class AssignmentUpdateSerializer(serializers.Serializer):
    allocated_budget = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    role = serializers.CharField(max_length=100, required=False, allow_blank=True)
    status = serializers.ChoiceField(
        choices=[ProjectTeamMember.Status.ACTIVE, ProjectTeamMember.Status.COMPLETED],
        required=False,
    )


# =============================================================================
# Tasks
# =============================================================================

class TaskSerializer(serializers.ModelSerializer):
    assigned_to = UserSerializer(read_only=True)

    class Meta:
        model = Task
        fields = (
            "id",
            "public_id",
            "project",
            "assigned_to",
            "title",
            "description",
            "status",
            "priority",
            "due_date",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class TaskCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    assigned_to_id = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    priority = serializers.ChoiceField(choices=Task.Priority.choices, required=False, default=Task.Priority.MEDIUM)
    due_date = serializers.DateField(required=False, allow_null=True)


class TaskUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    assigned_to_id = serializers.IntegerField(required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Task.Status.choices, required=False)
    priority = serializers.ChoiceField(choices=Task.Priority.choices, required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
