# projects/views.py
"""
Thin views that delegate to the commands layer and the ledger engine.

Objects are always loaded through visible_to(actor.membership), so a row
from another organization is a 404 before any authorization runs.
"""

from django.http import Http404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import VIEW, resolve_actor, require
from accounts.resources import Kind, ResourceRef
from accounts.responses import failure_response
from ledger.engine import get_engine
from ledger.selectors import project_summary

from .commands import (
    create_client,
    create_project,
    create_task,
    delete_project,
    delete_task,
    update_project,
    update_task,
)
from .models import Client, Project, ProjectTeamMember, Task
from .serializers import (
    AssignmentCreateSerializer,
    AssignmentSerializer,
    AssignmentUpdateSerializer,
    ClientCreateSerializer,
    ClientSerializer,
    ProjectCreateSerializer,
    ProjectSerializer,
    ProjectUpdateSerializer,
    TaskCreateSerializer,
    TaskSerializer,
    TaskUpdateSerializer,
)


def _get_visible(model, actor, **lookup):
    obj = model.objects.visible_to(actor.membership).filter(**lookup).first()
    if obj is None:
        raise Http404
    return obj


# =============================================================================
# Clients
# =============================================================================

class ClientListCreateView(APIView):
    """
    GET /api/projects/clients/
    POST /api/projects/clients/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, ResourceRef(Kind.CLIENT, actor.organization_id), VIEW)
        clients = Client.objects.visible_to(actor.membership)
        return Response(ClientSerializer(clients, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)

        serializer = ClientCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = create_client(actor, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(ClientSerializer(result.data).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Projects
# =============================================================================

class ProjectListCreateView(APIView):
    """
    GET /api/projects/ -> all projects (owner/admin) or assigned ones
    POST /api/projects/ -> create project
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)

        projects = Project.objects.visible_to(actor.membership).select_related("client")
        if not actor.is_admin:
            projects = projects.filter(
                assignments__team_member=actor.user,
                assignments__status__in=[
                    ProjectTeamMember.Status.ACTIVE,
                    ProjectTeamMember.Status.COMPLETED,
                ],
            ).distinct()

        status_filter = request.query_params.get("status")
        if status_filter:
            projects = projects.filter(status=status_filter)

        return Response(ProjectSerializer(projects, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)

        serializer = ProjectCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = create_project(actor, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(ProjectSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ProjectDetailView(APIView):
    """
    GET /api/projects/<id>/
    PATCH /api/projects/<id>/
    DELETE /api/projects/<id>/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)
        require(actor, project, VIEW)
        return Response(ProjectSerializer(project).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)

        serializer = ProjectUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = update_project(actor, project, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(ProjectSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)

        result = delete_project(actor, project)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProjectSummaryView(APIView):
    """GET /api/projects/<id>/summary/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)
        require(actor, project, VIEW)
        return Response(project_summary(project))


# =============================================================================
# Assignments
# =============================================================================

class ProjectTeamView(APIView):
    """
    GET /api/projects/<id>/team/ -> assignments the actor may see
    POST /api/projects/<id>/team/ -> assign a team member
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)
        require(actor, project, VIEW)

        assignments = ProjectTeamMember.objects.filter(project=project).select_related("team_member")
        if not actor.is_admin:
            assignments = assignments.filter(team_member=actor.user)

        return Response(AssignmentSerializer(assignments, many=True).data)

    def post(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)

        serializer = AssignmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().assign_team_member(actor, project.pk, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(AssignmentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ProjectTeamMemberDetailView(APIView):
    """
    PATCH /api/projects/<id>/team/<assignment_id>/ -> allocation, role, status
    DELETE /api/projects/<id>/team/<assignment_id>/ -> remove from project
    """
    permission_classes = [IsAuthenticated]

    def _get_assignment(self, actor, pk, assignment_id):
        return _get_visible(ProjectTeamMember, actor, pk=assignment_id, project_id=pk)

    def patch(self, request, pk, assignment_id):
        actor = resolve_actor(request)
        assignment = self._get_assignment(actor, pk, assignment_id)

        serializer = AssignmentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = get_engine().update_assignment_allocation(actor, assignment.pk, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(AssignmentSerializer(result.data).data)

    def delete(self, request, pk, assignment_id):
        actor = resolve_actor(request)
        assignment = self._get_assignment(actor, pk, assignment_id)

        result = get_engine().remove_assignment(actor, assignment.pk)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Tasks
# =============================================================================

class ProjectTaskListCreateView(APIView):
    """
    GET /api/projects/<id>/tasks/
    POST /api/projects/<id>/tasks/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)
        require(actor, project, VIEW)

        tasks = Task.objects.filter(project=project).select_related("assigned_to")
        if not actor.is_admin:
            tasks = tasks.filter(assigned_to=actor.user)
        return Response(TaskSerializer(tasks, many=True).data)

    def post(self, request, pk):
        actor = resolve_actor(request)
        project = _get_visible(Project, actor, pk=pk)

        serializer = TaskCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = create_task(actor, project, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(TaskSerializer(result.data).data, status=status.HTTP_201_CREATED)


class TaskDetailView(APIView):
    """
    PATCH /api/projects/tasks/<task_id>/
    DELETE /api/projects/tasks/<task_id>/
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, task_id):
        actor = resolve_actor(request)
        task = _get_visible(Task, actor, pk=task_id)

        serializer = TaskUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = update_task(actor, task, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(TaskSerializer(result.data).data)

    def delete(self, request, task_id):
        actor = resolve_actor(request)
        task = _get_visible(Task, actor, pk=task_id)

        result = delete_task(actor, task)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
