# projects/urls.py
"""
URL configuration for the projects API (mounted at /api/projects/).
"""

from django.urls import path

from .views import (
    ClientListCreateView,
    ProjectListCreateView,
    ProjectDetailView,
    ProjectSummaryView,
    ProjectTeamView,
    ProjectTeamMemberDetailView,
    ProjectTaskListCreateView,
    TaskDetailView,
)

app_name = "projects"

urlpatterns = [
    # ==========================================================================
    # Projects
    # ==========================================================================
    path("", ProjectListCreateView.as_view(), name="project-list"),
    path("<int:pk>/", ProjectDetailView.as_view(), name="project-detail"),
    path("<int:pk>/summary/", ProjectSummaryView.as_view(), name="project-summary"),

    # ==========================================================================
    # Assignments
    # ==========================================================================
    path("<int:pk>/team/", ProjectTeamView.as_view(), name="project-team"),
    path(
        "<int:pk>/team/<int:assignment_id>/",
        ProjectTeamMemberDetailView.as_view(),
        name="project-team-member",
    ),

    # ==========================================================================
    # Tasks
    # ==========================================================================
    path("<int:pk>/tasks/", ProjectTaskListCreateView.as_view(), name="project-tasks"),
    path("tasks/<int:task_id>/", TaskDetailView.as_view(), name="task-detail"),

    # ==========================================================================
    # Clients
    # ==========================================================================
    path("clients/", ClientListCreateView.as_view(), name="client-list"),
]
