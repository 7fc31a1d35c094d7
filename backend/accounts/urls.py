# accounts/urls.py
"""
URL configuration for auth and team APIs.

Endpoints:
- /auth/ - Sign-up, the two sign-in surfaces, refresh, me
- /team/ - Team members, their earnings and payment history
"""

from django.urls import path

from .views import (
    # Auth
    SignupView,
    OwnerLoginView,
    TeamLoginView,
    AgencyTokenRefreshView,
    MeView,
    # Team
    TeamListCreateView,
    TeamMemberDetailView,
    TeamMemberEarningsView,
    TeamMemberPaymentsView,
)

app_name = "accounts"

urlpatterns = [
    # ==========================================================================
    # Authentication
    # ==========================================================================
    path("auth/signup/", SignupView.as_view(), name="signup"),
    path("auth/login/", OwnerLoginView.as_view(), name="login"),
    path("auth/team-login/", TeamLoginView.as_view(), name="team-login"),
    path("auth/refresh/", AgencyTokenRefreshView.as_view(), name="token-refresh"),
    path("auth/me/", MeView.as_view(), name="me"),

    # ==========================================================================
    # Team
    # ==========================================================================
    path("team/", TeamListCreateView.as_view(), name="team-list"),
    path("team/<int:pk>/", TeamMemberDetailView.as_view(), name="team-detail"),
    path("team/<int:account_id>/earnings/", TeamMemberEarningsView.as_view(), name="team-earnings"),
    path("team/<int:account_id>/payments/", TeamMemberPaymentsView.as_view(), name="team-payments"),
]
