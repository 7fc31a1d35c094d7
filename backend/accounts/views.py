# accounts/views.py
"""
Thin views for sign-up, sign-in and team management.

Mutations go through accounts.commands; views parse input, resolve the
actor and format responses.
"""

from django.http import Http404
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenRefreshView

from ledger.selectors import account_earnings, payment_history
from ledger.serializers import PaymentSerializer

from .authz import VIEW, resolve_actor, require
from .commands import (
    create_team_member,
    deactivate_membership,
    register_owner,
    sign_in,
    update_membership,
)
from .errors import AccountKindMismatch
from .identity import issue_tokens
from .membership import cached_membership_of
from .models import Membership, User
from .responses import failure_response
from .serializers import (
    MembershipSerializer,
    MembershipUpdateSerializer,
    OrganizationSerializer,
    SignInSerializer,
    SignupSerializer,
    TeamMemberCreateSerializer,
    UserSerializer,
)
from .throttles import LoginThrottle, SignupThrottle


# =============================================================================
# Auth
# =============================================================================

class SignupView(APIView):
    """POST /api/auth/signup/ -> owner account + organization + tokens"""
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [SignupThrottle]

    def post(self, request):
        serializer = SignupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = register_owner(**serializer.validated_data)
        if not result.success:
            return failure_response(result)

        user = result.data["user"]
        payload = issue_tokens(user)
        payload["user"] = UserSerializer(user).data
        payload["organization"] = OrganizationSerializer(result.data["organization"]).data
        return Response(payload, status=status.HTTP_201_CREATED)


class SignInView(APIView):
    """
    Base for the two sign-in surfaces.

    An account presented at the wrong surface gets 403 with the entry
    point it should use, and no tokens.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [LoginThrottle]
    surface = None

    def post(self, request):
        serializer = SignInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = sign_in(surface=self.surface, **serializer.validated_data)
        if not result.success:
            if result.code == "account_kind_mismatch":
                raise AccountKindMismatch(result.data["redirect"])
            return failure_response(result)

        payload = dict(result.data)
        payload["user"] = UserSerializer(payload["user"]).data
        return Response(payload)


class OwnerLoginView(SignInView):
    """POST /api/auth/login/"""
    surface = User.AccountKind.OWNER


class TeamLoginView(SignInView):
    """POST /api/auth/team-login/"""
    surface = User.AccountKind.TEAM_MEMBER


class AgencyTokenRefreshView(TokenRefreshView):
    """POST /api/auth/refresh/"""
    authentication_classes = []


class MeView(APIView):
    """GET /api/auth/me/ -> account, membership (or null) and organization"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        user = request.user
        info = cached_membership_of(user.pk)

        membership = None
        organization = None
        if info is not None:
            row = Membership.objects.select_related("user", "organization").get(pk=info.membership_id)
            membership = MembershipSerializer(row).data
            organization = OrganizationSerializer(row.organization).data

        return Response({
            "user": UserSerializer(user).data,
            "membership": membership,
            "organization": organization,
        })


# =============================================================================
# Team
# =============================================================================

def _membership_or_404(actor, **lookup) -> Membership:
    membership = (
        Membership.objects.visible_to(actor.membership)
        .select_related("user")
        .filter(**lookup)
        .first()
    )
    if membership is None:
        raise Http404
    return membership


class TeamListCreateView(APIView):
    """
    GET /api/team/ -> memberships the actor may see
    POST /api/team/ -> create a team-member account in the organization
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)

        memberships = (
            Membership.objects.visible_to(actor.membership)
            .select_related("user")
            .order_by("created_at")
        )
        if not actor.is_admin:
            memberships = memberships.filter(user_id=actor.user.pk)

        return Response(MembershipSerializer(memberships, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)

        serializer = TeamMemberCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = create_team_member(actor, **serializer.validated_data)
        if not result.success:
            return failure_response(result)

        return Response(
            MembershipSerializer(result.data["membership"]).data,
            status=status.HTTP_201_CREATED,
        )


class TeamMemberDetailView(APIView):
    """
    GET /api/team/<membership_id>/
    PATCH /api/team/<membership_id>/ -> role, salary, notes
    DELETE /api/team/<membership_id>/ -> deactivate
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        membership = _membership_or_404(actor, pk=pk)
        require(actor, membership, VIEW)
        return Response(MembershipSerializer(membership).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        membership = _membership_or_404(actor, pk=pk)

        serializer = MembershipUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = update_membership(actor, membership, **serializer.validated_data)
        if not result.success:
            return failure_response(result)
        return Response(MembershipSerializer(result.data).data)

    def delete(self, request, pk):
        actor = resolve_actor(request)
        membership = _membership_or_404(actor, pk=pk)

        result = deactivate_membership(actor, membership)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TeamMemberEarningsView(APIView):
    """GET /api/team/<account_id>/earnings/"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, account_id):
        actor = resolve_actor(request)
        # The membership row keeps its organization after deactivation.
        membership = _membership_or_404(actor, user_id=account_id)
        require(actor, membership, VIEW)
        return Response(account_earnings(membership.user, membership.organization_id))


class TeamMemberPaymentsView(APIView):
    """GET /api/team/<account_id>/payments/"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, account_id):
        actor = resolve_actor(request)
        membership = _membership_or_404(actor, user_id=account_id)
        require(actor, membership, VIEW)
        payments = payment_history(membership.user, membership.organization_id)
        return Response(PaymentSerializer(payments, many=True).data)
