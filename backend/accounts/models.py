import uuid

from django.conf import settings
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from accounts.errors import ImmutableFieldError


class UserManager(BaseUserManager):
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("The given email must be set")
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("account_kind", User.AccountKind.OWNER)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    An account: one person who can sign in.

    ``account_kind`` says how the account was provisioned (owner sign-up
    or created by an owner/admin as a team member). It decides which
    sign-in surface and which home area apply, and it never changes
    after the row is first saved.
    """

    class AccountKind(models.TextChoices):
        OWNER = "owner", _("Owner")
        TEAM_MEMBER = "team_member", _("Team member")

    username = None
    email = models.EmailField("email address", unique=True)
    name = models.CharField(max_length=150, blank=True)
    account_kind = models.CharField(
        max_length=20,
        choices=AccountKind.choices,
        default=AccountKind.OWNER,
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["name"]

    objects = UserManager()

    def __str__(self):
        return self.email

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._original_account_kind = instance.__dict__.get("account_kind")
        return instance

    def save(self, *args, **kwargs):
        original = getattr(self, "_original_account_kind", None)
        if self.pk and original is not None and original != self.account_kind:
            raise ImmutableFieldError(
                f"account_kind of {self.email} cannot change from {original} to {self.account_kind}."
            )
        super().save(*args, **kwargs)
        self._original_account_kind = self.account_kind

    @property
    def is_owner_kind(self) -> bool:
        return self.account_kind == self.AccountKind.OWNER

    @property
    def is_team_member_kind(self) -> bool:
        return self.account_kind == self.AccountKind.TEAM_MEMBER


class OrganizationScopedQuerySet(models.QuerySet):
    """
    QuerySet for tenant-owned rows.

    ``visible_to`` takes an already-resolved membership (see
    accounts.membership) and never looks memberships up itself.
    """

    organization_field = "organization_id"

    def for_organization(self, organization_id):
        return self.filter(**{self.organization_field: organization_id})

    def visible_to(self, membership):
        if membership is None:
            return self.none()
        return self.for_organization(membership.organization_id)


class Organization(models.Model):
    """A tenant boundary. Exactly one owner-kind account owns it."""

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=255)
    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_organization",
    )
    currency = models.CharField(max_length=3, default="INR")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Organization")
        verbose_name_plural = _("Organizations")

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if self.owner.account_kind != User.AccountKind.OWNER:
            raise ValidationError("Only owner accounts can own an organization.")
        super().save(*args, **kwargs)


class MembershipQuerySet(OrganizationScopedQuerySet):
    def active(self):
        return self.filter(status=Membership.Status.ACTIVE)


class Membership(models.Model):
    """
    Links an account to an organization with a role.

    The role is the permission level inside the organization; it is a
    separate axis from User.account_kind. The only coupling: ``owner`` is
    held by the organization's owner account and nobody else.
    """

    class Role(models.TextChoices):
        OWNER = "owner", _("Owner")
        ADMIN = "admin", _("Admin")
        DESIGNER = "designer", _("Designer")
        DEVELOPER = "developer", _("Developer")
        EDITOR = "editor", _("Editor")
        CONTENT_WRITER = "content_writer", _("Content Writer")
        PROJECT_MANAGER = "project_manager", _("Project Manager")
        SALES = "sales", _("Sales")
        MARKETING = "marketing", _("Marketing")
        SUPPORT = "support", _("Support")
        OTHER = "other", _("Other")

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        INACTIVE = "inactive", _("Inactive")

    public_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(max_length=30, choices=Role.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)
    monthly_salary = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MembershipQuerySet.as_manager()

    FUNCTIONAL_ROLES = frozenset(
        r for r in Role.values if r not in ("owner", "admin")
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "organization"],
                name="uniq_membership_user_org",
            ),
            models.UniqueConstraint(
                fields=["user"],
                condition=Q(status="active"),
                name="uniq_active_membership_per_user",
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.organization} ({self.role})"

    def save(self, *args, **kwargs):
        owner_kind = self.user.account_kind == User.AccountKind.OWNER
        if self.role == self.Role.OWNER and not owner_kind:
            raise ValidationError("Only owner accounts can hold the owner role.")
        if owner_kind and self.role != self.Role.OWNER:
            raise ValidationError("Owner accounts always hold the owner role.")
        super().save(*args, **kwargs)

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE
