"""
Authentication models.

This module defines the marketplace identity models:
- User: Email-based user with a marketplace role and account status
- Profile: Display name and freelancer availability limits (OneToOne with User)

Related files:
    - managers.py: Custom user manager for email-based creation
    - signals.py: Auto-create profile on user creation

Roles:
    client      - books services and pays into escrow
    freelancer  - offers services, accepts/declines bookings, receives payouts
    admin       - resolves disputes, overrides payouts, may confirm services
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from core.models import BaseModel
from authentication.managers import UserManager


class UserRole(models.TextChoices):
    CLIENT = "client", "Client"
    FREELANCER = "freelancer", "Freelancer"
    ADMIN = "admin", "Admin"


class AccountStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    SUSPENDED = "suspended", "Suspended"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        email_verified: Whether the user's email has been verified
        role: Marketplace role (client, freelancer, admin)
        account_status: active or suspended; suspended users cannot book
            and suspended freelancers cannot be booked
        is_verified_freelancer: Identity checks passed (required for payouts)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        client = User.objects.create_user(
            email="client@example.com",
            password="securepassword",
        )
        freelancer = User.objects.create_user(
            email="pro@example.com",
            password="securepassword",
            role=UserRole.FREELANCER,
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    email_verified = models.BooleanField(
        default=False,
        help_text="Whether the user's email has been verified",
    )

    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CLIENT,
        db_index=True,
    )

    account_status = models.CharField(
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.ACTIVE,
        help_text="Suspended accounts cannot create or receive bookings",
    )

    is_verified_freelancer = models.BooleanField(
        default=False,
        help_text="Freelancer identity verified; payouts are only sent to verified freelancers",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        """Return the full name from profile, or the email if unset."""
        try:
            return self.profile.full_name or self.email
        except Profile.DoesNotExist:
            return self.email

    def get_short_name(self):
        try:
            return self.profile.first_name or self.email.split("@")[0]
        except Profile.DoesNotExist:
            return self.email.split("@")[0]

    @property
    def is_admin(self) -> bool:
        """Admins act on any booking (confirm, refund, resolve disputes)."""
        return self.role == UserRole.ADMIN or self.is_superuser

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_freelancer(self) -> bool:
        return self.role == UserRole.FREELANCER

    @property
    def is_suspended(self) -> bool:
        return self.account_status == AccountStatus.SUSPENDED


class Profile(BaseModel):
    """
    Extended user profile data.

    For freelancers the profile also holds the availability limits that
    the booking slot check enforces.

    Fields:
        user: OneToOne link to User (also serves as primary key)
        first_name: User's first name
        last_name: User's last name
        min_lead_time_hours: Minimum notice a freelancer needs before a booking
        max_bookings_per_day: Daily cap on pending/confirmed bookings
    """

    user = models.OneToOneField(
        "authentication.User",
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="profile",
    )

    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)

    min_lead_time_hours = models.PositiveIntegerField(
        default=0,
        help_text="Bookings must start at least this many hours from now",
    )
    max_bookings_per_day = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Maximum bookings per calendar day; empty means no cap",
    )

    class Meta:
        verbose_name = "profile"
        verbose_name_plural = "profiles"

    def __str__(self):
        return f"Profile({self.user.email})"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
