"""
Authz models: auth_user and staff group names.

Staff roles are plain Django groups; the names are fixed below so
permissions and bootstrap code agree on them.
"""
import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin


class StaffGroups:
    """Group names used by permission classes."""
    STORE_MANAGER = 'StoreManager'
    PHARMACIST = 'Pharmacist'
    CASHIER = 'Cashier'

    ALL = (STORE_MANAGER, PHARMACIST, CASHIER)
    # Groups allowed to create and manage returns
    RETURN_STAFF = (STORE_MANAGER, PHARMACIST)


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Store staff account.

    Every non-superuser works for one store; their querysets and new
    returns are scoped to it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    store = models.ForeignKey(
        'core.Store',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='staff',
        help_text='Store this user works for (empty for platform admins)'
    )
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)  # Required for admin access
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['email'], name='idx_user_email'),
            models.Index(fields=['store', 'is_active'], name='idx_user_store_active'),
        ]

    def __str__(self):
        return self.email

    def in_groups(self, names):
        """True if the user belongs to any of the named groups."""
        return self.groups.filter(name__in=names).exists()
