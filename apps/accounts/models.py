from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
import uuid


class UserRole(models.TextChoices):
    CUSTOMER = 'customer', 'Customer'
    MERCHANT = 'merchant', 'Merchant'


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('role', UserRole.CUSTOMER)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.MERCHANT)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True')

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Customer or merchant account with email authentication.

    The role is fixed at creation; merchants may carry business profile
    fields that customers leave blank.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255, db_index=True)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True)
    role = models.CharField(max_length=20, choices=UserRole.choices)

    # Merchant profile
    business_name = models.CharField(max_length=255, blank=True)
    business_address = models.TextField(blank=True)

    # Permissions
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['role'], name='users_role_idx'),
            models.Index(fields=['created_at'], name='users_created_idx'),
        ]

    def __str__(self):
        return self.email

    def save(self, *args, **kwargs):
        """Refuse to change the role of an existing user."""
        if not self._state.adding:
            stored_role = (
                User.objects.filter(pk=self.pk)
                .values_list('role', flat=True)
                .first()
            )
            if stored_role is not None and stored_role != self.role:
                raise ValueError('User role cannot be changed after creation')
        super().save(*args, **kwargs)

    @property
    def is_customer(self):
        return self.role == UserRole.CUSTOMER

    @property
    def is_merchant(self):
        return self.role == UserRole.MERCHANT

    def get_display_name(self):
        """Return business name for merchants, otherwise name or email prefix."""
        if self.is_merchant and self.business_name:
            return self.business_name
        return self.name or self.email.split('@')[0]
