"""User registration service."""

import logging

from django.db import transaction, IntegrityError
from django.contrib.auth import get_user_model

from apps.accounts.models import UserRole
from apps.loyalty.services.balance_accumulator import open_balance

from .exceptions import DuplicateUserError

User = get_user_model()

logger = logging.getLogger(__name__)


@transaction.atomic
def register_user(
    *,
    email: str,
    password: str,
    name: str,
    role: str,
    phone: str = "",
    business_name: str = "",
    business_address: str = ""
) -> User:
    """
    Register a new customer or merchant.

    Customers get a zero balance row in the same transaction, so every
    customer has a balance from the moment the account exists.

    Args:
        email: User's email address
        password: User's password (will be hashed)
        name: Person's name
        role: 'customer' or 'merchant' (cannot be changed later)
        phone: Optional phone number
        business_name: Merchant business name
        business_address: Merchant business address

    Returns:
        Created User instance

    Raises:
        DuplicateUserError: If an account with this email already exists
    """
    if User.objects.filter(email__iexact=email).exists():
        raise DuplicateUserError("User already exists")

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                email=email,
                password=password,
                name=name,
                role=role,
                phone=phone,
                business_name=business_name if role == UserRole.MERCHANT else "",
                business_address=business_address if role == UserRole.MERCHANT else "",
            )
    except IntegrityError:
        # Lost a race against a concurrent registration with the same email
        raise DuplicateUserError("User already exists")

    if user.is_customer:
        open_balance(customer_id=user.id)

    logger.info("Registered %s %s", user.role, user.id)
    return user
