import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User, UserRole
from apps.accounts.services import register_user


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def customer(db):
    """Create and return a registered customer."""
    return register_user(
        email='customer@example.com',
        password='TestPass123!',
        name='Test Customer',
        role=UserRole.CUSTOMER,
    )


@pytest.fixture
def merchant(db):
    """Create and return a registered merchant."""
    return register_user(
        email='merchant@example.com',
        password='TestPass123!',
        name='Test Merchant',
        role=UserRole.MERCHANT,
        business_name='Test Cafe',
        business_address='1 Test Street',
    )


@pytest.fixture
def user_inactive(db):
    """Create and return an inactive user."""
    return User.objects.create_user(
        email='inactive@example.com',
        password='TestPass123!',
        name='Inactive User',
        is_active=False,
    )


@pytest.fixture
def authenticated_client(api_client, customer):
    """Return an API client authenticated as the customer using JWT."""
    refresh = RefreshToken.for_user(customer)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return api_client
