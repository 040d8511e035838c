import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import UserRole
from apps.accounts.services import register_user
from apps.loyalty.services import issue_voucher


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def merchant(db):
    """Create and return a merchant."""
    return register_user(
        email='merchant@example.com',
        password='TestPass123!',
        name='Mia Merchant',
        role=UserRole.MERCHANT,
        business_name='Corner Cafe',
    )


@pytest.fixture
def other_merchant(db):
    """Create and return a second merchant."""
    return register_user(
        email='bakery@example.com',
        password='TestPass123!',
        name='Ben Baker',
        role=UserRole.MERCHANT,
        business_name='Daily Bread',
    )


@pytest.fixture
def customer(db):
    """Create and return a customer with a zero balance."""
    return register_user(
        email='customer@example.com',
        password='TestPass123!',
        name='Cora Customer',
        role=UserRole.CUSTOMER,
    )


@pytest.fixture
def other_customer(db):
    """Create and return a second customer."""
    return register_user(
        email='other@example.com',
        password='TestPass123!',
        name='Oscar Other',
        role=UserRole.CUSTOMER,
    )


@pytest.fixture
def voucher(merchant):
    """An open 100 point voucher with no expiry."""
    return issue_voucher(merchant=merchant, points_value=100, description='Free coffee')


@pytest.fixture
def merchant_client(merchant):
    """API client authenticated as the merchant."""
    return _client_for(merchant)


@pytest.fixture
def customer_client(customer):
    """API client authenticated as the customer."""
    return _client_for(customer)
