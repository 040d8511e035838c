"""
Management command to create sample data for trying out the API.

Usage:
    python manage.py create_sample_data

This creates:
- 1 admin, 2 merchants and 3 customers
- Open vouchers for each merchant
- A few redeemed vouchers with their transactions and balances
"""

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.accounts.models import User, UserRole
from apps.accounts.services import register_user
from apps.loyalty.models import Voucher, Transaction, Balance
from apps.loyalty.services import issue_voucher, redeem_voucher


class Command(BaseCommand):
    help = 'Create sample data for testing the API'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before creating new sample data',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Creating sample data...')

        users = self.create_users()
        vouchers = self.create_vouchers(users)
        self.create_redemptions(users, vouchers)

        self.stdout.write(self.style.SUCCESS('Sample data created successfully!'))
        self.stdout.write('')
        self.stdout.write('Test accounts:')
        self.stdout.write('  admin@example.com / admin123 (superuser)')
        self.stdout.write('  cafe@example.com / password123 (merchant)')
        self.stdout.write('  bakery@example.com / password123 (merchant)')
        self.stdout.write('  alice@example.com / password123')
        self.stdout.write('  bob@example.com / password123')
        self.stdout.write('  charlie@example.com / password123')

    def clear_data(self):
        """Clear all loyalty data and non-admin users."""
        Transaction.objects.all().delete()
        Voucher.objects.all().delete()
        Balance.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()
        User.objects.filter(email='admin@example.com').delete()

    def get_or_register(self, email, **fields):
        user = User.objects.filter(email=email).first()
        if user is None:
            user = register_user(email=email, password='password123', **fields)
        return user

    def create_users(self):
        """Create test users."""
        self.stdout.write('  Creating users...')

        admin, _ = User.objects.get_or_create(
            email='admin@example.com',
            defaults={
                'name': 'Admin User',
                'role': UserRole.MERCHANT,
                'is_staff': True,
                'is_superuser': True,
            }
        )
        admin.set_password('admin123')
        admin.save()

        return {
            'admin': admin,
            'cafe': self.get_or_register(
                'cafe@example.com',
                name='Clara Cafe',
                role=UserRole.MERCHANT,
                business_name='Corner Cafe',
                business_address='1 Main Street',
            ),
            'bakery': self.get_or_register(
                'bakery@example.com',
                name='Ben Baker',
                role=UserRole.MERCHANT,
                business_name='Daily Bread Bakery',
                business_address='22 Mill Road',
            ),
            'alice': self.get_or_register('alice@example.com', name='Alice', role=UserRole.CUSTOMER),
            'bob': self.get_or_register('bob@example.com', name='Bob', role=UserRole.CUSTOMER),
            'charlie': self.get_or_register('charlie@example.com', name='Charlie', role=UserRole.CUSTOMER),
        }

    def create_vouchers(self, users):
        """Issue vouchers for both merchants."""
        self.stdout.write('  Creating vouchers...')

        vouchers_data = [
            ('cafe', 50, 'Free pastry with any coffee', 30),
            ('cafe', 100, 'Loyalty card stamp bonus', None),
            ('cafe', 25, 'Morning visit bonus', 7),
            ('bakery', 75, 'Weekend loaf special', 14),
            ('bakery', 200, 'Birthday cake order', 60),
        ]

        vouchers = []
        for merchant_key, points, description, days in vouchers_data:
            vouchers.append(issue_voucher(
                merchant=users[merchant_key],
                points_value=points,
                description=description,
                expires_in_days=days,
                idempotency_key=f'sample-{merchant_key}-{points}',
            ))
        return vouchers

    def create_redemptions(self, users, vouchers):
        """Redeem some vouchers so customers have history."""
        self.stdout.write('  Creating redemptions...')

        redemptions = [
            ('alice', vouchers[0]),
            ('alice', vouchers[3]),
            ('bob', vouchers[1]),
        ]

        for customer_key, voucher in redemptions:
            redeem_voucher(
                customer=users[customer_key],
                voucher_code=voucher.code,
                idempotency_key=f'sample-{voucher.code}',
            )
