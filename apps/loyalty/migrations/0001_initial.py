# Generated manually for the loyalty app

import uuid
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Voucher',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(max_length=50, unique=True)),
                ('points_value', models.PositiveIntegerField(validators=[MinValueValidator(1)])),
                ('description', models.TextField(blank=True)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('open', 'Open'), ('redeemed', 'Redeemed')], default='open', max_length=20)),
                ('redeemed_at', models.DateTimeField(blank=True, null=True)),
                ('qr_code_data', models.TextField(blank=True)),
                ('idempotency_key', models.CharField(blank=True, max_length=64, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='issued_vouchers', to=settings.AUTH_USER_MODEL)),
                ('redeemed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='redeemed_vouchers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'vouchers',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('merchant', 'idempotency_key'), name='voucher_merchant_idempotency_key_uniq'),
                    models.CheckConstraint(condition=models.Q(points_value__gt=0), name='voucher_points_value_positive'),
                ],
                'indexes': [
                    models.Index(fields=['merchant', 'created_at'], name='vouchers_merchant_idx'),
                    models.Index(fields=['status', 'expires_at'], name='vouchers_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('points_amount', models.PositiveIntegerField(validators=[MinValueValidator(1)])),
                ('kind', models.CharField(choices=[('earned', 'Earned'), ('redeemed', 'Redeemed')], max_length=20)),
                ('description', models.TextField(blank=True)),
                ('voucher_code', models.CharField(blank=True, max_length=50, null=True)),
                ('qr_code_data', models.TextField(blank=True)),
                ('idempotency_key', models.CharField(blank=True, max_length=64, null=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='customer_transactions', to=settings.AUTH_USER_MODEL)),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='merchant_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'transactions',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('customer', 'idempotency_key'), name='transaction_customer_idempotency_key_uniq'),
                ],
                'indexes': [
                    models.Index(fields=['customer', 'created_at'], name='transactions_customer_idx'),
                    models.Index(fields=['merchant', 'created_at'], name='transactions_merchant_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Balance',
            fields=[
                ('customer', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='balance', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('total_points', models.IntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'customer_balances',
            },
        ),
    ]
