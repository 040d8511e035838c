from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
import uuid


class VoucherStatus(models.TextChoices):
    OPEN = 'open', 'Open'
    REDEEMED = 'redeemed', 'Redeemed'


class TransactionKind(models.TextChoices):
    EARNED = 'earned', 'Earned'
    REDEEMED = 'redeemed', 'Redeemed'


class Voucher(models.Model):
    """Point-bearing voucher issued by a merchant, redeemable once."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    merchant = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='issued_vouchers'
    )
    code = models.CharField(max_length=50, unique=True)
    points_value = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    description = models.TextField(blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    # Redemption state
    status = models.CharField(
        max_length=20,
        choices=VoucherStatus.choices,
        default=VoucherStatus.OPEN
    )
    redeemed_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='redeemed_vouchers'
    )
    redeemed_at = models.DateTimeField(null=True, blank=True)

    # PNG data URL of the voucher QR code
    qr_code_data = models.TextField(blank=True)

    idempotency_key = models.CharField(max_length=64, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'vouchers'
        constraints = [
            models.UniqueConstraint(
                fields=['merchant', 'idempotency_key'],
                name='voucher_merchant_idempotency_key_uniq',
            ),
            models.CheckConstraint(
                condition=models.Q(points_value__gt=0),
                name='voucher_points_value_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['merchant', 'created_at'], name='vouchers_merchant_idx'),
            models.Index(fields=['status', 'expires_at'], name='vouchers_status_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.code} ({self.points_value} pts, {self.status})"

    def save(self, *args, **kwargs):
        """Keep value and redeemer fixed once the voucher is redeemed."""
        if not self._state.adding:
            stored = (
                Voucher.objects.filter(pk=self.pk)
                .values('status', 'points_value', 'redeemed_by_id')
                .first()
            )
            if stored and stored['status'] == VoucherStatus.REDEEMED:
                if (
                    self.status != VoucherStatus.REDEEMED
                    or self.points_value != stored['points_value']
                    or self.redeemed_by_id != stored['redeemed_by_id']
                ):
                    raise ValueError('Redeemed vouchers cannot be modified')
        super().save(*args, **kwargs)

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= timezone.now()

    def is_redeemable(self, now=None):
        """Open and not past its expiry."""
        now = now or timezone.now()
        if self.status != VoucherStatus.OPEN:
            return False
        return self.expires_at is None or self.expires_at > now


class Transaction(models.Model):
    """
    Immutable record of one points movement between a customer and a merchant.

    ``points_amount`` holds the magnitude; ``kind`` decides the sign.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='customer_transactions'
    )
    merchant = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='merchant_transactions'
    )
    points_amount = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    kind = models.CharField(max_length=20, choices=TransactionKind.choices)
    description = models.TextField(blank=True)
    voucher_code = models.CharField(max_length=50, null=True, blank=True)
    qr_code_data = models.TextField(blank=True)

    idempotency_key = models.CharField(max_length=64, null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'transactions'
        constraints = [
            models.UniqueConstraint(
                fields=['customer', 'idempotency_key'],
                name='transaction_customer_idempotency_key_uniq',
            ),
        ]
        indexes = [
            models.Index(fields=['customer', 'created_at'], name='transactions_customer_idx'),
            models.Index(fields=['merchant', 'created_at'], name='transactions_merchant_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.kind} {self.points_amount} pts ({self.voucher_code or 'no voucher'})"

    @property
    def signed_amount(self):
        if self.kind == TransactionKind.REDEEMED:
            return -self.points_amount
        return self.points_amount

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Transactions are append-only and cannot be updated')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError('Transactions are append-only and cannot be deleted')


class Balance(models.Model):
    """Running point total for one customer."""

    customer = models.OneToOneField(
        'accounts.User',
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='balance'
    )
    total_points = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'customer_balances'

    def __str__(self):
        return f"{self.customer_id}: {self.total_points} pts"
