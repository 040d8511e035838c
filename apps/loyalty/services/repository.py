"""
Ledger repository.

All database access for vouchers, transactions and balances goes through
``LedgerRepository``. Ledger services take a repository as an explicit
dependency so tests can substitute one that fails or records calls.

The repository does not open transactions itself; callers wrap related
calls in ``transaction.atomic()``.
"""

from typing import Optional
from uuid import UUID

from django.db.models import F, Q, QuerySet, Sum
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.loyalty.models import (
    Voucher,
    VoucherStatus,
    Transaction,
    TransactionKind,
    Balance,
)


class LedgerRepository:
    """Django ORM implementation of ledger storage."""

    # -------------------------------------------------------------------------
    # Vouchers
    # -------------------------------------------------------------------------

    def create_voucher(self, *, merchant_id: UUID, code: str, points_value: int,
                       description: str = '', expires_at=None,
                       idempotency_key: Optional[str] = None) -> Voucher:
        return Voucher.objects.create(
            merchant_id=merchant_id,
            code=code,
            points_value=points_value,
            description=description,
            expires_at=expires_at,
            idempotency_key=idempotency_key,
        )

    def save_voucher_qr(self, voucher: Voucher, qr_code_data: str) -> None:
        Voucher.objects.filter(pk=voucher.pk).update(qr_code_data=qr_code_data)
        voucher.qr_code_data = qr_code_data

    def find_voucher_by_idempotency_key(self, merchant_id: UUID, key: str) -> Optional[Voucher]:
        return Voucher.objects.filter(merchant_id=merchant_id, idempotency_key=key).first()

    def get_voucher_code(self, voucher_id: UUID, merchant_id: Optional[UUID] = None) -> Optional[str]:
        vouchers = Voucher.objects.filter(id=voucher_id)
        if merchant_id is not None:
            vouchers = vouchers.filter(merchant_id=merchant_id)
        return vouchers.values_list('code', flat=True).first()

    def mark_redeemed(self, *, code: str, customer_id: UUID, now) -> Optional[Voucher]:
        """
        Transition an open, unexpired voucher to redeemed.

        The guard and the write are one conditional UPDATE, so of several
        concurrent callers exactly one sees a row count of 1.

        Returns:
            The redeemed voucher, or None if the guard did not hold
        """
        updated = (
            Voucher.objects
            .filter(code=code, status=VoucherStatus.OPEN)
            .filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))
            .update(
                status=VoucherStatus.REDEEMED,
                redeemed_by_id=customer_id,
                redeemed_at=now,
            )
        )
        if updated != 1:
            return None
        return Voucher.objects.get(code=code)

    def merchant_vouchers(self, merchant_id: UUID, status: Optional[str] = None) -> QuerySet:
        vouchers = Voucher.objects.filter(merchant_id=merchant_id).select_related('redeemed_by')
        if status:
            vouchers = vouchers.filter(status=status)
        return vouchers.order_by('-created_at')

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def insert_transaction(self, **values) -> Transaction:
        return Transaction.objects.create(**values)

    def find_transaction_by_idempotency_key(self, customer_id: UUID, key: str) -> Optional[Transaction]:
        return Transaction.objects.filter(customer_id=customer_id, idempotency_key=key).first()

    def transactions_for(self, *, customer_id: Optional[UUID] = None,
                         merchant_id: Optional[UUID] = None) -> QuerySet:
        transactions = Transaction.objects.select_related('customer', 'merchant')
        if customer_id is not None:
            transactions = transactions.filter(customer_id=customer_id)
        if merchant_id is not None:
            transactions = transactions.filter(merchant_id=merchant_id)
        return transactions.order_by('-created_at', '-id')

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def create_balance(self, customer_id: UUID) -> Balance:
        balance, _ = Balance.objects.get_or_create(customer_id=customer_id)
        return balance

    def increment_balance(self, customer_id: UUID, amount: int) -> int:
        """Add ``amount`` to the balance row, creating it when absent. Returns the new total."""
        updated = (
            Balance.objects
            .filter(customer_id=customer_id)
            .update(total_points=F('total_points') + amount, updated_at=timezone.now())
        )
        if not updated:
            try:
                with transaction.atomic():
                    Balance.objects.create(customer_id=customer_id, total_points=amount)
            except IntegrityError:
                # Row appeared concurrently; apply the increment to it
                Balance.objects.filter(customer_id=customer_id).update(
                    total_points=F('total_points') + amount,
                    updated_at=timezone.now(),
                )
        return self.balance_of(customer_id)

    def balance_of(self, customer_id: UUID) -> int:
        total = (
            Balance.objects
            .filter(customer_id=customer_id)
            .values_list('total_points', flat=True)
            .first()
        )
        return total or 0

    def earned_and_redeemed_totals(self, customer_id: UUID) -> dict:
        """Sum of earned and redeemed points from the log, for consistency checks."""
        totals = {TransactionKind.EARNED.value: 0, TransactionKind.REDEEMED.value: 0}
        rows = (
            Transaction.objects
            .filter(customer_id=customer_id)
            .values('kind')
            .annotate(total=Sum('points_amount'))
            .order_by()
        )
        for row in rows:
            totals[row['kind']] = row['total'] or 0
        return totals
