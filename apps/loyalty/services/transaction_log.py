"""
Transaction log service.

Append-only record of point movements. Rows are never updated or deleted;
reads are scoped to the requesting user's side of the transaction.
"""

from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.loyalty.models import Transaction, TransactionKind

from .exceptions import VoucherValidationError
from .repository import LedgerRepository

MAX_PAGE_SIZE = 100


def append(
    *,
    customer_id: UUID,
    merchant_id: UUID,
    points_amount: int,
    kind: str,
    description: str = '',
    voucher_code: Optional[str] = None,
    qr_code_data: str = '',
    idempotency_key: Optional[str] = None,
    repo: LedgerRepository = None
) -> Transaction:
    """
    Insert one immutable transaction.

    Args:
        customer_id: Customer whose points moved
        merchant_id: Merchant on the other side
        points_amount: Magnitude of the movement, always positive
        kind: 'earned' or 'redeemed'

    Raises:
        VoucherValidationError: If amount or kind is invalid
    """
    if isinstance(points_amount, bool) or not isinstance(points_amount, int) or points_amount <= 0:
        raise VoucherValidationError("Transaction amount must be a positive integer")
    if kind not in TransactionKind.values:
        raise VoucherValidationError(f"Unknown transaction kind: {kind}")

    repo = repo or LedgerRepository()
    return repo.insert_transaction(
        customer_id=customer_id,
        merchant_id=merchant_id,
        points_amount=points_amount,
        kind=kind,
        description=description,
        voucher_code=voucher_code,
        qr_code_data=qr_code_data,
        idempotency_key=idempotency_key,
    )


def _day_start(value):
    if isinstance(value, datetime):
        return value
    return timezone.make_aware(datetime.combine(value, time.min))


def _day_end(value):
    if isinstance(value, datetime):
        return value
    return timezone.make_aware(datetime.combine(value, time.max))


def query(
    *,
    user: User,
    kind: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
    repo: LedgerRepository = None
) -> QuerySet:
    """
    Transactions visible to a user, newest first.

    Customers see transactions where they are the customer; merchants see
    those where they are the merchant. Dates are inclusive; a plain date
    covers the whole day.

    Args:
        user: Requesting user
        kind: 'earned' or 'redeemed'; None or 'all' for both
        date_from: Earliest date to include
        date_to: Latest date to include
        limit: Page size, at most 100
        offset: Rows to skip
    """
    repo = repo or LedgerRepository()

    if user.is_merchant:
        transactions = repo.transactions_for(merchant_id=user.id)
    else:
        transactions = repo.transactions_for(customer_id=user.id)

    if kind and kind != 'all':
        transactions = transactions.filter(kind=kind)
    if date_from:
        transactions = transactions.filter(created_at__gte=_day_start(date_from))
    if date_to:
        transactions = transactions.filter(created_at__lte=_day_end(date_to))

    limit = max(0, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    return transactions[offset:offset + limit]
