"""
Voucher ledger service.

Issues vouchers and turns them into balance credits. A voucher moves
``open -> redeemed`` exactly once; the move, the transaction record and
the balance credit commit together or not at all.
"""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction, DatabaseError, IntegrityError
from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User, UserRole
from apps.loyalty.models import Voucher, TransactionKind

from . import balance_accumulator, qr_codec, transaction_log
from .code_generator import new_voucher_code
from .exceptions import (
    VoucherValidationError,
    NotRedeemableError,
    StorageFailureError,
    InsufficientPermissionsError,
    MerchantNotFoundError,
    InsufficientPointsError,
)
from .repository import LedgerRepository

logger = logging.getLogger(__name__)

STORAGE_FAILURE_MESSAGE = "Could not complete the operation, please try again"


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


# =============================================================================
# Issuance
# =============================================================================

def issue_voucher(
    *,
    merchant: User,
    points_value: int,
    description: str = '',
    expires_in_days: Optional[int] = None,
    idempotency_key: Optional[str] = None,
    repo: LedgerRepository = None
) -> Voucher:
    """
    Issue a new open voucher with its QR code.

    Code collisions are retried inside a savepoint up to
    ``settings.VOUCHER_CODE_MAX_RETRIES`` times. Repeating an
    idempotency key returns the voucher issued the first time.

    Args:
        merchant: Issuing merchant
        points_value: Points credited on redemption, must be positive
        description: Free text shown to the customer
        expires_in_days: Days until expiry, or None for no expiry
        idempotency_key: Optional client key to make retries safe

    Returns:
        The issued Voucher, with ``qr_code_data`` populated

    Raises:
        InsufficientPermissionsError: If the user is not a merchant
        VoucherValidationError: If points or expiry are invalid
        StorageFailureError: If the database rejects the write
    """
    if merchant.role != UserRole.MERCHANT:
        raise InsufficientPermissionsError("Only merchants can issue vouchers")
    if not _is_positive_int(points_value):
        raise VoucherValidationError("Points value must be a positive integer")
    if expires_in_days is not None and not _is_positive_int(expires_in_days):
        raise VoucherValidationError("Expiry must be a positive number of days")

    repo = repo or LedgerRepository()

    expires_at = None
    if expires_in_days is not None:
        expires_at = timezone.now() + timedelta(days=expires_in_days)

    max_attempts = getattr(settings, 'VOUCHER_CODE_MAX_RETRIES', 5)

    try:
        if idempotency_key:
            existing = repo.find_voucher_by_idempotency_key(merchant.id, idempotency_key)
            if existing is not None:
                return existing

        with transaction.atomic():
            voucher = None
            for attempt in range(1, max_attempts + 1):
                code = new_voucher_code()
                try:
                    with transaction.atomic():
                        voucher = repo.create_voucher(
                            merchant_id=merchant.id,
                            code=code,
                            points_value=points_value,
                            description=description,
                            expires_at=expires_at,
                            idempotency_key=idempotency_key,
                        )
                    break
                except IntegrityError:
                    if idempotency_key:
                        existing = repo.find_voucher_by_idempotency_key(merchant.id, idempotency_key)
                        if existing is not None:
                            return existing
                    logger.warning("Voucher code collision on attempt %s", attempt)

            if voucher is None:
                raise StorageFailureError("Could not generate a unique voucher code")

            repo.save_voucher_qr(voucher, qr_codec.encode(qr_codec.voucher_payload(voucher)))
    except DatabaseError as exc:
        logger.exception("Voucher issuance failed for merchant %s", merchant.id)
        raise StorageFailureError(STORAGE_FAILURE_MESSAGE) from exc

    logger.info(
        "Issued voucher %s worth %s points for merchant %s",
        voucher.code, voucher.points_value, merchant.id,
    )
    return voucher


def list_merchant_vouchers(*, merchant: User, status: Optional[str] = None,
                           repo: LedgerRepository = None) -> QuerySet:
    """A merchant's vouchers, newest first, optionally filtered by status."""
    if merchant.role != UserRole.MERCHANT:
        raise InsufficientPermissionsError("Only merchants have vouchers")
    repo = repo or LedgerRepository()
    return repo.merchant_vouchers(merchant.id, status=status)


# =============================================================================
# Redemption
# =============================================================================

def _resolve_code(voucher_code, qr_data, repo: LedgerRepository, now) -> str:
    """Return the code to redeem, preferring an explicit code over QR data."""
    if isinstance(voucher_code, str) and voucher_code.strip():
        return voucher_code.strip().upper()

    if not qr_data:
        raise VoucherValidationError("Voucher code or QR data is required")

    payload = qr_codec.validate(
        qr_codec.decode(qr_data),
        expected_kind=qr_codec.VoucherPayload.kind,
        now=now,
    )
    code = repo.get_voucher_code(payload.voucher_id, payload.merchant_id)
    if code is None:
        raise NotRedeemableError()
    return code


def _redemption_result(record) -> dict:
    return {
        'points_earned': record.points_amount,
        'description': record.description,
        'voucher_code': record.voucher_code,
        'transaction': record,
    }


def redeem_voucher(
    *,
    customer: User,
    voucher_code: Optional[str] = None,
    qr_data: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    repo: LedgerRepository = None,
    now=None
) -> dict:
    """
    Redeem a voucher by code or by scanned QR data and credit the customer.

    The voucher transition is a conditional update; of several concurrent
    redemptions of one code exactly one succeeds.

    Args:
        customer: Redeeming customer
        voucher_code: Voucher code, takes precedence over ``qr_data``
        qr_data: Voucher QR as a data URL or scanned JSON text
        idempotency_key: Optional client key; a repeat returns the first result

    Returns:
        Dict with ``points_earned``, ``description``, ``voucher_code`` and
        the ``transaction`` record

    Raises:
        InsufficientPermissionsError: If the user is not a customer
        VoucherValidationError: If neither code nor QR data is usable
        InvalidQRCodeError: If the QR payload is stale or malformed
        NotRedeemableError: If the voucher is unknown, redeemed or expired
        StorageFailureError: If the database rejects the write
    """
    if customer.role != UserRole.CUSTOMER:
        raise InsufficientPermissionsError("Only customers can redeem vouchers")

    repo = repo or LedgerRepository()
    now = now or timezone.now()

    try:
        if idempotency_key:
            prior = repo.find_transaction_by_idempotency_key(customer.id, idempotency_key)
            if prior is not None:
                return _redemption_result(prior)

        code = _resolve_code(voucher_code, qr_data, repo, now)
    except DatabaseError as exc:
        logger.exception("Voucher lookup failed for customer %s", customer.id)
        raise StorageFailureError(STORAGE_FAILURE_MESSAGE) from exc

    try:
        with transaction.atomic():
            voucher = repo.mark_redeemed(code=code, customer_id=customer.id, now=now)
            if voucher is None:
                raise NotRedeemableError()

            record = transaction_log.append(
                customer_id=customer.id,
                merchant_id=voucher.merchant_id,
                points_amount=voucher.points_value,
                kind=TransactionKind.EARNED,
                description=voucher.description,
                voucher_code=voucher.code,
                qr_code_data=qr_data or '',
                idempotency_key=idempotency_key,
                repo=repo,
            )
            balance_accumulator.credit(
                customer_id=customer.id,
                amount=voucher.points_value,
                repo=repo,
            )
    except NotRedeemableError:
        logger.info("Customer %s could not redeem voucher %s", customer.id, code)
        raise
    except IntegrityError as exc:
        if idempotency_key:
            prior = repo.find_transaction_by_idempotency_key(customer.id, idempotency_key)
            if prior is not None:
                return _redemption_result(prior)
        logger.exception("Redemption of %s failed for customer %s", code, customer.id)
        raise StorageFailureError(STORAGE_FAILURE_MESSAGE) from exc
    except DatabaseError as exc:
        logger.exception("Redemption of %s failed for customer %s", code, customer.id)
        raise StorageFailureError(STORAGE_FAILURE_MESSAGE) from exc

    logger.info(
        "Customer %s redeemed voucher %s for %s points",
        customer.id, voucher.code, voucher.points_value,
    )
    return _redemption_result(record)


def create_redemption_qr(
    *,
    customer: User,
    merchant_id: UUID,
    points: int,
    repo: LedgerRepository = None
) -> str:
    """
    Encode a redemption QR a customer shows to a merchant to spend points.

    Nothing is debited here; the QR only carries the request.

    Raises:
        InsufficientPermissionsError: If the user is not a customer
        VoucherValidationError: If points is not a positive integer
        MerchantNotFoundError: If no merchant has ``merchant_id``
        InsufficientPointsError: If points exceed the current balance
    """
    if customer.role != UserRole.CUSTOMER:
        raise InsufficientPermissionsError("Only customers can create redemption codes")
    if not _is_positive_int(points):
        raise VoucherValidationError("Points must be a positive integer")

    if not User.objects.filter(id=merchant_id, role=UserRole.MERCHANT, is_active=True).exists():
        raise MerchantNotFoundError(f"Merchant with ID {merchant_id} not found")

    balance = balance_accumulator.get_balance(customer_id=customer.id, repo=repo)
    if points > balance:
        raise InsufficientPointsError(
            f"Cannot redeem {points} points with a balance of {balance}"
        )

    return qr_codec.encode(qr_codec.redemption_payload(customer.id, merchant_id, points))
