"""
Service layer unit tests for loyalty app.

Tests cover:
- Voucher issuance and redemption rules
- Atomicity of redemption under storage failure
- Balance and transaction log consistency
- Idempotent retries
"""

import pytest
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

from django.db import DatabaseError
from django.utils import timezone

from apps.accounts.models import User
from apps.loyalty.models import Voucher, VoucherStatus, Transaction, TransactionKind, Balance
from apps.loyalty.services import (
    LedgerRepository,
    issue_voucher,
    redeem_voucher,
    create_redemption_qr,
    list_merchant_vouchers,
    credit,
    get_balance,
    is_consistent,
    transaction_log,
    qr_codec,
)
from apps.loyalty.services.exceptions import (
    VoucherValidationError,
    InvalidQRCodeError,
    NotRedeemableError,
    StorageFailureError,
    InsufficientPermissionsError,
    MerchantNotFoundError,
    InsufficientPointsError,
)


class FailingBalanceRepository(LedgerRepository):
    """Repository whose balance write fails after the voucher update."""

    def increment_balance(self, customer_id, amount):
        raise DatabaseError('disk I/O error')


class FailingLookupRepository(LedgerRepository):
    """Repository whose reads fail before any write happens."""

    def find_transaction_by_idempotency_key(self, customer_id, key):
        raise DatabaseError('database is locked')

    def get_voucher_code(self, voucher_id, merchant_id=None):
        raise DatabaseError('database is locked')


# =============================================================================
# Issuance
# =============================================================================

@pytest.mark.django_db
class TestIssueVoucher:
    """Tests for voucher_ledger.issue_voucher"""

    def test_issue_success(self, merchant):
        voucher = issue_voucher(merchant=merchant, points_value=50, description='Free muffin')

        assert voucher.status == VoucherStatus.OPEN
        assert voucher.points_value == 50
        assert voucher.code.startswith('VCH')
        assert voucher.expires_at is None
        assert voucher.merchant == merchant

        stored = Voucher.objects.get(id=voucher.id)
        assert stored.qr_code_data.startswith('data:image/png;base64,')

    def test_qr_embeds_voucher(self, merchant):
        voucher = issue_voucher(merchant=merchant, points_value=75)

        payload = qr_codec.decode(voucher.qr_code_data)

        assert payload.voucher_id == str(voucher.id)
        assert payload.merchant_id == str(merchant.id)
        assert payload.points == 75

    def test_expiry_is_absolute(self, merchant):
        before = timezone.now()
        voucher = issue_voucher(merchant=merchant, points_value=10, expires_in_days=7)

        assert before + timedelta(days=7) <= voucher.expires_at
        assert voucher.expires_at <= timezone.now() + timedelta(days=7)

    def test_codes_are_unique(self, merchant):
        codes = {issue_voucher(merchant=merchant, points_value=1).code for _ in range(50)}

        assert len(codes) == 50

    @pytest.mark.parametrize('points', [0, -10, 2.5, None, True])
    def test_invalid_points(self, merchant, points):
        with pytest.raises(VoucherValidationError):
            issue_voucher(merchant=merchant, points_value=points)

        assert not Voucher.objects.exists()

    @pytest.mark.parametrize('days', [0, -1])
    def test_invalid_expiry(self, merchant, days):
        with pytest.raises(VoucherValidationError):
            issue_voucher(merchant=merchant, points_value=10, expires_in_days=days)

    def test_customer_cannot_issue(self, customer):
        with pytest.raises(InsufficientPermissionsError):
            issue_voucher(merchant=customer, points_value=10)

    def test_idempotency_key_returns_original(self, merchant):
        first = issue_voucher(merchant=merchant, points_value=10, idempotency_key='req-1')
        second = issue_voucher(merchant=merchant, points_value=10, idempotency_key='req-1')

        assert first.id == second.id
        assert Voucher.objects.filter(merchant=merchant).count() == 1

    def test_idempotency_key_is_per_merchant(self, merchant, other_merchant):
        first = issue_voucher(merchant=merchant, points_value=10, idempotency_key='req-1')
        second = issue_voucher(merchant=other_merchant, points_value=10, idempotency_key='req-1')

        assert first.id != second.id

    def test_code_collision_is_retried(self, merchant, voucher):
        with patch(
            'apps.loyalty.services.voucher_ledger.new_voucher_code',
            side_effect=[voucher.code, 'VCHRETRY0001'],
        ):
            issued = issue_voucher(merchant=merchant, points_value=20)

        assert issued.code == 'VCHRETRY0001'

    def test_persistent_collision_fails(self, merchant, voucher, settings):
        settings.VOUCHER_CODE_MAX_RETRIES = 3

        with patch(
            'apps.loyalty.services.voucher_ledger.new_voucher_code',
            return_value=voucher.code,
        ):
            with pytest.raises(StorageFailureError):
                issue_voucher(merchant=merchant, points_value=20)

        assert Voucher.objects.count() == 1

    def test_list_merchant_vouchers(self, merchant, other_merchant, customer):
        first = issue_voucher(merchant=merchant, points_value=10)
        second = issue_voucher(merchant=merchant, points_value=20)
        issue_voucher(merchant=other_merchant, points_value=30)
        redeem_voucher(customer=customer, voucher_code=first.code)

        all_vouchers = list(list_merchant_vouchers(merchant=merchant))
        open_vouchers = list(list_merchant_vouchers(merchant=merchant, status='open'))

        assert {v.id for v in all_vouchers} == {first.id, second.id}
        assert [v.id for v in open_vouchers] == [second.id]


# =============================================================================
# Redemption
# =============================================================================

@pytest.mark.django_db
class TestRedeemVoucher:
    """Tests for voucher_ledger.redeem_voucher"""

    def test_redeem_by_code(self, customer, merchant):
        voucher = issue_voucher(merchant=merchant, points_value=100, description='Free coffee')

        result = redeem_voucher(customer=customer, voucher_code=voucher.code)

        assert result['points_earned'] == 100
        assert result['description'] == 'Free coffee'
        assert result['voucher_code'] == voucher.code

        voucher.refresh_from_db()
        assert voucher.status == VoucherStatus.REDEEMED
        assert voucher.redeemed_by == customer
        assert voucher.redeemed_at is not None

        record = Transaction.objects.get(customer=customer)
        assert record == result['transaction']
        assert record.merchant == merchant
        assert record.kind == TransactionKind.EARNED
        assert record.points_amount == 100
        assert record.voucher_code == voucher.code

        assert get_balance(customer_id=customer.id) == 100

    def test_code_is_case_insensitive(self, customer, voucher):
        result = redeem_voucher(customer=customer, voucher_code=voucher.code.lower())

        assert result['points_earned'] == 100

    def test_second_redemption_fails(self, customer, other_customer, voucher):
        redeem_voucher(customer=customer, voucher_code=voucher.code)

        with pytest.raises(NotRedeemableError, match='Invalid or expired voucher'):
            redeem_voucher(customer=other_customer, voucher_code=voucher.code)

        assert get_balance(customer_id=other_customer.id) == 0
        assert Transaction.objects.count() == 1

    def test_unknown_code(self, customer):
        with pytest.raises(NotRedeemableError, match='Invalid or expired voucher'):
            redeem_voucher(customer=customer, voucher_code='VCHDOESNOTEXIST')

    def test_expired_voucher(self, customer, merchant):
        voucher = issue_voucher(merchant=merchant, points_value=10, expires_in_days=1)

        with pytest.raises(NotRedeemableError, match='Invalid or expired voucher'):
            redeem_voucher(
                customer=customer,
                voucher_code=voucher.code,
                now=timezone.now() + timedelta(days=2),
            )

        voucher.refresh_from_db()
        assert voucher.status == VoucherStatus.OPEN
        assert get_balance(customer_id=customer.id) == 0

    def test_expired_voucher_in_database(self, customer, merchant):
        voucher = issue_voucher(merchant=merchant, points_value=10, expires_in_days=1)
        Voucher.objects.filter(id=voucher.id).update(expires_at=timezone.now() - timedelta(minutes=1))

        with pytest.raises(NotRedeemableError):
            redeem_voucher(customer=customer, voucher_code=voucher.code)

    def test_redeem_by_qr(self, customer, voucher):
        result = redeem_voucher(customer=customer, qr_data=voucher.qr_code_data)

        assert result['voucher_code'] == voucher.code
        assert get_balance(customer_id=customer.id) == 100
        assert Transaction.objects.get(customer=customer).qr_code_data == voucher.qr_code_data

    def test_code_takes_precedence_over_qr(self, customer, voucher):
        result = redeem_voucher(customer=customer, voucher_code=voucher.code, qr_data='garbage')

        assert result['points_earned'] == 100

    def test_stale_qr_rejected(self, customer, voucher):
        with pytest.raises(InvalidQRCodeError, match='QR code has expired'):
            redeem_voucher(
                customer=customer,
                qr_data=voucher.qr_code_data,
                now=timezone.now() + timedelta(hours=25),
            )

        voucher.refresh_from_db()
        assert voucher.status == VoucherStatus.OPEN

    def test_unreadable_qr_rejected(self, customer):
        with pytest.raises(InvalidQRCodeError, match='Invalid QR code'):
            redeem_voucher(customer=customer, qr_data='not a qr code')

    def test_redemption_qr_is_not_a_voucher(self, customer, merchant):
        qr_data = qr_codec.encode(qr_codec.redemption_payload(customer.id, merchant.id, 10))

        with pytest.raises(InvalidQRCodeError):
            redeem_voucher(customer=customer, qr_data=qr_data)

    def test_qr_for_unknown_voucher(self, customer, merchant):
        payload = qr_codec.VoucherPayload(
            voucher_id=str(uuid4()),
            points=10,
            merchant_id=str(merchant.id),
            timestamp=qr_codec.now_millis(),
        )

        with pytest.raises(NotRedeemableError, match='Invalid or expired voucher'):
            redeem_voucher(customer=customer, qr_data=qr_codec.encode(payload))

    def test_qr_with_wrong_merchant(self, customer, voucher, other_merchant):
        payload = qr_codec.VoucherPayload(
            voucher_id=str(voucher.id),
            points=voucher.points_value,
            merchant_id=str(other_merchant.id),
            timestamp=qr_codec.now_millis(),
        )

        with pytest.raises(NotRedeemableError):
            redeem_voucher(customer=customer, qr_data=qr_codec.encode(payload))

    def test_neither_code_nor_qr(self, customer):
        with pytest.raises(VoucherValidationError):
            redeem_voucher(customer=customer)

    def test_merchant_cannot_redeem(self, merchant, voucher):
        with pytest.raises(InsufficientPermissionsError):
            redeem_voucher(customer=merchant, voucher_code=voucher.code)

        voucher.refresh_from_db()
        assert voucher.status == VoucherStatus.OPEN

    def test_idempotent_retry(self, customer, voucher):
        first = redeem_voucher(customer=customer, voucher_code=voucher.code, idempotency_key='redeem-1')
        second = redeem_voucher(customer=customer, voucher_code=voucher.code, idempotency_key='redeem-1')

        assert first['transaction'].id == second['transaction'].id
        assert second['points_earned'] == 100
        assert Transaction.objects.filter(customer=customer).count() == 1
        assert get_balance(customer_id=customer.id) == 100

    def test_storage_failure_rolls_back(self, customer, voucher):
        with pytest.raises(StorageFailureError) as exc_info:
            redeem_voucher(
                customer=customer,
                voucher_code=voucher.code,
                repo=FailingBalanceRepository(),
            )

        assert isinstance(exc_info.value.__cause__, DatabaseError)

        voucher.refresh_from_db()
        assert voucher.status == VoucherStatus.OPEN
        assert voucher.redeemed_by is None
        assert not Transaction.objects.exists()
        assert get_balance(customer_id=customer.id) == 0

        # The voucher is still redeemable once storage recovers
        result = redeem_voucher(customer=customer, voucher_code=voucher.code)
        assert result['points_earned'] == 100

    def test_lookup_failure_by_idempotency_key(self, customer, voucher):
        with pytest.raises(StorageFailureError) as exc_info:
            redeem_voucher(
                customer=customer,
                voucher_code=voucher.code,
                idempotency_key='redeem-1',
                repo=FailingLookupRepository(),
            )

        assert isinstance(exc_info.value.__cause__, DatabaseError)
        voucher.refresh_from_db()
        assert voucher.status == VoucherStatus.OPEN

    def test_lookup_failure_resolving_qr(self, customer, voucher):
        with pytest.raises(StorageFailureError):
            redeem_voucher(
                customer=customer,
                qr_data=voucher.qr_code_data,
                repo=FailingLookupRepository(),
            )

        assert get_balance(customer_id=customer.id) == 0

    def test_end_to_end(self, customer, merchant):
        """Register, issue, redeem: balance and log agree."""
        voucher = issue_voucher(merchant=merchant, points_value=100)

        redeem_voucher(customer=customer, voucher_code=voucher.code)

        assert get_balance(customer_id=customer.id) == 100
        records = list(transaction_log.query(user=customer))
        assert len(records) == 1
        assert records[0].kind == TransactionKind.EARNED
        assert records[0].points_amount == 100
        assert records[0].voucher_code == voucher.code

    def test_balance_matches_log(self, customer, merchant, other_merchant):
        for points, issuer in [(10, merchant), (25, other_merchant), (65, merchant)]:
            voucher = issue_voucher(merchant=issuer, points_value=points)
            redeem_voucher(customer=customer, voucher_code=voucher.code)

        assert get_balance(customer_id=customer.id) == 100
        assert is_consistent(customer_id=customer.id)


# =============================================================================
# Model guards
# =============================================================================

@pytest.mark.django_db
class TestModelGuards:

    def test_transaction_cannot_be_updated(self, customer, voucher):
        record = redeem_voucher(customer=customer, voucher_code=voucher.code)['transaction']
        record.points_amount = 1000

        with pytest.raises(ValueError):
            record.save()

        record.refresh_from_db()
        assert record.points_amount == 100

    def test_transaction_cannot_be_deleted(self, customer, voucher):
        record = redeem_voucher(customer=customer, voucher_code=voucher.code)['transaction']

        with pytest.raises(ValueError):
            record.delete()

        assert Transaction.objects.filter(id=record.id).exists()

    def test_redeemed_voucher_cannot_be_reopened(self, customer, voucher):
        redeem_voucher(customer=customer, voucher_code=voucher.code)
        voucher.refresh_from_db()
        voucher.status = VoucherStatus.OPEN

        with pytest.raises(ValueError):
            voucher.save()

    def test_is_redeemable(self, customer, merchant):
        voucher = issue_voucher(merchant=merchant, points_value=10, expires_in_days=1)

        assert voucher.is_redeemable()
        assert not voucher.is_redeemable(now=timezone.now() + timedelta(days=2))

        redeem_voucher(customer=customer, voucher_code=voucher.code)
        voucher.refresh_from_db()
        assert not voucher.is_redeemable()

    def test_open_voucher_can_be_edited(self, voucher):
        voucher.description = 'Updated'
        voucher.save()

        voucher.refresh_from_db()
        assert voucher.description == 'Updated'

    def test_signed_amount(self, customer, merchant):
        earned = transaction_log.append(
            customer_id=customer.id, merchant_id=merchant.id,
            points_amount=30, kind=TransactionKind.EARNED,
        )
        spent = transaction_log.append(
            customer_id=customer.id, merchant_id=merchant.id,
            points_amount=10, kind=TransactionKind.REDEEMED,
        )

        assert earned.signed_amount == 30
        assert spent.signed_amount == -10


# =============================================================================
# Balance accumulator
# =============================================================================

@pytest.mark.django_db
class TestBalance:

    def test_credit_accumulates(self, customer):
        assert credit(customer_id=customer.id, amount=40) == 40
        assert credit(customer_id=customer.id, amount=60) == 100
        assert get_balance(customer_id=customer.id) == 100

    def test_credit_creates_missing_row(self, db):
        user = User.objects.create_user(email='nobalance@example.com', password='x', name='No Balance')
        assert not Balance.objects.filter(customer=user).exists()

        assert credit(customer_id=user.id, amount=15) == 15
        assert Balance.objects.get(customer=user).total_points == 15

    @pytest.mark.parametrize('amount', [0, -5, 1.5, '10', None, True])
    def test_credit_rejects_invalid_amount(self, customer, amount):
        with pytest.raises(VoucherValidationError):
            credit(customer_id=customer.id, amount=amount)

        assert get_balance(customer_id=customer.id) == 0

    def test_balance_without_row_is_zero(self, db):
        assert get_balance(customer_id=uuid4()) == 0

    def test_inconsistency_detected(self, customer):
        Balance.objects.filter(customer=customer).update(total_points=5)

        assert not is_consistent(customer_id=customer.id)


# =============================================================================
# Transaction log
# =============================================================================

@pytest.mark.django_db
class TestTransactionLog:

    @pytest.fixture
    def history(self, customer, other_customer, merchant, other_merchant):
        """Four redemptions split across two customers and two merchants."""
        for buyer, issuer, points in [
            (customer, merchant, 10),
            (customer, other_merchant, 20),
            (other_customer, merchant, 30),
            (customer, merchant, 40),
        ]:
            voucher = issue_voucher(merchant=issuer, points_value=points)
            redeem_voucher(customer=buyer, voucher_code=voucher.code)

    def test_customer_sees_own_transactions(self, history, customer):
        records = list(transaction_log.query(user=customer))

        assert [r.points_amount for r in records] == [40, 20, 10]
        assert all(r.customer_id == customer.id for r in records)

    def test_merchant_sees_own_transactions(self, history, merchant):
        records = list(transaction_log.query(user=merchant))

        assert [r.points_amount for r in records] == [40, 30, 10]

    def test_kind_filter(self, history, customer, merchant):
        transaction_log.append(
            customer_id=customer.id, merchant_id=merchant.id,
            points_amount=5, kind=TransactionKind.REDEEMED,
        )

        redeemed = list(transaction_log.query(user=customer, kind='redeemed'))
        earned = list(transaction_log.query(user=customer, kind='earned'))
        everything = list(transaction_log.query(user=customer, kind='all'))

        assert [r.points_amount for r in redeemed] == [5]
        assert len(earned) == 3
        assert len(everything) == 4

    def test_date_range_is_inclusive(self, history, customer):
        today = timezone.localdate()

        assert len(transaction_log.query(user=customer, date_from=today, date_to=today)) == 3
        assert len(transaction_log.query(user=customer, date_from=today + timedelta(days=1))) == 0
        assert len(transaction_log.query(user=customer, date_to=today - timedelta(days=1))) == 0

    def test_pagination(self, history, customer):
        first_page = list(transaction_log.query(user=customer, limit=2))
        second_page = list(transaction_log.query(user=customer, limit=2, offset=2))

        assert [r.points_amount for r in first_page] == [40, 20]
        assert [r.points_amount for r in second_page] == [10]

    def test_limit_is_capped(self, history, customer):
        assert len(transaction_log.query(user=customer, limit=1000)) == 3

    def test_append_rejects_bad_input(self, customer, merchant):
        with pytest.raises(VoucherValidationError):
            transaction_log.append(
                customer_id=customer.id, merchant_id=merchant.id,
                points_amount=0, kind=TransactionKind.EARNED,
            )
        with pytest.raises(VoucherValidationError):
            transaction_log.append(
                customer_id=customer.id, merchant_id=merchant.id,
                points_amount=5, kind='refund',
            )


# =============================================================================
# Redemption QR
# =============================================================================

@pytest.mark.django_db
class TestCreateRedemptionQR:

    def test_create_success(self, customer, merchant):
        credit(customer_id=customer.id, amount=50)

        data = create_redemption_qr(customer=customer, merchant_id=merchant.id, points=30)
        payload = qr_codec.validate(qr_codec.decode(data), expected_kind='redemption')

        assert payload.customer_id == str(customer.id)
        assert payload.merchant_id == str(merchant.id)
        assert payload.points == 30

    def test_nothing_is_debited(self, customer, merchant):
        credit(customer_id=customer.id, amount=50)

        create_redemption_qr(customer=customer, merchant_id=merchant.id, points=50)

        assert get_balance(customer_id=customer.id) == 50
        assert not Transaction.objects.exists()

    def test_exceeds_balance(self, customer, merchant):
        credit(customer_id=customer.id, amount=10)

        with pytest.raises(InsufficientPointsError):
            create_redemption_qr(customer=customer, merchant_id=merchant.id, points=11)

    def test_unknown_merchant(self, customer):
        with pytest.raises(MerchantNotFoundError):
            create_redemption_qr(customer=customer, merchant_id=uuid4(), points=1)

    def test_customer_is_not_a_merchant(self, customer, other_customer):
        with pytest.raises(MerchantNotFoundError):
            create_redemption_qr(customer=customer, merchant_id=other_customer.id, points=1)

    def test_invalid_points(self, customer, merchant):
        with pytest.raises(VoucherValidationError):
            create_redemption_qr(customer=customer, merchant_id=merchant.id, points=0)
