"""
Loyalty app services layer.

Services contain the ledger rules and orchestrate the repository.
Every state-changing operation runs in a database transaction.
"""

from .exceptions import (
    LoyaltyServiceError,
    VoucherValidationError,
    InvalidQRCodeError,
    NotRedeemableError,
    StorageFailureError,
    InsufficientPermissionsError,
    MerchantNotFoundError,
    InsufficientPointsError,
)

from .repository import LedgerRepository

from .voucher_ledger import (
    issue_voucher,
    redeem_voucher,
    create_redemption_qr,
    list_merchant_vouchers,
)

from .balance_accumulator import (
    open_balance,
    credit,
    get_balance,
    is_consistent,
)

from . import transaction_log


__all__ = [
    # Exceptions
    'LoyaltyServiceError',
    'VoucherValidationError',
    'InvalidQRCodeError',
    'NotRedeemableError',
    'StorageFailureError',
    'InsufficientPermissionsError',
    'MerchantNotFoundError',
    'InsufficientPointsError',
    # Storage
    'LedgerRepository',
    # Services
    'issue_voucher',
    'redeem_voucher',
    'create_redemption_qr',
    'list_merchant_vouchers',
    'open_balance',
    'credit',
    'get_balance',
    'is_consistent',
    'transaction_log',
]
