"""
Domain-specific exceptions for the loyalty app.

These exceptions represent business rule violations and should be
caught in views and converted to structured error responses.
"""


class LoyaltyServiceError(Exception):
    """Base exception for all loyalty service errors."""
    pass


class VoucherValidationError(LoyaltyServiceError):
    """Raised when input is malformed before it reaches the ledger."""
    pass


class InvalidQRCodeError(VoucherValidationError):
    """Raised when a QR payload is stale, malformed, or of the wrong kind."""
    pass


class NotRedeemableError(LoyaltyServiceError):
    """
    Raised when a voucher cannot be redeemed.

    Covers unknown codes, already redeemed vouchers and expired vouchers
    with one message, so callers cannot tell which case applied.
    """

    default_message = 'Invalid or expired voucher'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class StorageFailureError(LoyaltyServiceError):
    """Raised when the database rejects a ledger operation."""
    pass


class InsufficientPermissionsError(LoyaltyServiceError):
    """Raised when the acting user has the wrong role for an operation."""
    pass


class MerchantNotFoundError(LoyaltyServiceError):
    """Raised when a referenced merchant does not exist."""
    pass


class InsufficientPointsError(LoyaltyServiceError):
    """Raised when a customer asks to spend more points than they hold."""
    pass
