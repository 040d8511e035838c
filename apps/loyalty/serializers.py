from rest_framework import serializers
from .models import Voucher, VoucherStatus, Transaction, TransactionKind
from apps.accounts.serializers import UserPublicSerializer


# =============================================================================
# Input Serializers
# =============================================================================

class IssueVoucherInputSerializer(serializers.Serializer):
    """
    Validate input for issuing a voucher.

    Fields:
        points_value (int): Points credited on redemption
        description (str): Optional text shown to the customer
        expires_in_days (int): Optional days until expiry
        idempotency_key (str): Optional client key for safe retries
    """

    points_value = serializers.IntegerField(min_value=1)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    expires_in_days = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    idempotency_key = serializers.CharField(max_length=64, required=False, allow_blank=True)


class VoucherFilterSerializer(serializers.Serializer):
    """Validate query parameters for listing a merchant's vouchers."""

    status = serializers.ChoiceField(choices=VoucherStatus.choices, required=False)


class RedeemInputSerializer(serializers.Serializer):
    """
    Validate input for redeeming a voucher.

    Either ``voucher_code`` or ``qr_data`` is required; the code wins
    when both are present.
    """

    voucher_code = serializers.CharField(max_length=50, required=False, allow_blank=True)
    qr_data = serializers.CharField(required=False, allow_blank=True)
    idempotency_key = serializers.CharField(max_length=64, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs.get('voucher_code', '').strip() and not attrs.get('qr_data', '').strip():
            raise serializers.ValidationError(
                'Either voucher_code or qr_data is required'
            )
        return attrs


class TransactionFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for transaction history.

    Query Parameters:
        kind (str): 'earned', 'redeemed' or 'all'
        date_from (date): Include transactions from this date
        date_to (date): Include transactions up to this date
        limit (int): Page size, 1-100
        offset (int): Rows to skip
    """

    kind = serializers.ChoiceField(
        choices=[('all', 'All')] + list(TransactionKind.choices),
        required=False,
        default='all'
    )
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False, default=50)
    offset = serializers.IntegerField(min_value=0, required=False, default=0)

    def validate(self, attrs):
        """Validate date range."""
        date_from = attrs.get('date_from')
        date_to = attrs.get('date_to')

        if date_from and date_to:
            if date_from > date_to:
                raise serializers.ValidationError({
                    'date_to': 'End date must be after start date'
                })

        return attrs


class RedemptionQRInputSerializer(serializers.Serializer):
    """Validate input for creating a redemption QR code."""

    merchant_id = serializers.UUIDField()
    points = serializers.IntegerField(min_value=1)


# =============================================================================
# Output Serializers
# =============================================================================

class VoucherSerializer(serializers.ModelSerializer):
    """Voucher as shown to its issuing merchant."""

    redeemed_by = UserPublicSerializer(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    is_redeemable = serializers.SerializerMethodField()

    class Meta:
        model = Voucher
        fields = [
            'id',
            'code',
            'points_value',
            'description',
            'expires_at',
            'is_expired',
            'is_redeemable',
            'status',
            'redeemed_by',
            'redeemed_at',
            'qr_code_data',
            'created_at',
        ]
        read_only_fields = fields

    def get_is_redeemable(self, obj) -> bool:
        return obj.is_redeemable()


class TransactionSerializer(serializers.ModelSerializer):
    """Transaction with both parties' public details."""

    customer = UserPublicSerializer(read_only=True)
    merchant = UserPublicSerializer(read_only=True)
    signed_amount = serializers.IntegerField(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id',
            'customer',
            'merchant',
            'points_amount',
            'signed_amount',
            'kind',
            'description',
            'voucher_code',
            'created_at',
        ]
        read_only_fields = fields
