from rest_framework import status, serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from .permissions import IsMerchant, IsCustomer
from .serializers import (
    IssueVoucherInputSerializer,
    VoucherFilterSerializer,
    RedeemInputSerializer,
    TransactionFilterSerializer,
    RedemptionQRInputSerializer,
    VoucherSerializer,
    TransactionSerializer,
)

from apps.loyalty.services import (
    issue_voucher,
    redeem_voucher,
    create_redemption_qr,
    list_merchant_vouchers,
    get_balance,
    transaction_log,
    # Exceptions
    VoucherValidationError,
    NotRedeemableError,
    StorageFailureError,
    InsufficientPermissionsError,
    MerchantNotFoundError,
    InsufficientPointsError,
)


# Response serializers for API documentation
class ErrorResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    error = serializers.CharField()


class VoucherResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    voucher = VoucherSerializer()


class VoucherListResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    vouchers = VoucherSerializer(many=True)


class RedeemResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    points_earned = serializers.IntegerField()
    description = serializers.CharField()
    voucher_code = serializers.CharField()


class BalanceResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    balance = serializers.IntegerField()


class TransactionListResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    transactions = TransactionSerializer(many=True)


class RedemptionQRResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    qr_code_data = serializers.CharField()


def _error(message, http_status):
    return Response({'success': False, 'error': str(message)}, status=http_status)


# =============================================================================
# Vouchers (merchant)
# =============================================================================

@extend_schema(
    methods=['GET'],
    parameters=[
        OpenApiParameter('status', str, description='Filter by status (open, redeemed)'),
    ],
    responses={200: VoucherListResponseSerializer},
    description="List vouchers issued by the current merchant, newest first.",
    tags=['vouchers'],
)
@extend_schema(
    methods=['POST'],
    request=IssueVoucherInputSerializer,
    responses={
        201: VoucherResponseSerializer,
        400: ErrorResponseSerializer,
        403: ErrorResponseSerializer,
        500: ErrorResponseSerializer,
    },
    description="Issue a new voucher with a QR code. Repeating an idempotency key returns the original voucher.",
    tags=['vouchers'],
)
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsMerchant])
def vouchers(request):
    """List or issue vouchers."""
    if request.method == 'GET':
        filter_serializer = VoucherFilterSerializer(data=request.query_params)
        filter_serializer.is_valid(raise_exception=True)

        queryset = list_merchant_vouchers(
            merchant=request.user,
            status=filter_serializer.validated_data.get('status'),
        )
        return Response({
            'success': True,
            'vouchers': VoucherSerializer(queryset, many=True).data,
        })

    serializer = IssueVoucherInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        voucher = issue_voucher(
            merchant=request.user,
            points_value=serializer.validated_data['points_value'],
            description=serializer.validated_data.get('description', ''),
            expires_in_days=serializer.validated_data.get('expires_in_days'),
            idempotency_key=serializer.validated_data.get('idempotency_key') or None,
        )
    except VoucherValidationError as e:
        return _error(e, status.HTTP_400_BAD_REQUEST)
    except InsufficientPermissionsError as e:
        return _error(e, status.HTTP_403_FORBIDDEN)
    except StorageFailureError as e:
        return _error(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({
        'success': True,
        'voucher': VoucherSerializer(voucher).data,
    }, status=status.HTTP_201_CREATED)


# =============================================================================
# Customer operations
# =============================================================================

@extend_schema(
    request=RedeemInputSerializer,
    responses={
        200: RedeemResponseSerializer,
        400: ErrorResponseSerializer,
        403: ErrorResponseSerializer,
        409: ErrorResponseSerializer,
        500: ErrorResponseSerializer,
    },
    description="Redeem a voucher by code or scanned QR data and credit its points.",
    tags=['redemption'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomer])
def redeem(request):
    """Redeem a voucher for the current customer."""
    serializer = RedeemInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = redeem_voucher(
            customer=request.user,
            voucher_code=serializer.validated_data.get('voucher_code') or None,
            qr_data=serializer.validated_data.get('qr_data') or None,
            idempotency_key=serializer.validated_data.get('idempotency_key') or None,
        )
    except VoucherValidationError as e:
        return _error(e, status.HTTP_400_BAD_REQUEST)
    except NotRedeemableError as e:
        return _error(e, status.HTTP_409_CONFLICT)
    except InsufficientPermissionsError as e:
        return _error(e, status.HTTP_403_FORBIDDEN)
    except StorageFailureError as e:
        return _error(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({
        'success': True,
        'points_earned': result['points_earned'],
        'description': result['description'],
        'voucher_code': result['voucher_code'],
    })


@extend_schema(
    responses={200: BalanceResponseSerializer},
    description="Get the current customer's point balance.",
    tags=['redemption'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsCustomer])
def balance(request):
    """Current customer's balance."""
    return Response({
        'success': True,
        'balance': get_balance(customer_id=request.user.id),
    })


@extend_schema(
    request=RedemptionQRInputSerializer,
    responses={
        200: RedemptionQRResponseSerializer,
        400: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
    },
    description="Create a QR code a customer shows to a merchant to spend points.",
    tags=['redemption'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomer])
def redemption_qr(request):
    """Create a redemption QR code."""
    serializer = RedemptionQRInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        qr_code_data = create_redemption_qr(
            customer=request.user,
            merchant_id=serializer.validated_data['merchant_id'],
            points=serializer.validated_data['points'],
        )
    except (VoucherValidationError, InsufficientPointsError) as e:
        return _error(e, status.HTTP_400_BAD_REQUEST)
    except MerchantNotFoundError as e:
        return _error(e, status.HTTP_404_NOT_FOUND)
    except InsufficientPermissionsError as e:
        return _error(e, status.HTTP_403_FORBIDDEN)

    return Response({'success': True, 'qr_code_data': qr_code_data})


# =============================================================================
# Transaction history
# =============================================================================

@extend_schema(
    parameters=[
        OpenApiParameter('kind', str, description='earned, redeemed or all'),
        OpenApiParameter('date_from', str, description='Include from date (YYYY-MM-DD)'),
        OpenApiParameter('date_to', str, description='Include up to date (YYYY-MM-DD)'),
        OpenApiParameter('limit', int, description='Page size (max 100)'),
        OpenApiParameter('offset', int, description='Rows to skip'),
    ],
    responses={200: TransactionListResponseSerializer},
    description=(
        "List transactions for the current user, newest first. Customers see "
        "their own transactions, merchants see those made at their business."
    ),
    tags=['transactions'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transactions(request):
    """Transaction history for the current user."""
    filter_serializer = TransactionFilterSerializer(data=request.query_params)
    filter_serializer.is_valid(raise_exception=True)

    queryset = transaction_log.query(user=request.user, **filter_serializer.validated_data)
    return Response({
        'success': True,
        'transactions': TransactionSerializer(queryset, many=True).data,
    })
