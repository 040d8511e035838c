from django.contrib import admin
from django.utils.html import format_html
from .models import Voucher, VoucherStatus, Transaction, TransactionKind, Balance


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    """
    Admin interface for vouchers.

    Redemption state is set by the ledger service only, so it is read-only here.
    """

    list_display = [
        'code',
        'merchant',
        'points_value',
        'status_badge',
        'redeemed_by',
        'expires_at',
        'created_at',
    ]

    list_filter = [
        'status',
        'created_at',
        'expires_at',
    ]

    search_fields = [
        'code',
        'merchant__email',
        'merchant__business_name',
        'redeemed_by__email',
    ]

    ordering = ['-created_at']
    date_hierarchy = 'created_at'
    list_select_related = ['merchant', 'redeemed_by']

    readonly_fields = [
        'code',
        'status',
        'redeemed_by',
        'redeemed_at',
        'qr_code_data',
        'idempotency_key',
        'created_at',
    ]

    def status_badge(self, obj):
        """Display voucher status as colored badge."""
        colors = {
            VoucherStatus.OPEN: ('#6B8E5E', 'white'),
            VoucherStatus.REDEEMED: ('#A47449', 'white'),
        }
        bg, fg = colors.get(obj.status, ('#ccc', '#666'))
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, obj.get_status_display()
        )
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Read-only view of the transaction log."""

    list_display = [
        'created_at',
        'customer',
        'merchant',
        'kind_badge',
        'points_amount',
        'voucher_code',
    ]

    list_filter = [
        'kind',
        'created_at',
    ]

    search_fields = [
        'customer__email',
        'merchant__email',
        'voucher_code',
    ]

    ordering = ['-created_at']
    date_hierarchy = 'created_at'
    list_select_related = ['customer', 'merchant']

    def kind_badge(self, obj):
        color = '#6B8E5E' if obj.kind == TransactionKind.EARNED else '#B85C5C'
        return format_html(
            '<span style="background: {}; color: white; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            color, obj.get_kind_display()
        )
    kind_badge.short_description = 'Kind'
    kind_badge.admin_order_field = 'kind'

    def has_add_permission(self, request):
        """Transactions are written by the ledger service only."""
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Balance)
class BalanceAdmin(admin.ModelAdmin):
    list_display = ['customer', 'total_points', 'updated_at']
    search_fields = ['customer__email', 'customer__name']
    readonly_fields = ['customer', 'total_points', 'updated_at']
    list_select_related = ['customer']

    def has_add_permission(self, request):
        return False
