from rest_framework import permissions


class IsMerchant(permissions.BasePermission):
    """
    Permission: User must have the merchant role.
    """

    message = 'Only merchants can perform this action'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_merchant)


class IsCustomer(permissions.BasePermission):
    """
    Permission: User must have the customer role.
    """

    message = 'Only customers can perform this action'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_customer)
