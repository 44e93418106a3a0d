# bookings/permissions.py
from rest_framework.permissions import BasePermission


class _RolePermission(BasePermission):
    role = None

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == self.role


class IsCustomer(_RolePermission):
    """Allows access only to users with role == 'customer'."""
    role = "customer"
    message = "Only customers can create bookings"


class IsProvider(_RolePermission):
    """Allows access only to users with role == 'provider'."""
    role = "provider"
    message = "Only providers can respond to bookings"


class IsMarketplaceAdmin(BasePermission):
    """Allows access to role == 'admin' users and superusers."""
    message = "Admin only"

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "is_marketplace_admin", False)
