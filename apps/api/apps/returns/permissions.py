"""
DRF permission classes for returns.

- StoreManager: CAN file, update and restore returns
- Pharmacist: CAN file, update and restore returns
- Cashier: CANNOT access returns
- Superuser: full access, across stores
"""
from rest_framework import permissions

from apps.authz.models import StaffGroups


class IsStoreStaffOrAdmin(permissions.BasePermission):
    """
    Allow superusers, or users in the StoreManager or Pharmacist groups.

    Object access is limited to returns of the user's own store.
    """

    message = 'Access to returns requires StoreManager or Pharmacist role, or admin privileges.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        if user.is_superuser:
            return True

        return user.in_groups(StaffGroups.RETURN_STAFF)

    def has_object_permission(self, request, view, obj):
        user = request.user
        if user.is_superuser:
            return True
        store_id = getattr(obj, 'store_id', None)
        return store_id is not None and store_id == user.store_id
