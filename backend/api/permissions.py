from rest_framework import permissions


class IsStaffOrReadOnly(permissions.BasePermission):
    """
    Anyone may read the farm map and pasture records; only staff members
    may change them.
    """

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True

        # Write permissions are only allowed to staff members.
        return bool(request.user and request.user.is_authenticated and request.user.is_staff)
