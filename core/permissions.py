from rest_framework import permissions


class IsAdmin(permissions.BasePermission):
    """Only store administrators"""
    message = 'Admin access required.'

    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.is_admin
        )


class IsAdminOrReadOnly(permissions.BasePermission):
    """Anyone can read, admins can write"""

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.is_admin
        )


class IsOwner(permissions.BasePermission):
    """Object-level: obj.user must be the requesting user"""

    def has_object_permission(self, request, view, obj):
        return getattr(obj, 'user_id', None) == request.user.pk
