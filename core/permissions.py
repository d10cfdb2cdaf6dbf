"""
Permission classes for the HiramKo marketplace API.
"""

from rest_framework import permissions


class IsStaffUser(permissions.BasePermission):
    """
    Allows only staff users (administrators) to access the endpoint.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsStaffUser]
    """

    message = 'You do not have permission to perform this action. Staff privileges required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_staff


class IsRider(permissions.BasePermission):
    """Allows only accounts flagged as riders to browse and accept delivery jobs."""

    message = 'Only rider accounts can access delivery jobs.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return bool(getattr(request.user, 'is_rider', False))


class IsItemOwner(permissions.BasePermission):
    """Object-level permission: only the owner of an item may modify it."""

    message = 'You can only modify your own listings.'

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.owner_id == request.user.id


class CanActOnRental(permissions.BasePermission):
    """
    Role-based authorization for rental lifecycle actions.

    Authorization rules:
    - Renter can: submit payment proof, cancel, start checkout, initiate return
    - Owner can: confirm payment, decline, hand over, confirm return
    - Either party can: view the rental, file a dispute
    - Nobody else can act on the rental (staff resolve disputes elsewhere)

    The view declares which action it performs through ``rental_action``.
    """

    ACTION_ROLES = {
        'view': 'participant',
        'payment-proof': 'renter',
        'checkout': 'renter',
        'cancel': 'renter',
        'initiate-return': 'renter',
        'confirm-payment': 'owner',
        'decline': 'owner',
        'handover': 'owner',
        'confirm-return': 'owner',
        'dispute': 'participant',
    }

    message = 'You do not have permission to act on this rental.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj):
        is_renter = obj.renter_id == request.user.id
        is_owner = obj.owner_id == request.user.id

        if not is_renter and not is_owner:
            self.message = 'You do not have permission to access this rental.'
            return False

        role = self.ACTION_ROLES.get(getattr(view, 'rental_action', 'view'), 'participant')
        if role == 'renter' and not is_renter:
            self.message = 'Only the renter can perform this action.'
            return False
        if role == 'owner' and not is_owner:
            self.message = 'Only the item owner can perform this action.'
            return False
        return True


class IsConversationParticipant(permissions.BasePermission):
    """Object-level permission: only participants may read or post to a conversation."""

    message = 'You are not a participant in this conversation.'

    def has_object_permission(self, request, view, obj):
        return obj.has_participant(request.user)
