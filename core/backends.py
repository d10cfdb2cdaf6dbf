"""
Authentication backend that signs users in with their email address.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """
    Resolve the login identifier as a case-insensitive email address.

    Accepts the identifier either as ``email`` or, for compatibility with
    Django's admin login form, as ``username``. Inactive accounts are
    rejected the same way ModelBackend rejects them.
    """

    def authenticate(self, request, username=None, password=None, email=None, **kwargs):
        identifier = email or username
        if not identifier or password is None:
            return None

        user = User.objects.filter(email__iexact=identifier.strip()).first()
        if user is None:
            # Hash anyway so missing accounts take as long as wrong passwords
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None
