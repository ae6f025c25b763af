"""
Transport authentication for device and operator requests.

Devices present their bearer token in the Authorization header; the token is
exchanged for a Device through the identity registry before any device-scoped
view runs. Operators present the shared ADMIN_TOKEN in X-Admin-Token.
"""

import hmac

from django.conf import settings
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header
from rest_framework.permissions import BasePermission

from signage.application import identity
from signage.domain.exceptions import Unauthorized


class DeviceTokenAuthentication(BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request):
        header = get_authorization_header(request).split()
        if not header or header[0].decode("latin-1") != self.keyword or len(header) != 2:
            raise exceptions.AuthenticationFailed("Unauthorized")

        try:
            token = header[1].decode("utf-8")
        except UnicodeError:
            raise exceptions.AuthenticationFailed("Unauthorized")

        try:
            device = identity.authenticate(token)
        except Unauthorized:
            raise exceptions.AuthenticationFailed("Unauthorized")

        return device, token

    def authenticate_header(self, request):
        return self.keyword


class IsDevice(BasePermission):
    def has_permission(self, request, view):
        return request.user is not None


class HasAdminToken(BasePermission):
    """Grants access when X-Admin-Token matches the configured ADMIN_TOKEN."""

    message = "Forbidden"

    def has_permission(self, request, view):
        expected = settings.ADMIN_TOKEN
        presented = request.headers.get("X-Admin-Token", "")
        if not expected or not presented:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
