"""
Application Use Case — Device Identity Registry

Mints device identities and authenticates bearer tokens.

Core guarantees provided:

- Tokens are never stored in reversible form: only their SHA-256 digest is
  persisted, on a UNIQUE column.
- Authentication is a single indexed lookup by digest and has no side effects.
- mint() never returns the token. Handing the token to the device is the job
  of the pairing flow, which owns the one-time delivery.
"""

import hashlib
import logging
import secrets

from signage.domain.exceptions import Unauthorized
from signage.models import Device

logger = logging.getLogger(__name__)


def hash_secret(value):
    """SHA-256 hex digest used for device tokens and pairing codes."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_secret():
    return secrets.token_urlsafe(32)


def mint(secret, store_id=None, group_id=None):
    """
    Creates a Device holding only the digest of ``secret`` and returns its id.

    Must run inside the caller's transaction so that a failed pairing
    transition also discards the identity.
    """
    device = Device.objects.create(
        token_hash=hash_secret(secret),
        status=Device.Status.ONLINE,
        store_id=store_id,
        group_id=group_id,
    )
    logger.info(
        "Minted device identity: device=%s store=%s group=%s",
        device.id, store_id, group_id,
    )
    return device.id


def authenticate(secret):
    if not secret:
        raise Unauthorized()

    device = Device.objects.filter(token_hash=hash_secret(secret)).first()
    if device is None:
        logger.warning("Rejected device token: no matching identity")
        raise Unauthorized()

    return device
