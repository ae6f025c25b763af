"""
Application Use Case — Pairing Session State Machine

Converts a human-entered pairing code into a durable device identity and a
one-time bearer token.

States and transitions:

    PENDING --claim--> CLAIMED --acknowledge--> COMPLETED
    PENDING --(poll or claim observes expiry)--> EXPIRED

EXPIRED and COMPLETED are terminal.

Core guarantees provided:

- Atomicity: every transition executes inside a transaction.atomic() block.
- Row-level locking: claim reads the session with select_for_update(), so two
  concurrent claims of the same code serialize and exactly one mints a device.
- One-time delivery: the bearer token lives on the session only while it is
  CLAIMED; acknowledgment clears it in the same UPDATE that sets COMPLETED.
- Reactive expiry: there is no sweeper. Whichever poll or claim first observes
  an expired PENDING session persists the EXPIRED transition.
- Rate limiting: a poll arriving before last_polled_at + poll interval is
  refused with RateLimited and does not move last_polled_at.

State-machine refusals that must still persist a transition (expiry observed
during a claim or a rate-limited poll) are raised after the transaction
commits, so the transition survives the error.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from signage.application import identity
from signage.application.storage import atomic_operation, is_storable_json, is_storable_text
from signage.domain.exceptions import (
    AlreadyClaimed,
    Expired,
    InvalidState,
    NotFound,
    RateLimited,
    ValidationError,
)
from signage.models import Device, PairingAuditLog, PairingSession

logger = logging.getLogger(__name__)

CODE_GENERATION_ATTEMPTS = 5
CODE_LENGTH = 8


@dataclass
class Registration:
    code: str
    expires_at: datetime
    poll_interval_seconds: int


@dataclass
class PollResult:
    status: str
    expires_at: datetime
    poll_interval_seconds: int
    device_id: Optional[str] = None
    secret: Optional[str] = None


@dataclass
class ClaimResult:
    device_id: str
    secret: str


@dataclass
class AckResult:
    status: str
    device_id: str


def generate_code():
    """Eight uppercase hex characters, easy to read off a screen."""
    return secrets.token_hex(4).upper()


def normalize_code(code):
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("code is required.", field="code")
    code = code.strip().upper()
    if len(code) > CODE_LENGTH or not (code.isascii() and code.isalnum()):
        raise ValidationError("code is not a valid pairing code.", field="code")
    return code


def _check_association(name, value):
    if value is None:
        return None
    max_length = Device._meta.get_field(name).max_length
    if not isinstance(value, str) or len(value) > max_length or not is_storable_text(value):
        raise ValidationError(f"{name} must be a string of at most {max_length} characters.", field=name)
    return value


def _code_hash(code):
    return identity.hash_secret(normalize_code(code))


def register(device_info=None, now=None):
    """
    Opens a PENDING pairing session and returns the plaintext code.

    The code is shown once; only its hash is stored.
    """
    if device_info is None:
        device_info = {}
    if not isinstance(device_info, dict):
        raise ValidationError("device_info must be an object.", field="device_info")
    if not is_storable_json(device_info):
        raise ValidationError("device_info contains characters that cannot be stored.", field="device_info")

    now = now or timezone.now()
    ttl = settings.PAIRING_CODE_TTL_SECONDS
    interval = settings.PAIRING_POLL_INTERVAL_SECONDS
    expires_at = now + timedelta(seconds=ttl)

    with atomic_operation("pairing register"):
        for attempt in range(1, CODE_GENERATION_ATTEMPTS + 1):
            code = generate_code()
            try:
                with transaction.atomic():
                    session = PairingSession.objects.create(
                        code_hash=identity.hash_secret(code),
                        status=PairingSession.Status.PENDING,
                        device_info=device_info,
                        expires_at=expires_at,
                        poll_interval_seconds=interval,
                    )
                break
            except IntegrityError:
                # Another live session already hashes to this code.
                logger.warning("Pairing code collision on attempt %s", attempt)
        else:
            raise IntegrityError("could not allocate a unique pairing code")

    logger.info("Pairing session registered: session=%s expires_at=%s", session.id, expires_at)

    return Registration(code=code, expires_at=expires_at, poll_interval_seconds=interval)


def poll_status(code, now=None):
    """
    Reports the state of a pairing session to the polling device.

    While the session is CLAIMED the device id and bearer token are included.
    Once acknowledged, the session reports COMPLETED and never carries the
    token again.
    """
    code_hash = _code_hash(code)
    now = now or timezone.now()
    retry_after = None

    with atomic_operation("pairing poll"):
        session = (
            PairingSession.objects
            .select_for_update()
            .filter(code_hash=code_hash)
            .first()
        )
        if session is None:
            raise NotFound()

        if session.status == PairingSession.Status.PENDING and session.is_expired(now):
            session.status = PairingSession.Status.EXPIRED
            session.save(update_fields=["status"])
            logger.info("Pairing session expired on poll: session=%s", session.id)

        if session.last_polled_at is not None:
            next_allowed = session.last_polled_at + timedelta(seconds=session.poll_interval_seconds)
            if now < next_allowed:
                retry_after = max((next_allowed - now).total_seconds(), 0.0)

        if retry_after is None:
            session.last_polled_at = now
            session.save(update_fields=["last_polled_at"])

    if retry_after is not None:
        logger.warning(
            "Pairing poll rate limited: session=%s retry_after=%.3f",
            session.id, retry_after,
        )
        raise RateLimited(retry_after)

    result = PollResult(
        status=session.status,
        expires_at=session.expires_at,
        poll_interval_seconds=session.poll_interval_seconds,
    )
    if session.status == PairingSession.Status.CLAIMED and session.one_time_secret:
        result.device_id = str(session.device_id)
        result.secret = session.one_time_secret

    return result


def claim(code, store_id=None, group_id=None, actor="", now=None):
    """
    Binds a PENDING pairing code to a freshly minted device identity.

    Privileged: the caller must have authorized the operator beforehand.
    Device creation, the CLAIMED transition and the audit record commit
    together or not at all.
    """
    code_hash = _code_hash(code)
    store_id = _check_association("store_id", store_id)
    group_id = _check_association("group_id", group_id)
    now = now or timezone.now()
    expired_at = None

    with atomic_operation("pairing claim"):
        # Lock the session row so concurrent claims on the same code serialize
        session = (
            PairingSession.objects
            .select_for_update()
            .filter(code_hash=code_hash)
            .first()
        )
        if session is None:
            logger.warning("Claim for unknown pairing code")
            raise NotFound()

        if session.status == PairingSession.Status.PENDING and session.is_expired(now):
            session.status = PairingSession.Status.EXPIRED
            session.save(update_fields=["status"])
            logger.info("Pairing session expired on claim: session=%s", session.id)

        if session.status == PairingSession.Status.EXPIRED:
            expired_at = session.expires_at
        elif session.status != PairingSession.Status.PENDING:
            logger.warning(
                "Claim rejected, session already %s: session=%s",
                session.status, session.id,
            )
            raise AlreadyClaimed(session.status)
        else:
            secret = identity.generate_secret()
            device_id = identity.mint(secret, store_id=store_id, group_id=group_id)

            session.status = PairingSession.Status.CLAIMED
            session.device_id = device_id
            session.one_time_secret = secret
            session.claimed_at = now
            session.save(update_fields=["status", "device", "one_time_secret", "claimed_at"])

            PairingAuditLog.objects.create(
                session=session,
                device_id=device_id,
                action="claimed",
                actor=actor or "",
                metadata={"store_id": store_id, "group_id": group_id},
            )

    if expired_at is not None:
        logger.warning("Claim rejected, pairing code expired: session=%s", session.id)
        raise Expired(expired_at)

    logger.info("Pairing session claimed: session=%s device=%s", session.id, device_id)

    return ClaimResult(device_id=str(device_id), secret=secret)


def acknowledge(code, now=None):
    """
    Confirms the device stored its token; erases the token from the session.
    """
    code_hash = _code_hash(code)
    now = now or timezone.now()

    with atomic_operation("pairing acknowledge"):
        session = (
            PairingSession.objects
            .select_for_update()
            .filter(code_hash=code_hash)
            .first()
        )
        if session is None:
            raise NotFound()

        if session.status != PairingSession.Status.CLAIMED:
            logger.warning(
                "Acknowledge rejected, session is %s: session=%s",
                session.status, session.id,
            )
            raise InvalidState(session.status, PairingSession.Status.CLAIMED)

        # Status and secret change in one UPDATE statement
        PairingSession.objects.filter(
            pk=session.pk,
            status=PairingSession.Status.CLAIMED,
        ).update(
            status=PairingSession.Status.COMPLETED,
            one_time_secret=None,
            completed_at=now,
        )

    logger.info("Pairing session completed: session=%s device=%s", session.id, session.device_id)

    return AckResult(status=PairingSession.Status.COMPLETED, device_id=str(session.device_id))
