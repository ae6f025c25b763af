"""
Persistence Models — Device Pairing & Proof-of-Play (Django ORM)

This module defines the persistence layer for pairing unmanaged signage
devices with a backend identity and for recording the proof-of-play
telemetry those devices report.

Key architectural decisions:

- Pairing codes are never stored in plaintext. A session is addressed by the
  SHA-256 hash of its code, which is UNIQUE at the database level.
- Device bearer tokens are stored only as SHA-256 hashes. Authentication is
  hash equality against a UNIQUE column.
- Idempotent event ingestion is enforced at the database level via a UNIQUE
  constraint on ProofOfPlayEvent.event_id.
- DailyAggregate carries a composite UNIQUE constraint so concurrent writers
  converge on one row per (day, campaign, store, content) and increment it
  with F() expressions.
- Nothing in the core deletes rows. Retention is handled outside the service.

Architectural note:

Store, campaign, content and group identifiers are kept as opaque strings.
Their catalogues live in other services; the pairing and ingestion flows only
need to carry the identifiers through.
"""

import uuid

from django.db import models


class Device(models.Model):
    """
    A paired device identity.

    Created exactly once, when a pairing session is claimed. The bearer token
    itself is handed to the device through the pairing session and is never
    persisted here in reversible form.
    """

    class Status(models.TextChoices):
        ONLINE = "online", "Online"
        OFFLINE = "offline", "Offline"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ONLINE)

    # SHA-256 hex digest of the bearer token.
    token_hash = models.CharField(max_length=64, unique=True)

    store_id = models.CharField(max_length=64, null=True, blank=True)
    group_id = models.CharField(max_length=64, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Device {self.id} ({self.status})"


class PairingSession(models.Model):
    """
    A short-lived pairing handshake.

    Lifecycle: PENDING -> CLAIMED -> COMPLETED, or PENDING -> EXPIRED.
    one_time_secret is populated on claim and cleared on acknowledgment;
    expires_at never changes after creation.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        CLAIMED = "CLAIMED", "Claimed"
        COMPLETED = "COMPLETED", "Completed"
        EXPIRED = "EXPIRED", "Expired"

    code_hash = models.CharField(max_length=64, unique=True)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    device_info = models.JSONField(default=dict, blank=True)

    expires_at = models.DateTimeField()
    poll_interval_seconds = models.PositiveIntegerField(default=5)
    last_polled_at = models.DateTimeField(null=True, blank=True)

    device = models.ForeignKey(
        Device,
        on_delete=models.PROTECT,
        related_name="pairing_sessions",
        null=True,
        blank=True,
    )
    one_time_secret = models.CharField(max_length=128, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    claimed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "expires_at"], name="pairing_status_expiry_idx"),
        ]

    def is_expired(self, now):
        return now >= self.expires_at

    def __str__(self):
        return f"PairingSession {self.id} - {self.status}"


class PairingAuditLog(models.Model):
    """Append-only record of privileged pairing actions."""

    session = models.ForeignKey(
        PairingSession,
        on_delete=models.PROTECT,
        related_name="audit_entries",
    )
    device = models.ForeignKey(
        Device,
        on_delete=models.PROTECT,
        related_name="audit_entries",
        null=True,
        blank=True,
    )
    action = models.CharField(max_length=32)
    actor = models.CharField(max_length=128, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Audit {self.action} session={self.session_id}"


class ProofOfPlayEvent(models.Model):
    """
    A single proof-of-play record.

    event_id is supplied by the device and is UNIQUE so that retried
    submissions collapse onto the first stored record.
    """

    event_id = models.CharField(max_length=128, unique=True)
    device = models.ForeignKey(
        Device,
        on_delete=models.PROTECT,
        related_name="proof_of_play_events",
    )
    store_id = models.CharField(max_length=64)
    campaign_id = models.CharField(max_length=64)
    content_id = models.CharField(max_length=64)
    content_version = models.CharField(max_length=64, null=True, blank=True)
    event_type = models.CharField(max_length=32, default="play")

    # Timestamp reported by the device; received_at is ours.
    occurred_at = models.DateTimeField(null=True, blank=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)
    result_code = models.CharField(max_length=64, null=True, blank=True)
    payload = models.JSONField(default=dict, blank=True)

    received_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"ProofOfPlayEvent {self.event_id}"


class DailyAggregate(models.Model):
    """
    Additive daily rollup of accepted proof-of-play events.

    Only ever incremented with F() expressions so concurrent ingestors do
    not lose updates.
    """

    day = models.DateField()
    campaign_id = models.CharField(max_length=64)
    store_id = models.CharField(max_length=64)
    content_id = models.CharField(max_length=64)

    play_count = models.PositiveBigIntegerField(default=0)
    total_duration_ms = models.PositiveBigIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["day", "campaign_id", "store_id", "content_id"],
                name="uniq_daily_aggregate_key",
            ),
        ]

    def __str__(self):
        return f"{self.day} {self.campaign_id}/{self.store_id}/{self.content_id}: {self.play_count}"


class DevicePlan(models.Model):
    """An issued plan document together with the ETag it was served under."""

    device = models.ForeignKey(
        Device,
        on_delete=models.CASCADE,
        related_name="plans",
    )
    etag = models.CharField(max_length=64)
    plan = models.JSONField()
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["device", "valid_until"], name="plan_device_validity_idx"),
        ]

    def __str__(self):
        return f"DevicePlan {self.device_id} {self.etag[:8]}"
