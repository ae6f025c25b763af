"""
Application Use Case — Proof-of-Play Ingestion

Accepts a batch of proof-of-play events from an authenticated device and
rolls accepted events into daily aggregates.

Core guarantees provided:

- Atomicity: the whole batch runs inside one transaction. An unexpected
  storage failure rolls every event in the batch back and surfaces as
  StorageFailure, so the device can safely resend the batch.
- Partial tolerance: each event is validated and inserted on its own. A bad
  or duplicate event is counted as rejected and does not affect its siblings.
- Idempotency: enforced by the UNIQUE constraint on event_id. Each insert runs
  in a savepoint; an IntegrityError means the event was already stored and
  the aggregate is left untouched.
- Lost-update safety: aggregates are incremented with F() expressions. The
  first event for a key creates the row inside a savepoint; if a concurrent
  writer created it first, the increment is applied to their row instead.

The response carries only accepted/rejected counts, never per-field reasons.
"""

import logging
import math
from dataclasses import dataclass
from datetime import timezone as dt_timezone

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from signage.application.storage import atomic_operation, is_storable_json, is_storable_text
from signage.domain.exceptions import DuplicateEvent, ValidationError
from signage.models import DailyAggregate, ProofOfPlayEvent

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("event_id", "content_id", "campaign_id")


@dataclass
class IngestResult:
    accepted: int = 0
    rejected: int = 0


def _as_identifier(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    return None


def _check_text(name, value):
    # Values the database cannot store would abort the whole batch
    if value is None:
        return value
    max_length = ProofOfPlayEvent._meta.get_field(name).max_length
    if len(value) > max_length:
        raise ValidationError(f"{name} exceeds {max_length} characters.", field=name)
    if not is_storable_text(value):
        raise ValidationError(f"{name} contains characters that cannot be stored.", field=name)
    return value


def _parse_duration(value):
    """Returns (ok, duration_ms). Unknown duration is (True, None)."""
    if value is None:
        return True, None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, None
    if value < 0 or not math.isfinite(value):
        return False, None
    return True, min(int(value), settings.PROOF_OF_PLAY_MAX_DURATION_MS)


def _parse_occurred_at(value):
    """Returns (ok, datetime or None)."""
    if value is None:
        return True, None
    if not isinstance(value, str):
        return False, None
    try:
        parsed = parse_datetime(value)
    except ValueError:
        return False, None
    if parsed is None:
        return False, None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return True, parsed


def normalize_event(device, raw):
    """
    Validates one submitted event and returns the fields to store.

    Raises ValidationError describing the first problem found.
    """
    if not isinstance(raw, dict):
        raise ValidationError("event must be an object.")

    fields = {}
    for name in REQUIRED_FIELDS:
        value = _as_identifier(raw.get(name))
        if value is None:
            raise ValidationError(f"{name} is required.", field=name)
        fields[name] = value

    ok, duration_ms = _parse_duration(raw.get("duration_ms"))
    if not ok:
        raise ValidationError("duration_ms must be a non-negative number.", field="duration_ms")

    store_id = _as_identifier(raw.get("store_id")) or device.store_id
    if not store_id:
        raise ValidationError("store_id is required when the device has no store.", field="store_id")

    ok, occurred_at = _parse_occurred_at(raw.get("occurred_at"))
    if not ok:
        raise ValidationError("occurred_at must be an ISO-8601 timestamp.", field="occurred_at")

    payload = raw.get("payload")
    if payload is None:
        payload = {}
    if not is_storable_json(payload):
        raise ValidationError("payload contains characters that cannot be stored.", field="payload")

    fields.update(
        store_id=store_id,
        duration_ms=duration_ms,
        occurred_at=occurred_at,
        content_version=_as_identifier(raw.get("content_version")),
        event_type=_as_identifier(raw.get("event_type")) or "play",
        result_code=_as_identifier(raw.get("result_code")),
        payload=payload,
    )
    for name in ("event_id", "content_id", "campaign_id", "store_id",
                 "content_version", "event_type", "result_code"):
        _check_text(name, fields[name])
    return fields


def record_event(device, fields):
    """
    Stores one event exactly once.

    Runs in a savepoint so a duplicate does not poison the batch transaction.
    """
    try:
        with transaction.atomic():
            return ProofOfPlayEvent.objects.create(device=device, **fields)
    except IntegrityError:
        raise DuplicateEvent(fields["event_id"])


def increment_daily_aggregate(day, campaign_id, store_id, content_id, duration_ms, now=None):
    """
    Adds one play (and its duration) to the aggregate row for the key.

    Equivalent to INSERT ... ON CONFLICT DO UPDATE SET count = count + 1,
    expressed with F() so it works on every backend Django supports.
    """
    now = now or timezone.now()
    duration = duration_ms or 0
    key = {
        "day": day,
        "campaign_id": campaign_id,
        "store_id": store_id,
        "content_id": content_id,
    }

    def bump():
        return DailyAggregate.objects.filter(**key).update(
            play_count=F("play_count") + 1,
            total_duration_ms=F("total_duration_ms") + duration,
            updated_at=now,
        )

    if bump():
        return

    try:
        with transaction.atomic():
            DailyAggregate.objects.create(play_count=1, total_duration_ms=duration, **key)
    except IntegrityError:
        # A concurrent ingestor created the row between our UPDATE and INSERT
        bump()


def ingest_events(device, events, now=None):
    """
    Ingests a batch of events for ``device``.

    Returns IngestResult with accepted and rejected counts. Raises
    ValidationError only when the batch itself is malformed, and
    StorageFailure when the database fails (nothing from the batch is kept).
    """
    if not isinstance(events, list):
        raise ValidationError("events must be an array.", field="events")

    max_batch = settings.PROOF_OF_PLAY_MAX_BATCH
    if len(events) > max_batch:
        raise ValidationError(f"at most {max_batch} events may be submitted at once.", field="events")

    now = now or timezone.now()
    day = now.astimezone(dt_timezone.utc).date()
    result = IngestResult()

    with atomic_operation("proof-of-play ingestion"):
        for raw in events:
            try:
                fields = normalize_event(device, raw)
            except ValidationError as exc:
                logger.warning("Rejected proof-of-play event from device=%s: %s", device.id, exc)
                result.rejected += 1
                continue

            try:
                record_event(device, fields)
            except DuplicateEvent:
                logger.info(
                    "Duplicate proof-of-play event: event_id=%s device=%s",
                    fields["event_id"], device.id,
                )
                result.rejected += 1
                continue

            increment_daily_aggregate(
                day,
                fields["campaign_id"],
                fields["store_id"],
                fields["content_id"],
                fields["duration_ms"],
                now=now,
            )
            result.accepted += 1

    logger.info(
        "Proof-of-play batch ingested: device=%s accepted=%s rejected=%s",
        device.id, result.accepted, result.rejected,
    )
    return result
