"""
Application Use Case — Device Plan Cache

Serves each device its plan document with an ETag for conditional reads.

The database is the only cache. There is no process-local map: several
service instances may answer the same device, and each of them re-validates
against the most recent still-valid DevicePlan row. When that row's ETag
matches the freshly computed content, the ETag is reused so conditional
requests stay valid across regenerations.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

from signage.application.storage import atomic_operation
from signage.models import DevicePlan

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    etag: str
    plan: Optional[dict] = None
    not_modified: bool = False


def build_plan(device):
    """Deterministic plan content derived from the device record."""
    return {
        "device_id": str(device.id),
        "store_id": device.store_id,
        "group_id": device.group_id,
        "plan_type": "loop",
        "playlist": "default",
    }


def fingerprint(plan):
    canonical = json.dumps(plan, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def current_plan(device, now):
    return (
        DevicePlan.objects
        .filter(device=device, valid_from__lte=now, valid_until__gt=now)
        .order_by("-valid_from", "-id")
        .first()
    )


def get_plan(device, if_none_match=None, now=None):
    """
    Returns the device plan, or a not-modified result when ``if_none_match``
    equals the current ETag. Every full response records a new DevicePlan
    valid for PLAN_TTL_SECONDS.
    """
    now = now or timezone.now()
    plan = build_plan(device)
    etag = fingerprint(plan)

    with atomic_operation("plan fetch"):
        previous = current_plan(device, now)
        if previous is not None and previous.plan == plan:
            # Same content as the issued plan: keep the ETag the device already holds
            etag = previous.etag

        if if_none_match and if_none_match == etag:
            return PlanResult(etag=etag, not_modified=True)

        DevicePlan.objects.create(
            device=device,
            etag=etag,
            plan=plan,
            valid_from=now,
            valid_until=now + timedelta(seconds=settings.PLAN_TTL_SECONDS),
        )

    logger.info("Issued plan: device=%s etag=%s", device.id, etag[:12])

    return PlanResult(etag=etag, plan=plan)
