"""
API Layer — Device Pairing, Proof-of-Play and Plan Endpoints (Django REST Framework)

Thin controllers: each view coerces request input, delegates to an
application use case, and translates domain exceptions into HTTP responses.
No business rules or transactional logic live here.

Exception mapping:

- ValidationError  -> 400
- Unauthorized     -> 401 (raised by DeviceTokenAuthentication)
- NotFound         -> 404
- AlreadyClaimed   -> 409
- InvalidState     -> 409
- Expired          -> 410
- RateLimited      -> 429 with Retry-After
- StorageFailure   -> 503, retryable

Duplicate proof-of-play events are never surfaced as errors; they are
reported in the rejected count.
"""

import math

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from signage.application import ingestion, pairing, plans
from signage.authentication import DeviceTokenAuthentication, HasAdminToken, IsDevice
from signage.domain.exceptions import (
    AlreadyClaimed,
    Expired,
    InvalidState,
    NotFound,
    RateLimited,
    StorageFailure,
    ValidationError,
)
from signage.models import PairingSession


def storage_failure_response():
    return Response(
        {"error": "Temporary storage failure, retry the request.", "retryable": True},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


def rate_limited_response(exc):
    retry_after = max(exc.retry_after, 0.0)
    response = Response(
        {"error": "Polling too frequently.", "retry_after_seconds": round(retry_after, 3)},
        status=status.HTTP_429_TOO_MANY_REQUESTS,
    )
    response["Retry-After"] = str(math.ceil(retry_after))
    return response


def parse_etag(value):
    if not value:
        return None
    value = value.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"') or None


class HealthView(APIView):
    """GET /v1/health"""

    def get(self, request):
        return Response({"status": "ok"}, status=status.HTTP_200_OK)


class RegisterPairingView(APIView):
    """
    POST /v1/device/pairing/register

    Opens a pairing session. The plaintext code is returned once.
    """

    def post(self, request):
        device_info = request.data.get("device_info") if isinstance(request.data, dict) else None

        try:
            registration = pairing.register(device_info)
        except ValidationError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except StorageFailure:
            return storage_failure_response()

        return Response(
            {
                "code": registration.code,
                "expires_at": registration.expires_at.isoformat(),
                "poll_after_seconds": registration.poll_interval_seconds,
            },
            status=status.HTTP_201_CREATED,
        )


class PairingStatusView(APIView):
    """
    GET /v1/device/pairing/status?code=...

    Polled by the device. A completed session is reported as CLAIMED, without
    the token, so devices that missed the acknowledgment response still see a
    paired state.
    """

    def get(self, request):
        code = request.query_params.get("code")

        try:
            result = pairing.poll_status(code)
        except ValidationError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except NotFound:
            return Response({"error": "Pairing code not found."}, status=status.HTTP_404_NOT_FOUND)
        except RateLimited as exc:
            return rate_limited_response(exc)
        except StorageFailure:
            return storage_failure_response()

        reported = result.status
        if reported == PairingSession.Status.COMPLETED:
            reported = PairingSession.Status.CLAIMED

        body = {
            "status": reported,
            "expires_at": result.expires_at.isoformat(),
            "poll_after_seconds": result.poll_interval_seconds,
        }
        if result.secret:
            body["device_id"] = result.device_id
            body["device_token"] = result.secret

        return Response(body, status=status.HTTP_200_OK)


class ClaimPairingView(APIView):
    """
    POST /v1/admin/device/pairing/claim

    Operator-only. Binds a pairing code to a new device identity. The token is
    not returned here; the device collects it by polling.
    """

    permission_classes = [HasAdminToken]

    def post(self, request):
        data = request.data if isinstance(request.data, dict) else {}
        code = data.get("code")
        store_id = data.get("store_id")
        group_id = data.get("group_id")

        for name, value in (("store_id", store_id), ("group_id", group_id)):
            if value is not None and not isinstance(value, str):
                return Response(
                    {"error": f"{name} must be a string."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        try:
            result = pairing.claim(
                code,
                store_id=store_id,
                group_id=group_id,
                actor=request.headers.get("X-Admin-Actor", "admin"),
            )
        except ValidationError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except NotFound:
            return Response({"error": "Pairing code not found."}, status=status.HTTP_404_NOT_FOUND)
        except Expired:
            return Response(
                {"error": "Pairing code expired.", "reason": "expired"},
                status=status.HTTP_410_GONE,
            )
        except AlreadyClaimed as exc:
            return Response(
                {"error": "Pairing code already claimed.", "reason": "already_claimed", "status": exc.current},
                status=status.HTTP_409_CONFLICT,
            )
        except StorageFailure:
            return storage_failure_response()

        return Response(
            {"status": PairingSession.Status.CLAIMED, "device_id": result.device_id},
            status=status.HTTP_200_OK,
        )


class AcknowledgePairingView(APIView):
    """
    POST /v1/device/pairing/ack

    Called by the device once it has stored its token.
    """

    def post(self, request):
        code = request.data.get("code") if isinstance(request.data, dict) else None

        try:
            result = pairing.acknowledge(code)
        except ValidationError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except NotFound:
            return Response({"error": "Pairing code not found."}, status=status.HTTP_404_NOT_FOUND)
        except InvalidState as exc:
            return Response(
                {"error": str(exc), "status": exc.current},
                status=status.HTTP_409_CONFLICT,
            )
        except StorageFailure:
            return storage_failure_response()

        return Response(
            {"status": result.status, "device_id": result.device_id},
            status=status.HTTP_200_OK,
        )


class ProofOfPlayEventsView(APIView):
    """
    POST /v1/device/events

    Accepts a batch of proof-of-play events. Always 200 for a well-formed
    batch, even when every event is rejected.
    """

    authentication_classes = [DeviceTokenAuthentication]
    permission_classes = [IsDevice]

    def post(self, request):
        events = request.data.get("events") if isinstance(request.data, dict) else None

        try:
            result = ingestion.ingest_events(request.user, events)
        except ValidationError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except StorageFailure:
            return storage_failure_response()

        return Response(
            {"accepted": result.accepted, "rejected": result.rejected},
            status=status.HTTP_200_OK,
        )


class DevicePlanView(APIView):
    """
    GET /v1/device/plan

    Honors If-None-Match with 304 Not Modified.
    """

    authentication_classes = [DeviceTokenAuthentication]
    permission_classes = [IsDevice]

    def get(self, request):
        if_none_match = parse_etag(request.headers.get("If-None-Match"))

        try:
            result = plans.get_plan(request.user, if_none_match=if_none_match)
        except StorageFailure:
            return storage_failure_response()

        if result.not_modified:
            response = Response(status=status.HTTP_304_NOT_MODIFIED)
        else:
            response = Response(result.plan, status=status.HTTP_200_OK)
        response["ETag"] = f'"{result.etag}"'
        return response
