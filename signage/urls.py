from django.urls import path

from .views import (
    AcknowledgePairingView,
    ClaimPairingView,
    DevicePlanView,
    HealthView,
    PairingStatusView,
    ProofOfPlayEventsView,
    RegisterPairingView,
)

urlpatterns = [
    path("health", HealthView.as_view(), name="health"),
    path("device/pairing/register", RegisterPairingView.as_view(), name="pairing-register"),
    path("device/pairing/status", PairingStatusView.as_view(), name="pairing-status"),
    path("device/pairing/ack", AcknowledgePairingView.as_view(), name="pairing-ack"),
    path("admin/device/pairing/claim", ClaimPairingView.as_view(), name="pairing-claim"),
    path("device/events", ProofOfPlayEventsView.as_view(), name="proof-of-play-events"),
    path("device/plan", DevicePlanView.as_view(), name="device-plan"),
]
