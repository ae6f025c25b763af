from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from signage.application import identity, plans
from signage.models import Device, DevicePlan


def make_device(store_id="S1"):
    secret = identity.generate_secret()
    device = Device.objects.get(id=identity.mint(secret, store_id=store_id))
    return device, secret


class PlanCacheTest(TestCase):

    def setUp(self):
        self.device, _ = make_device()
        self.now = timezone.now()

    def test_plan_is_deterministic_for_device_state(self):
        self.assertEqual(plans.build_plan(self.device), plans.build_plan(self.device))
        self.assertEqual(
            plans.fingerprint(plans.build_plan(self.device)),
            plans.fingerprint(plans.build_plan(self.device)),
        )

    def test_get_plan_persists_issued_plan(self):
        result = plans.get_plan(self.device, now=self.now)

        self.assertFalse(result.not_modified)
        self.assertEqual(result.plan["device_id"], str(self.device.id))
        self.assertEqual(result.plan["plan_type"], "loop")

        issued = DevicePlan.objects.get(device=self.device)
        self.assertEqual(issued.etag, result.etag)
        self.assertEqual(issued.valid_from, self.now)
        self.assertEqual(issued.valid_until, self.now + timedelta(hours=1))

    def test_matching_token_is_not_modified(self):
        first = plans.get_plan(self.device, now=self.now)

        second = plans.get_plan(self.device, if_none_match=first.etag, now=self.now + timedelta(seconds=1))

        self.assertTrue(second.not_modified)
        self.assertIsNone(second.plan)
        self.assertEqual(second.etag, first.etag)
        self.assertEqual(DevicePlan.objects.count(), 1)

    def test_stale_token_gets_full_plan(self):
        result = plans.get_plan(self.device, if_none_match="something-else", now=self.now)

        self.assertFalse(result.not_modified)
        self.assertIsNotNone(result.plan)

    def test_content_change_changes_fingerprint(self):
        first = plans.get_plan(self.device, now=self.now)

        self.device.store_id = "S2"
        self.device.save()
        second = plans.get_plan(self.device, if_none_match=first.etag, now=self.now + timedelta(seconds=1))

        self.assertFalse(second.not_modified)
        self.assertNotEqual(second.etag, first.etag)
        self.assertEqual(second.plan["store_id"], "S2")

    def test_identical_valid_plan_keeps_its_issued_etag(self):
        plan = plans.build_plan(self.device)
        DevicePlan.objects.create(
            device=self.device,
            etag="issued-etag",
            plan=plan,
            valid_from=self.now - timedelta(minutes=5),
            valid_until=self.now + timedelta(minutes=55),
        )

        result = plans.get_plan(self.device, now=self.now)
        cached = plans.get_plan(self.device, if_none_match="issued-etag", now=self.now)

        self.assertEqual(result.etag, "issued-etag")
        self.assertTrue(cached.not_modified)

    def test_expired_plan_record_is_not_reused(self):
        DevicePlan.objects.create(
            device=self.device,
            etag="old-etag",
            plan=plans.build_plan(self.device),
            valid_from=self.now - timedelta(hours=2),
            valid_until=self.now - timedelta(hours=1),
        )

        result = plans.get_plan(self.device, now=self.now)

        self.assertEqual(result.etag, plans.fingerprint(plans.build_plan(self.device)))

    def test_changed_content_does_not_reuse_previous_etag(self):
        DevicePlan.objects.create(
            device=self.device,
            etag="issued-etag",
            plan={"device_id": str(self.device.id), "playlist": "holiday"},
            valid_from=self.now - timedelta(minutes=5),
            valid_until=self.now + timedelta(minutes=55),
        )

        result = plans.get_plan(self.device, now=self.now)

        self.assertNotEqual(result.etag, "issued-etag")


class DevicePlanEndpointTest(TestCase):
    """
    Tests for GET /v1/device/plan
    """

    def setUp(self):
        self.client = APIClient()
        self.device, self.token = make_device()

    def test_missing_auth_returns_401(self):
        response = self.client.get("/v1/device/plan")

        self.assertEqual(response.status_code, 401)

    def test_returns_plan_with_etag_and_honors_if_none_match(self):
        response = self.client.get("/v1/device/plan", HTTP_AUTHORIZATION=f"Bearer {self.token}")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response["ETag"])
        self.assertEqual(response.data["device_id"], str(self.device.id))

        cached = self.client.get(
            "/v1/device/plan",
            HTTP_AUTHORIZATION=f"Bearer {self.token}",
            HTTP_IF_NONE_MATCH=response["ETag"],
        )

        self.assertEqual(cached.status_code, 304)
        self.assertEqual(cached["ETag"], response["ETag"])

    def test_unquoted_etag_is_accepted(self):
        response = self.client.get("/v1/device/plan", HTTP_AUTHORIZATION=f"Bearer {self.token}")

        cached = self.client.get(
            "/v1/device/plan",
            HTTP_AUTHORIZATION=f"Bearer {self.token}",
            HTTP_IF_NONE_MATCH=response["ETag"].strip('"'),
        )

        self.assertEqual(cached.status_code, 304)
