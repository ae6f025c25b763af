from django.test import TestCase

from signage.application import identity
from signage.domain.exceptions import Unauthorized
from signage.models import Device


class DeviceIdentityRegistryTest(TestCase):

    def test_mint_stores_only_the_token_hash(self):
        secret = identity.generate_secret()

        device_id = identity.mint(secret, store_id="S1", group_id="G1")

        device = Device.objects.get(id=device_id)
        self.assertEqual(device.token_hash, identity.hash_secret(secret))
        self.assertNotEqual(device.token_hash, secret)
        self.assertEqual(device.status, Device.Status.ONLINE)
        self.assertEqual(device.store_id, "S1")
        self.assertEqual(device.group_id, "G1")

    def test_generated_secrets_are_unique(self):
        secrets = {identity.generate_secret() for _ in range(50)}

        self.assertEqual(len(secrets), 50)

    def test_authenticate_returns_matching_device(self):
        secret = identity.generate_secret()
        device_id = identity.mint(secret)

        device = identity.authenticate(secret)

        self.assertEqual(device.id, device_id)

    def test_authenticate_rejects_unknown_token(self):
        identity.mint(identity.generate_secret())

        with self.assertRaises(Unauthorized):
            identity.authenticate("not-a-real-token")

    def test_authenticate_rejects_empty_token(self):
        with self.assertRaises(Unauthorized):
            identity.authenticate("")
        with self.assertRaises(Unauthorized):
            identity.authenticate(None)

    def test_authenticate_has_no_side_effects(self):
        secret = identity.generate_secret()
        device_id = identity.mint(secret)
        before = Device.objects.get(id=device_id).updated_at

        identity.authenticate(secret)

        self.assertEqual(Device.objects.get(id=device_id).updated_at, before)
        self.assertEqual(Device.objects.count(), 1)
