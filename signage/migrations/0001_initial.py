import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Device",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=[("online", "Online"), ("offline", "Offline")], default="online", max_length=16)),
                ("token_hash", models.CharField(max_length=64, unique=True)),
                ("store_id", models.CharField(blank=True, max_length=64, null=True)),
                ("group_id", models.CharField(blank=True, max_length=64, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="PairingSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code_hash", models.CharField(max_length=64, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("CLAIMED", "Claimed"),
                            ("COMPLETED", "Completed"),
                            ("EXPIRED", "Expired"),
                        ],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("device_info", models.JSONField(blank=True, default=dict)),
                ("expires_at", models.DateTimeField()),
                ("poll_interval_seconds", models.PositiveIntegerField(default=5)),
                ("last_polled_at", models.DateTimeField(blank=True, null=True)),
                ("one_time_secret", models.CharField(blank=True, max_length=128, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("claimed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "device",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="pairing_sessions",
                        to="signage.device",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["status", "expires_at"], name="pairing_status_expiry_idx")],
            },
        ),
        migrations.CreateModel(
            name="PairingAuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=32)),
                ("actor", models.CharField(blank=True, default="", max_length=128)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "device",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_entries",
                        to="signage.device",
                    ),
                ),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_entries",
                        to="signage.pairingsession",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="ProofOfPlayEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_id", models.CharField(max_length=128, unique=True)),
                ("store_id", models.CharField(max_length=64)),
                ("campaign_id", models.CharField(max_length=64)),
                ("content_id", models.CharField(max_length=64)),
                ("content_version", models.CharField(blank=True, max_length=64, null=True)),
                ("event_type", models.CharField(default="play", max_length=32)),
                ("occurred_at", models.DateTimeField(blank=True, null=True)),
                ("duration_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("result_code", models.CharField(blank=True, max_length=64, null=True)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("received_at", models.DateTimeField(auto_now_add=True)),
                (
                    "device",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="proof_of_play_events",
                        to="signage.device",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="DailyAggregate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("day", models.DateField()),
                ("campaign_id", models.CharField(max_length=64)),
                ("store_id", models.CharField(max_length=64)),
                ("content_id", models.CharField(max_length=64)),
                ("play_count", models.PositiveBigIntegerField(default=0)),
                ("total_duration_ms", models.PositiveBigIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("day", "campaign_id", "store_id", "content_id"),
                        name="uniq_daily_aggregate_key",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DevicePlan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("etag", models.CharField(max_length=64)),
                ("plan", models.JSONField()),
                ("valid_from", models.DateTimeField()),
                ("valid_until", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "device",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="plans",
                        to="signage.device",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["device", "valid_until"], name="plan_device_validity_idx")],
            },
        ),
    ]
