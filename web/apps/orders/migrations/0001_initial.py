import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("internal_id", models.BigIntegerField(editable=False, null=True, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("Cart", "Cart"),
                            ("Unpaid", "Unpaid"),
                            ("Paid", "Paid"),
                            ("Processing", "Processing"),
                            ("Sent", "Sent"),
                            ("Complete", "Complete"),
                            ("AdminCancelled", "Admin Cancelled"),
                            ("MemberCancelled", "Member Cancelled"),
                        ],
                        default="Cart",
                        max_length=32,
                    ),
                ),
                ("placed", models.DateTimeField(blank=True, null=True)),
                ("paid", models.DateTimeField(blank=True, null=True)),
                ("receipt_sent", models.DateTimeField(blank=True, null=True)),
                ("locale", models.CharField(blank=True, default="", max_length=10)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("first_name", models.CharField(blank=True, default="", max_length=100)),
                ("surname", models.CharField(blank=True, default="", max_length=100)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("company", models.CharField(blank=True, default="", max_length=100)),
                ("billing_address", models.JSONField(blank=True, default=dict)),
                ("shipping_address", models.JSONField(blank=True, default=dict)),
                ("total_cents", models.IntegerField(default=0)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "member",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-internal_id"],
            },
        ),
        migrations.CreateModel(
            name="OrderItemModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=32)),
                ("title", models.CharField(blank=True, default="", max_length=200)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price_cents", models.PositiveIntegerField(default=0)),
                ("calculated_total_cents", models.IntegerField(blank=True, null=True)),
                ("placed", models.BooleanField(default=False)),
                ("paid_for", models.BooleanField(default=False)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "order_items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="OrderModifierModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("amount_cents", models.IntegerField(blank=True, null=True)),
                ("required", models.BooleanField(default=False)),
                ("required_before_place", models.BooleanField(default=False)),
                ("sort", models.IntegerField(default=0)),
                ("placed", models.BooleanField(default=False)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="modifiers",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "order_modifiers",
                "ordering": ["sort", "id"],
            },
        ),
        migrations.CreateModel(
            name="PaymentModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gateway", models.CharField(max_length=50)),
                ("amount_cents", models.IntegerField()),
                ("currency", models.CharField(max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("Created", "Created"),
                            ("PendingAuthorization", "Pending Authorization"),
                            ("Authorized", "Authorized"),
                            ("PendingPurchase", "Pending Purchase"),
                            ("PendingCapture", "Pending Capture"),
                            ("Captured", "Captured"),
                            ("Refunded", "Refunded"),
                            ("Void", "Void"),
                            ("Failed", "Failed"),
                        ],
                        default="Created",
                        max_length=32,
                    ),
                ),
                ("reference", models.CharField(blank=True, default="", max_length=255)),
                ("message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "payments",
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("key", models.CharField(max_length=200, primary_key=True, serialize=False)),
                ("request_hash", models.CharField(max_length=64)),
                ("response_status", models.PositiveSmallIntegerField(default=0)),
                ("response_body", models.JSONField(default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="orders.ordermodel",
                    ),
                ),
            ],
            options={
                "db_table": "idempotency_keys",
            },
        ),
    ]
