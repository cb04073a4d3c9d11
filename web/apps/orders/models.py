import uuid

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Internal incremental counter, base of the order reference
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    class Status(models.TextChoices):
        CART = "Cart"
        UNPAID = "Unpaid"
        PAID = "Paid"
        PROCESSING = "Processing"
        SENT = "Sent"
        COMPLETE = "Complete"
        ADMIN_CANCELLED = "AdminCancelled"
        MEMBER_CANCELLED = "MemberCancelled"

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.CART)
    placed = models.DateTimeField(null=True, blank=True)
    paid = models.DateTimeField(null=True, blank=True)
    receipt_sent = models.DateTimeField(null=True, blank=True)
    locale = models.CharField(max_length=10, blank=True, default="")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )

    first_name = models.CharField(max_length=100, blank=True, default="")
    surname = models.CharField(max_length=100, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    company = models.CharField(max_length=100, blank=True, default="")
    billing_address = models.JSONField(default=dict, blank=True)
    shipping_address = models.JSONField(default=dict, blank=True)

    # Grand total snapshot, refreshed on every write
    total_cents = models.IntegerField(default=0)
    currency = models.CharField(max_length=3, default="EUR")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "orders"
        ordering = ["-internal_id"]

    @property
    def reference(self) -> str:
        prefix = getattr(settings, "SHOP_ORDER_REFERENCE_PREFIX", "R")
        return f"{prefix}{self.internal_id}" if self.internal_id is not None else ""

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .exclude(internal_id=None)
                    .order_by("-internal_id")
                    .first()
                )
                start = getattr(settings, "SHOP_ORDER_REFERENCE_START", 100)
                self.internal_id = start if not last else last.internal_id + 1

        super().save(*args, **kwargs)


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    sku = models.CharField(max_length=32)
    title = models.CharField(max_length=200, blank=True, default="")
    quantity = models.PositiveIntegerField(default=1)
    unit_price_cents = models.PositiveIntegerField(default=0)
    calculated_total_cents = models.IntegerField(null=True, blank=True)
    placed = models.BooleanField(default=False)
    paid_for = models.BooleanField(default=False)

    class Meta:
        db_table = "order_items"
        ordering = ["id"]


class OrderModifierModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="modifiers")
    name = models.CharField(max_length=100)
    # NULL while the charge is not determined yet (e.g. shipping before an address)
    amount_cents = models.IntegerField(null=True, blank=True)
    required = models.BooleanField(default=False)
    required_before_place = models.BooleanField(default=False)
    sort = models.IntegerField(default=0)
    placed = models.BooleanField(default=False)

    class Meta:
        db_table = "order_modifiers"
        ordering = ["sort", "id"]


class PaymentModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="payments")

    class Status(models.TextChoices):
        CREATED = "Created"
        PENDING_AUTHORIZATION = "PendingAuthorization"
        AUTHORIZED = "Authorized"
        PENDING_PURCHASE = "PendingPurchase"
        PENDING_CAPTURE = "PendingCapture"
        CAPTURED = "Captured"
        REFUNDED = "Refunded"
        VOID = "Void"
        FAILED = "Failed"

    gateway = models.CharField(max_length=50)
    amount_cents = models.IntegerField()
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.CREATED)
    reference = models.CharField(max_length=255, blank=True, default="")
    message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "payments"
        ordering = ["created_at"]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
