import uuid

from django.contrib.auth import get_user_model
from django.db import models

from marketplace.catalog.domain.models.catalog import Product
from payment_system.domain.exceptions import ValidationError


User = get_user_model()


class Order(models.Model):
    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),  # Set by checkout on creation
        (STATUS_PROCESSING, "Processing"),
        (STATUS_COMPLETED, "Completed"),  # Terminal, also set by payment release
        (STATUS_CANCELLED, "Cancelled"),  # Terminal
    ]

    PAYMENT_PENDING = "pending"
    PAYMENT_PAID = "paid"
    PAYMENT_FAILED = "failed"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PAID, "Paid"),  # Set by the payment gateway collaborator
        (PAYMENT_FAILED, "Failed"),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    buyer = models.ForeignKey(User, on_delete=models.CASCADE, related_name="orders")
    # Null for multi-seller orders; sellers are then read from the items
    seller = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="sold_orders")

    # Order Details
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)

    # Pricing
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    # Settlement
    confirmed_by_buyer = models.BooleanField(default=False)  # Set by the buyer-confirmation collaborator
    payment_released = models.BooleanField(default=False)  # Monotonic: never reset once true
    payment_released_at = models.DateTimeField(null=True, blank=True)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    admin_commission = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    transfer_notes = models.TextField(blank=True)

    # Shipping Information
    shipping_address = models.JSONField(default=dict, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True)
    shipping_carrier = models.CharField(max_length=100, blank=True)

    # Notes
    admin_notes = models.TextField(blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    # Optimistic concurrency token, bumped by every ledger write
    version = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ["-created_at"]
        app_label = "marketplace"
        indexes = [
            models.Index(fields=["payment_status", "-created_at"], name="mkt_order_paystatus_idx"),
            models.Index(fields=["payment_released", "confirmed_by_buyer"], name="mkt_order_payout_idx"),
        ]

    def __str__(self):
        return f"Order {self.reference} by {self.buyer.username}"

    @property
    def reference(self):
        """Short human-facing order number."""
        return str(self.id)[:8]

    @property
    def is_status_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def seller_ids(self):
        """Sellers to settle with: the order's seller, else every distinct item seller."""
        if self.seller_id:
            return [self.seller_id]
        return list(self.items.order_by("seller_id").values_list("seller_id", flat=True).distinct())

    def seller_line_totals(self):
        """(seller_id, sum of item total_price) per seller, ordered by seller_id."""
        if self.seller_id:
            return [(self.seller_id, self.total_amount)]
        rows = self.items.values("seller_id").annotate(line_total=models.Sum("total_price")).order_by("seller_id")
        return [(row["seller_id"], row["line_total"]) for row in rows]


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    seller = models.ForeignKey(User, on_delete=models.CASCADE, related_name="sold_items")

    quantity = models.PositiveIntegerField(default=1)
    # Snapshot taken at order creation, never follows later catalog price edits
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    product_title = models.CharField(max_length=200)

    class Meta:
        app_label = "marketplace"

    def __str__(self):
        return f"{self.quantity}x {self.product_title} in order {str(self.order_id)[:8]}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._snapshot_price = instance.__dict__.get("unit_price")
        return instance

    def save(self, *args, **kwargs):
        snapshot = getattr(self, "_snapshot_price", None)
        if snapshot is not None and self.unit_price != snapshot:
            raise ValidationError(f"Order item {self.pk} price is a snapshot and cannot change")
        if self.total_price is None:
            self.total_price = self.unit_price * self.quantity
        super().save(*args, **kwargs)
        self._snapshot_price = self.unit_price
