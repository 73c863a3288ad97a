from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..managers import InventoryItemManager


# ---------- Inventory ----------
class InventoryItem(models.Model):  # A product the shop buys and sells

    # Invoice lines fall back to the name when no item id is given
    name = models.CharField(max_length=200, unique=True)
    sku = models.CharField(max_length=80, null=True, blank=True, unique=True)
    description = models.TextField(blank=True)

    # Stock on hand, only mutated by services.inventory after creation
    quantity = models.DecimalField(
        max_digits=14, decimal_places=3, default=Decimal("0.000"))

    # Selling price
    price = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    # Weighted-average purchase cost
    purchase_price = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))

    min_stock_level = models.DecimalField(
        max_digits=14, decimal_places=3, default=Decimal("0.000"))
    expiry_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InventoryItemManager()

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="inv_item_non_negative_quantity",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0) &
                models.Q(purchase_price__gte=0),
                name="inv_item_non_negative_prices",
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def is_low_stock(self):
        return self.quantity < self.min_stock_level

    def days_until_expiry(self, today):
        if not self.expiry_date:
            return None
        return (self.expiry_date - today).days

    def clean(self):
        if self.quantity is not None and self.quantity < 0:
            raise ValidationError("Stock quantity cannot be negative.")
        # blank SKUs are stored as NULL so the unique index ignores them
        if not self.sku:
            self.sku = None

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
