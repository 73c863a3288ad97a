from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from ..exceptions import DeleteNotAllowedError
from ..managers import InvoiceManager
from ..utils import ZERO, money, to_decimal
from .counterparty import Customer, Supplier
from .inventory import InventoryItem

INVOICE_TYPES = [
    ("sales", "Sales"),
    ("purchase", "Purchase"),
]

PAYMENT_STATUS_CHOICES = [
    ("paid", "Paid"),
    ("partial", "Partially paid"),
    ("pending", "Pending"),
    ("overdue", "Overdue"),
    ("n/a", "Not applicable"),  # returns that were not refunded
]

PAYMENT_METHODS = [
    ("cash", "Cash"),
    ("bank", "Bank"),
]

DISCOUNT_TYPES = [
    ("amount", "Amount"),
    ("percentage", "Percentage"),
]

LIFECYCLE_STATES = [
    ("posted", "Posted"),
    ("returned_partial", "Partially returned"),
    ("returned_full", "Fully returned"),
]

HUNDRED = Decimal("100")


def discount_value(base, discount, discount_type):
    """Turn a discount input into an amount, never more than ``base``."""
    base = to_decimal(base)
    discount = to_decimal(discount)
    if discount_type == "percentage":
        amount = base * discount / HUNDRED
    else:
        amount = discount
    return money(min(max(amount, ZERO), max(base, ZERO)))


def compute_line_amounts(quantity, unit_price, color_price=0,
                         discount=0, discount_type="amount"):
    """
    Returns (discount_amount, total) for one invoice line:
      gross = quantity × (unit_price + color_price)
      total = max(0, gross - discount)
    """
    gross = to_decimal(quantity) * (to_decimal(unit_price) + to_decimal(color_price))
    discount_amount = discount_value(gross, discount, discount_type)
    return discount_amount, money(max(gross - discount_amount, ZERO))


def compute_invoice_amounts(subtotal, discount=0, discount_type="amount", vat_rate=0):
    """
    Returns (discount_amount, vat_amount, total):
      vat   = (subtotal - discount) × rate / 100
      total = subtotal - discount + vat
    """
    subtotal = money(subtotal)
    discount_amount = discount_value(subtotal, discount, discount_type)
    taxable = subtotal - discount_amount
    vat_amount = money(taxable * to_decimal(vat_rate) / HUNDRED)
    return discount_amount, vat_amount, money(taxable + vat_amount)


class Invoice(models.Model):  # Sales or purchase invoice, or a return of one

    # Identifiers and key dates
    number = models.CharField(max_length=32, unique=True)  # S0001, P0001, SR0001
    invoice_type = models.CharField(max_length=10, choices=INVOICE_TYPES)
    date = models.DateField()
    due_date = models.DateField(null=True, blank=True)

    # Exactly one counterparty, matching the invoice type.
    # PROTECT: a counterparty with invoices can't be deleted
    customer = models.ForeignKey(
        Customer,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    supplier = models.ForeignKey(
        Supplier,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="invoices",
    )

    # Totals, always derived from the lines
    subtotal = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    discount = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    discount_type = models.CharField(
        max_length=10, choices=DISCOUNT_TYPES, default="amount")
    discount_amount = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    vat_rate = models.DecimalField(
        max_digits=6, decimal_places=3, default=Decimal("0.000"))
    vat_amount = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    total = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))

    # Settlement
    payment_status = models.CharField(
        max_length=10, choices=PAYMENT_STATUS_CHOICES, default="pending")
    payment_method = models.CharField(
        max_length=10, choices=PAYMENT_METHODS, default="cash")
    # paid at creation (partial invoices only; paid invoices pay the total)
    initial_payment = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    # settled from the counterparty's opening credit
    balance_deducted = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    """ paid_amount = initial_payment + balance_deducted
                      + Σ linked voucher amounts """
    paid_amount = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))

    # Returns
    is_return = models.BooleanField(default=False)
    original_invoice = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        # an invoice with returns can't be deleted
        on_delete=models.PROTECT,
        related_name="returns",
    )
    lifecycle_state = models.CharField(
        max_length=20, choices=LIFECYCLE_STATES, default="posted")

    # Bumped on every mutation; clients send it back for optimistic checks
    version = models.PositiveIntegerField(default=1)

    description = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InvoiceManager()

    class Meta:
        ordering = ["-date", "-id"]
        indexes = [
            models.Index(fields=["invoice_type", "is_return"]),
            models.Index(fields=["due_date"]),
            models.Index(fields=["customer"]),
            models.Index(fields=["supplier"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total__gte=0) &
                models.Q(paid_amount__gte=0),
                name="inv_non_negative_amounts",
            ),
        ]

    def __str__(self):
        return f"{self.number} ({self.invoice_type})"

    @property
    def counterparty(self):
        return self.customer if self.invoice_type == "sales" else self.supplier

    @property
    def counterparty_id(self):
        return self.customer_id if self.invoice_type == "sales" else self.supplier_id

    @property
    def returned_total(self):
        """Sum of the totals of every return raised against this invoice."""
        if not self.pk or self.is_return:
            return ZERO
        agg = self.returns.aggregate(total=models.Sum("total"))
        return agg["total"] or ZERO

    @property
    def net_total(self):
        return money(self.total - self.returned_total)

    @property
    def outstanding(self):
        return money(max(self.net_total - self.paid_amount, ZERO))

    @property
    def unpaid_amount(self):
        """total - paid, the figure the balance calculator sums."""
        return money(self.total - self.paid_amount)

    def clean(self):
        if self.invoice_type == "sales":
            if not self.customer_id:
                raise ValidationError("A sales invoice needs a customer.")
            if self.supplier_id:
                raise ValidationError("A sales invoice cannot have a supplier.")
        elif self.invoice_type == "purchase":
            if not self.supplier_id:
                raise ValidationError("A purchase invoice needs a supplier.")
            if self.customer_id:
                raise ValidationError("A purchase invoice cannot have a customer.")

        if self.is_return:
            if not self.original_invoice_id:
                raise ValidationError("A return must reference its original invoice.")
            if self.original_invoice.invoice_type != self.invoice_type:
                raise ValidationError(
                    "A return must have the same type as its original invoice.")
        elif self.original_invoice_id:
            raise ValidationError("Only returns may reference an original invoice.")

        if self.vat_rate is not None and self.vat_rate < 0:
            raise ValidationError("VAT rate cannot be negative.")
        if self.discount is not None and self.discount < 0:
            raise ValidationError("Discount cannot be negative.")
        if (self.discount_type == "percentage" and self.discount is not None
                and self.discount > HUNDRED):
            raise ValidationError("Discount percentage cannot exceed 100.")

        if self.due_date and self.date and self.due_date < self.date:
            raise ValidationError("Due date cannot be before the invoice date.")

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    """ Returns and vouchers keep the audit trail of an invoice alive """

    def delete(self, *args, **kwargs):
        if self.is_return:
            raise DeleteNotAllowedError("Return invoices cannot be deleted.")
        if self.returns.exists():
            raise DeleteNotAllowedError(
                "Cannot delete an invoice that has returns.")
        if self.vouchers.exists():
            raise DeleteNotAllowedError(
                "Cannot delete an invoice with linked vouchers.")
        return super().delete(*args, **kwargs)

    def transition_to(self, new_state):
        # Current lifecycle state vs. allowed next states
        allowed = {
            "posted": ["returned_partial", "returned_full"],
            "returned_partial": ["returned_partial", "returned_full"],
            "returned_full": [],
        }
        if new_state not in allowed.get(self.lifecycle_state, []):
            raise ValidationError(
                f"Cannot go from {self.lifecycle_state} to {new_state}")
        self.lifecycle_state = new_state
        self.save(update_fields=["lifecycle_state", "updated_at"])


class InvoiceLine(models.Model):  # One product line on an invoice

    invoice = models.ForeignKey(
        Invoice, on_delete=models.CASCADE, related_name="lines")

    # Explicit product reference; item_name is a snapshot for display
    item = models.ForeignKey(
        InventoryItem,
        # Prevent deleting a product which has been invoiced
        on_delete=models.PROTECT,
        related_name="invoice_lines",
    )
    item_name = models.CharField(max_length=200, blank=True)

    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_price = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    # surcharge per unit (colour option), added to the unit price
    color_price = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    discount = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    discount_type = models.CharField(
        max_length=10, choices=DISCOUNT_TYPES, default="amount")
    discount_amount = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    total = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))

    # purchase lines can carry the batch expiry date
    expiry_date = models.DateField(null=True, blank=True)

    # return lines point at the line they give back
    original_line = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="returned_lines",
    )

    class Meta:
        ordering = ["id"]
        indexes = [models.Index(fields=["invoice"]), models.Index(fields=["item"])]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="invl_positive_quantity",
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0) &
                models.Q(color_price__gte=0),
                name="invl_non_negative_prices",
            ),
        ]

    def __str__(self):
        return f"Invoice: {self.invoice.number} - Item: {self.item_name} - Total: {self.total}"

    def clean(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError("Quantity must be > 0")
        if self.unit_price is not None and self.unit_price < 0:
            raise ValidationError("Unit price must be >= 0")
        if self.color_price is not None and self.color_price < 0:
            raise ValidationError("Color price must be >= 0")

    def save(self, *args, **kwargs):
        # compute line total always
        self.discount_amount, self.total = compute_line_amounts(
            self.quantity, self.unit_price, self.color_price,
            self.discount, self.discount_type,
        )
        if not self.item_name and self.item_id:
            self.item_name = self.item.name
        self.full_clean()
        return super().save(*args, **kwargs)
