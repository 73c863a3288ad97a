from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models
from .counterparty import Customer, Supplier
from .invoice import PAYMENT_METHODS, Invoice

VOUCHER_TYPES = [
    ("receipt", "Receipt"),  # money in from a customer
    ("payment", "Payment"),  # money out to a supplier
]


class Voucher(models.Model):
    """
    Cash receipt / payment.
    Linked to an invoice it settles that invoice; unlinked it moves the
    counterparty's opening balance. Never both.
    """

    number = models.CharField(max_length=32, unique=True)
    voucher_type = models.CharField(max_length=10, choices=VOUCHER_TYPES)
    date = models.DateField()

    customer = models.ForeignKey(
        Customer,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="vouchers",
    )
    supplier = models.ForeignKey(
        Supplier,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="vouchers",
    )

    amount = models.DecimalField(max_digits=18, decimal_places=3)
    # Linked vouchers lock the invoice against deletion
    invoice = models.ForeignKey(
        Invoice,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="vouchers",
    )
    payment_method = models.CharField(
        max_length=10, choices=PAYMENT_METHODS, default="cash")
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="voucher_positive_amount",
            ),
        ]

    def __str__(self):
        return f"{self.number} {self.voucher_type} {self.amount}"

    @property
    def counterparty(self):
        return self.customer if self.voucher_type == "receipt" else self.supplier

    def clean(self):
        if self.amount is None or self.amount <= Decimal("0"):
            raise ValidationError("Voucher amount must be greater than zero.")

        # Receipts come from customers, payments go to suppliers
        if self.voucher_type == "receipt":
            if not self.customer_id or self.supplier_id:
                raise ValidationError("A receipt voucher needs a customer.")
        elif self.voucher_type == "payment":
            if not self.supplier_id or self.customer_id:
                raise ValidationError("A payment voucher needs a supplier.")

        if self.invoice_id:
            inv = self.invoice
            expected = "sales" if self.voucher_type == "receipt" else "purchase"
            if inv.invoice_type != expected or inv.is_return:
                raise ValidationError(
                    f"A {self.voucher_type} voucher can only settle "
                    f"a {expected} invoice."
                )
            if inv.counterparty_id != (self.customer_id or self.supplier_id):
                raise ValidationError(
                    "Voucher and invoice must belong to the same counterparty."
                )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
