from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models


class Counterparty(models.Model):
    """
    Shared fields of customers and suppliers.

    ``balance`` holds the opening balance only. Invoices never touch it;
    the running balance is derived by services.balances. Unlinked vouchers
    and balance deductions move it after creation.
    """

    # "customer" or "supplier"; set by the concrete classes
    ROLE = None
    # +1 → an opening balance means they owe us, -1 → we owe them
    BALANCE_SIGN = 1

    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=50, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    balance = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["name"]

    def __str__(self):
        return self.name

    def opening_balance_error(self, value):
        """Message describing why ``value`` is not a valid opening balance."""
        raise NotImplementedError

    def clean(self):
        # Sign rules apply to the value typed in at creation;
        # vouchers may later push it past zero (advance payments)
        if self._state.adding:
            error = self.opening_balance_error(self.balance)
            if error:
                raise ValidationError({"balance": error})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


# ---------- Customer ----------
class Customer(Counterparty):
    ROLE = "customer"
    BALANCE_SIGN = 1

    class Meta(Counterparty.Meta):
        indexes = [models.Index(fields=["name"])]

    def opening_balance_error(self, value):
        if value is not None and value < 0:
            return "Customer opening balance cannot be negative."
        return None


# ---------- Supplier ----------
class Supplier(Counterparty):
    ROLE = "supplier"
    BALANCE_SIGN = -1

    class Meta(Counterparty.Meta):
        indexes = [models.Index(fields=["name"])]

    def opening_balance_error(self, value):
        if value is not None and value > 0:
            return "Supplier opening balance cannot be positive."
        return None
