from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models

# Choice Lists
AC_TYPES = [
    # Used in Account model to classify general ledger accounts
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("revenue", "Revenue"),
    ("expense", "Expense"),
]

# Define whether the account normally increases
# on the debit side or credit side
NORMAL_BALANCE = [
    ("debit", "Debit"),
    ("credit", "Credit"),
]

DEBIT_NORMAL_TYPES = ("asset", "expense")


class Account(models.Model):
    """
    Ledger account in the chart of accounts.
    - code is unique (1001 Cash, 1101 Customers, 4001 Sales, ...)
    - ac_type: determines reporting -BS vs P&L
    - normal_balance: used to interpret the sign of ``balance``
    - balance: cache maintained by journal postings only
    """

    code = models.CharField(max_length=32, unique=True)
    # Human-readable name → "Cash", "Customers"
    name = models.CharField(max_length=200)

    ac_type = models.CharField(max_length=10, choices=AC_TYPES)

    # Assets/Expenses → Debit, Liabilities/Equity/Revenue → Credit.
    # Left blank on creation it is derived from ac_type
    normal_balance = models.CharField(
        max_length=6, choices=NORMAL_BALANCE, blank=True
    )

    # Running balance in the account's own normal direction
    balance = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000")
    )

    # marker for accounts that must reconcile with subledgers
    # (Customers ↔ customer balances, Suppliers ↔ supplier balances)
    is_control_account = models.BooleanField(default=False)

    # “soft deactivate” accounts without deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["code"]
        indexes = [models.Index(fields=["ac_type"])]

    def __str__(self):
        return f"{self.code} – {self.name}"

    @property
    def is_debit_normal(self):
        return self.normal_balance == "debit"

    def clean(self):
        expected = "debit" if self.ac_type in DEBIT_NORMAL_TYPES else "credit"
        if not self.normal_balance:
            self.normal_balance = expected

    def save(self, *args, **kwargs):
        """Enforce business immutability
        (can’t disable accounts used in journal lines)"""
        if self.pk:
            old = Account.objects.filter(pk=self.pk).first()
            # If account was active before, but now being set to inactive
            if old and old.is_active and not self.is_active:
                from .journal import JournalLine

                if JournalLine.objects.filter(account=self).exists():
                    raise ValidationError(
                        "Cannot disable an account that is used in journal lines."
                    )
        self.full_clean()
        return super().save(*args, **kwargs)
