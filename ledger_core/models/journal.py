import hashlib
import json
from decimal import Decimal
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone
from ..exceptions import AlreadyPostedDifferentPayload, UnbalancedEntryError
from ..managers import JournalEntryManager
from ..utils import lock_series, money
from .account import Account

JOURNAL_STATUS = [
    ("draft", "Draft"),  # lines still being added
    ("posted", "Posted"),  # finalized, immutable
]

ENTRY_TYPES = [
    ("normal", "Normal"),
    ("payment", "Payment"),
    ("reversal", "Reversal"),
]

# What business operation produced the entry.
# Together with source_key and attempt it forms the idempotency key
OPERATIONS = [
    ("invoice", "Invoice"),
    ("payment", "Immediate payment"),
    ("balance_deduction", "Balance deduction"),
    ("return", "Return"),
    ("voucher", "Voucher"),
    ("reversal", "Reversal"),
    ("manual", "Manual"),
]


# ---------- Journal (Header) & JournalLine ----------
class JournalEntry(models.Model):  # Represents one accounting transaction
    # Sequential number, assigned when the entry is posted
    entry_number = models.PositiveIntegerField(
        null=True, blank=True, unique=True)
    date = models.DateField()
    description = models.TextField(null=True, blank=True)
    # Human-readable reference: INV-S0001, PAY-S0001, BAL-DED-S0001, REV-...
    reference = models.CharField(max_length=200, null=True, blank=True)
    entry_type = models.CharField(
        max_length=10, choices=ENTRY_TYPES, default="normal")

    """ Structured idempotency key
            operation  → what kind of posting
            source_key → business document number (invoice / voucher)
            attempt    → 1 for the first posting, 2 after a reversal, ...
    """
    operation = models.CharField(
        max_length=20, choices=OPERATIONS, default="manual")
    source_key = models.CharField(max_length=64, null=True, blank=True)
    attempt = models.PositiveIntegerField(default=1)

    # Link back to the business documents (kept for reporting only;
    # deleting the document leaves the audit trail in place)
    invoice = models.ForeignKey(
        "Invoice",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="journal_entries",
    )
    voucher = models.ForeignKey(
        "Voucher",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="journal_entries",
    )

    # An entry can be reversed at most once
    reversal_of = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversed_by",
    )

    status = models.CharField(
        max_length=10, choices=JOURNAL_STATUS, default="draft")
    posted_at = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=150, null=True, blank=True)
    # Fingerprint-based idempotency (safe to call twice if nothing has changed)
    posting_fingerprint = models.CharField(
        max_length=64, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    objects = JournalEntryManager()

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["source_key", "operation"]),
            models.Index(fields=["date"]),
            models.Index(fields=["status"]),
        ]
        constraints = [
            # One posting per (operation, document, attempt).
            # Reversal entries share the source_key of what they reverse
            models.UniqueConstraint(
                fields=["operation", "source_key", "attempt"],
                condition=(
                    models.Q(source_key__isnull=False) &
                    ~models.Q(entry_type="reversal")
                ),
                name="uq_je_operation_source_attempt",
            ),
        ]

    def __str__(self):
        return f"JE {self.entry_number or self.pk} {self.reference} [{self.status}]"

    # Aggregate all debit and credit amounts across entry’s lines
    def compute_totals(self):
        """Return debits, credits sums for lines"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.000"),
            aggs["total_credit"] or Decimal("0.000"),
        )

    # True if double-entry rule holds: total debits = total credits
    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def _posting_payload(self):
        """Deterministic representation of what matters for posting

        If the data hasn't changed, the JSON string always looks the same,
        so a second post() can tell whether that exact version was posted.
        """
        lines = [
            {
                "acct": line.account_id,
                "debit": str(line.debit),
                "credit": str(line.credit),
                "desc": line.description or "",
            }
            for line in self.lines.order_by("id").all()
        ]
        payload = {
            "date": self.date.isoformat(),
            "operation": self.operation,
            "source_key": self.source_key,
            "lines": lines,
        }
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    def _fingerprint(self):
        return hashlib.sha256(self._posting_payload().encode()).hexdigest()

    # Post the entry safely inside a database transaction
    @transaction.atomic
    def post(self, user=None):
        """
        Safely post a journal entry
        with validations, idempotency, and account balance updates.
        """
        # Lock row + lines to prevent concurrent modifications
        je = JournalEntry.objects.select_for_update().get(pk=self.pk)
        lines = je.lines.select_for_update().all()

        # lazy import to avoid circular import at module load time
        from ..services.ledger import update_account_balances

        """ Business validations """
        if not lines.exists():  # Prevent posting an empty entry
            raise ValidationError(
                "JournalEntry must have at least one JournalLine.")

        # Recompute totals fresh from DB & ignore any stale cached values
        td, tc = je.compute_totals()
        if td != tc:
            raise UnbalancedEntryError(
                f"Journal not balanced: debits={td}, credits={tc}"
            )

        fp = je._fingerprint()

        """ Idempotency & immutability """
        if je.status == "posted":
            if je.posting_fingerprint == fp:
                # Idempotent: safe to return without raising
                return je
            raise AlreadyPostedDifferentPayload(
                "Journal already posted with different payload."
            )

        """ Update state """
        # serialise numbering; the lock is held until commit
        lock_series("JOURNAL_ENTRY")
        last = JournalEntry.objects.aggregate(
            last=models.Max("entry_number"))["last"] or 0
        je.entry_number = last + 1
        je.status = "posted"
        je.posted_at = timezone.now()
        if user:
            je.created_by = user
        je.posting_fingerprint = fp
        je.save(
            update_fields=[
                "entry_number", "status", "posted_at",
                "created_by", "posting_fingerprint",
            ]
        )

        # mark all lines as posted (bulk update)
        lines.update(is_posted=True)

        # Move the cached Account.balance for every account touched
        update_account_balances(je)

        # keep the caller's instance in sync with the stored row
        for field in ("entry_number", "status", "posted_at",
                      "created_by", "posting_fingerprint"):
            setattr(self, field, getattr(je, field))
        return je

    def clean(self):
        """Don't modify posted journals"""
        if self.pk:
            orig = JournalEntry.objects.filter(pk=self.pk).first()
            if orig and orig.status == "posted":
                for f in ("date", "description", "reference", "operation",
                          "source_key", "attempt", "reversal_of_id"):
                    if getattr(orig, f) != getattr(self, f):
                        raise ValidationError(
                            "Cannot modify a posted JournalEntry. It is immutable."
                        )

        if self.reversal_of_id and self.entry_type != "reversal":
            raise ValidationError(
                "Only reversal entries may point at the entry they reverse.")

    def save(self, *args, **kwargs):
        if self.pk:
            orig = JournalEntry.objects.filter(pk=self.pk).first()
            # disallow toggling posted flag
            if orig and orig.status == "posted" and self.status != "posted":
                raise ValidationError("Cannot unpost a posted journal")
        self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # The journal is append-only once posted; correct it with a reversal
        if self.status == "posted":
            raise ValidationError(
                "Cannot delete a posted JournalEntry; reverse it instead.")
        return super().delete(*args, **kwargs)


class JournalLine(models.Model):  # Stores Lines ( credits / debits )
    """
    Each line belongs to a journal entry and to a GL account.
    The account name is copied in so the line reads the same
    even if the account is renamed later.
    """

    journal = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )

    # Must point to one Account (can’t delete account if lines exist → PROTECT)
    account = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="journal_lines")
    account_name = models.CharField(max_length=200, blank=True)

    description = models.CharField(max_length=400, null=True, blank=True)

    debit = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))
    credit = models.DecimalField(
        max_digits=18, decimal_places=3, default=Decimal("0.000"))

    # audit / immutability marker (populated when journal posted)
    is_posted = models.BooleanField(default=False)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["account"]),
            models.Index(fields=["journal"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jl_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit=0) & models.Q(credit=0)),
                name="jl_debit_xor_credit_nonzero",
            ),
        ]

    def __str__(self):
        return (
            f"{self.journal_id} | {self.account.code} {self.account_name} "
            f"| D:{self.debit} C:{self.credit}"
        )

    def clean(self):
        # redundant with CheckConstraint but useful at app-level
        if self.debit < 0 or self.credit < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if self.debit > 0 and self.credit > 0:
            raise ValidationError(
                "JournalLine should not have both debit and credit > 0"
            )
        if self.debit == 0 and self.credit == 0:
            raise ValidationError(
                "JournalLine requires a non-0 amount on either debit or credit"
            )

        if self.journal_id and JournalEntry.objects.filter(
            pk=self.journal_id, status="posted"
        ).exists():
            # Lines of a posted entry are frozen, new ones are rejected too
            raise ValidationError(
                "Cannot add or modify JournalLine: parent JournalEntry is posted."
            )

    def delete(self, *args, **kwargs):
        if self.journal_id and JournalEntry.objects.filter(
            pk=self.journal_id, status="posted"
        ).exists():
            raise ValidationError(
                "Cannot delete JournalLine: parent JournalEntry is posted."
            )
        return super().delete(*args, **kwargs)

    def save(self, *args, **kwargs):
        self.debit = money(self.debit)
        self.credit = money(self.credit)
        if not self.account_name and self.account_id:
            self.account_name = self.account.name
        self.full_clean()
        return super().save(*args, **kwargs)
