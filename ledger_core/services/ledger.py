"""
Journal ledger: balanced, append-only, idempotent postings.

Callers describe an entry as a list of EntryLine values and hand it to
post_entry(). Corrections never edit or delete posted rows; they go
through reverse_entries(), which posts mirror-image entries.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from ..exceptions import UnbalancedEntryError
from ..models import Account, JournalEntry, JournalLine
from ..utils import ZERO, money
from .audit_helper import actor_name, log_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryLine:
    account: Account
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""

    @classmethod
    def dr(cls, account, amount, description=""):
        return cls(account=account, debit=money(amount), description=description)

    @classmethod
    def cr(cls, account, amount, description=""):
        return cls(account=account, credit=money(amount), description=description)

    @property
    def is_zero(self):
        return self.debit == 0 and self.credit == 0


@dataclass(frozen=True)
class DuplicatePostingSkipped:
    """Returned instead of an entry when the duplicate guard kicks in."""
    operation: str
    source_key: str
    existing: JournalEntry
    reference: str | None = None

    def __bool__(self):
        # truthiness means "something was posted"
        return False


def validate_lines(lines):
    """
    Drop zero lines and check the double-entry rule.
    Returns the cleaned list; raises UnbalancedEntryError when debits != credits.
    """
    cleaned = []
    for line in lines:
        debit, credit = money(line.debit), money(line.credit)
        if debit < 0 or credit < 0:
            raise UnbalancedEntryError(
                f"Negative amount on {line.account}: debit={debit}, credit={credit}")
        if debit > 0 and credit > 0:
            raise UnbalancedEntryError(
                f"Line on {line.account} has both a debit and a credit")
        if debit == 0 and credit == 0:
            continue
        cleaned.append(EntryLine(line.account, debit, credit, line.description))

    total_debit = sum((line.debit for line in cleaned), ZERO)
    total_credit = sum((line.credit for line in cleaned), ZERO)
    if total_debit != total_credit:
        logger.error(
            "Refusing unbalanced entry: debits=%s credits=%s", total_debit, total_credit)
        raise UnbalancedEntryError(
            f"Journal not balanced: debits={total_debit}, credits={total_credit}")
    return cleaned


def find_entries(source_key, operation=None):
    """Every entry (originals and reversals) recorded for a document."""
    return JournalEntry.objects.for_key(source_key, operation).order_by("id")


def active_entries(source_key, operation=None):
    return JournalEntry.objects.active().for_key(source_key, operation).order_by("id")


def _next_attempt(operation, source_key):
    last = (
        JournalEntry.objects.for_key(source_key, operation)
        .exclude(entry_type="reversal")
        .aggregate(last=models.Max("attempt"))["last"]
    )
    return (last or 0) + 1


@transaction.atomic
def post_entry(
    *,
    date,
    description,
    lines,
    operation="manual",
    source_key=None,
    reference=None,
    entry_type="normal",
    invoice=None,
    voucher=None,
    user=None,
    guard=True,
):
    """
    Validate, create and post one journal entry.

    Returns the posted JournalEntry, None when every line was zero,
    or a DuplicatePostingSkipped when an active entry already exists
    for (operation, source_key) and ``guard`` is on.
    """
    # Validation happens before any row is written
    lines = validate_lines(lines)
    if not lines:
        logger.debug("Nothing to post for %s %s: all lines are zero", operation, source_key)
        return None

    if guard and source_key:
        existing = active_entries(source_key, operation).first()
        if existing is not None:
            skipped = DuplicatePostingSkipped(
                operation=operation,
                source_key=source_key,
                existing=existing,
                reference=reference,
            )
            logger.warning(
                "Duplicate posting skipped: %s %s already posted as JE %s",
                operation, source_key, existing.entry_number,
            )
            log_action(
                action="skip_duplicate",
                instance=existing,
                user=user,
                changes={"operation": operation, "source_key": source_key},
            )
            return skipped

    je = JournalEntry.objects.create(
        date=date,
        description=description,
        reference=reference,
        entry_type=entry_type,
        operation=operation,
        source_key=source_key,
        attempt=_next_attempt(operation, source_key) if source_key else 1,
        invoice=invoice,
        voucher=voucher,
        created_by=actor_name(user),
    )
    for line in lines:
        JournalLine.objects.create(
            journal=je,
            account=line.account,
            account_name=line.account.name,
            description=line.description or description,
            debit=line.debit,
            credit=line.credit,
        )

    # Post (this runs validations & marks lines posted)
    je.post()
    logger.info(
        "Posted JE %s %s (%s %s attempt %s)",
        je.entry_number, reference, operation, source_key, je.attempt,
    )
    return je


@transaction.atomic
def reverse_entries(source_key, operation=None, *, date=None, user=None, reason=""):
    """
    Post a reversal for every active entry of ``source_key``.
    Already reversed entries are skipped, so calling twice is a no-op.
    """
    date = date or timezone.localdate()
    reversals = []
    originals = JournalEntry.objects.select_for_update().filter(
        pk__in=active_entries(source_key, operation).values("pk")
    ).order_by("id")

    for original in originals:
        rev = JournalEntry.objects.create(
            date=date,
            description=reason or f"Reversal of {original.reference}",
            reference=f"REV-{original.reference}",
            entry_type="reversal",
            operation="reversal",
            source_key=original.source_key,
            attempt=original.attempt,
            invoice=original.invoice,
            voucher=original.voucher,
            reversal_of=original,
            created_by=actor_name(user),
        )
        # Swap the sides of every original line
        for line in original.lines.all():
            JournalLine.objects.create(
                journal=rev,
                account=line.account,
                account_name=line.account_name,
                description=f"Reversal: {line.description or ''}".strip(),
                debit=line.credit,
                credit=line.debit,
            )
        rev.post()
        reversals.append(rev)
        logger.info("Reversed JE %s with JE %s", original.entry_number, rev.entry_number)

    if reversals:
        log_action(
            action="reverse",
            user=user,
            object_type="JournalEntry",
            object_id=source_key,
            changes={"reversed": [r.reversal_of.reference for r in reversals]},
        )
    return reversals


def update_account_balances(je):
    """Apply a posted entry's lines to the cached Account.balance."""
    movements = je.lines.order_by().values("account_id").annotate(
        debit=models.Sum("debit"), credit=models.Sum("credit"))
    for mv in movements:
        debit, credit = mv["debit"] or ZERO, mv["credit"] or ZERO
        Account.objects.filter(pk=mv["account_id"], normal_balance="debit").update(
            balance=F("balance") + debit - credit)
        Account.objects.filter(pk=mv["account_id"], normal_balance="credit").update(
            balance=F("balance") + credit - debit)


def find_unbalanced_entries():
    """Exhaustive scan: posted entries whose lines don't balance."""
    return list(
        JournalEntry.objects.posted()
        .annotate(
            total_debit=models.Sum("lines__debit"),
            total_credit=models.Sum("lines__credit"),
        )
        .exclude(total_debit=F("total_credit"))
    )


@transaction.atomic
def recompute_account_balances():
    """Rebuild every Account.balance from posted lines. Returns fixed accounts."""
    fixed = []
    for account in Account.objects.select_for_update():
        agg = JournalLine.objects.filter(account=account, is_posted=True).aggregate(
            debit=models.Sum("debit"), credit=models.Sum("credit"))
        debit, credit = agg["debit"] or ZERO, agg["credit"] or ZERO
        expected = debit - credit if account.is_debit_normal else credit - debit
        if account.balance != expected:
            logger.warning(
                "Account %s balance drifted: cached=%s expected=%s",
                account.code, account.balance, expected,
            )
            Account.objects.filter(pk=account.pk).update(balance=expected)
            fixed.append(account)
    return fixed
