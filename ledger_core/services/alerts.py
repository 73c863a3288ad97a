"""
Alert derivation.

Pure functions over snapshots of invoices and products; nothing here
writes. derive_alerts() is the one entry point that reads the database.
"""
from dataclasses import dataclass, field

from django.utils import timezone

from ..conf import ledger_setting
from ..models import InventoryItem, Invoice
from ..utils import ZERO, money

# expiry bands shown next to products
EXPIRY_SOON_DAYS = 30
EXPIRY_QUARTER_DAYS = 90


def _open(invoice):
    """Documents that still expect money: not paid, not a return."""
    return not invoice.is_return and invoice.payment_status not in ("paid", "n/a")


def days_until_due(invoice, today):
    if not invoice.due_date:
        return None
    return (invoice.due_date - today).days


def overdue_invoices(invoices, today):
    return [
        inv for inv in invoices
        if _open(inv) and inv.due_date and inv.due_date < today
    ]


def invoices_due_soon(invoices, today, days=None):
    """Unpaid invoices due within the next ``days`` days (today included)."""
    if days is None:
        days = ledger_setting("DUE_SOON_DAYS")
    result = []
    for inv in invoices:
        remaining = days_until_due(inv, today)
        if _open(inv) and remaining is not None and 0 <= remaining <= days:
            result.append(inv)
    return result


def invoices_due_today(invoices, today):
    return invoices_due_soon(invoices, today, days=0)


def low_stock_items(items):
    return [item for item in items if item.quantity < item.min_stock_level]


def expiring_items(items, today, days=None):
    if days is None:
        days = ledger_setting("EXPIRY_WARNING_DAYS")
    result = []
    for item in items:
        remaining = item.days_until_expiry(today)
        if remaining is not None and 0 <= remaining <= days:
            result.append(item)
    return result


def expired_items(items, today):
    return [
        item for item in items
        if item.expiry_date and item.days_until_expiry(today) < 0
    ]


def expiry_status(item, today):
    """expired / expiring_soon / expiring_within_3_months, or None."""
    remaining = item.days_until_expiry(today)
    if remaining is None:
        return None
    if remaining < 0:
        return "expired"
    if remaining <= EXPIRY_SOON_DAYS:
        return "expiring_soon"
    if remaining <= EXPIRY_QUARTER_DAYS:
        return "expiring_within_3_months"
    return None


def stock_alert_level(item):
    """out_of_stock / critical_low, or None when stock is fine."""
    if item.quantity <= 0:
        return "out_of_stock"
    if item.quantity <= item.min_stock_level:
        return "critical_low"
    return None


def _summary(invoices):
    return {
        "count": len(invoices),
        "amount": money(sum((inv.total for inv in invoices), ZERO)),
        "invoices": invoices,
    }


def invoice_notifications(invoices, today):
    """Counts and amounts for the overdue / due soon / due today banners."""
    invoices = list(invoices)
    return {
        "overdue": _summary(overdue_invoices(invoices, today)),
        "due_soon": _summary(invoices_due_soon(invoices, today)),
        "due_today": _summary(invoices_due_today(invoices, today)),
    }


@dataclass
class Alerts:
    overdue: list = field(default_factory=list)
    due_soon: list = field(default_factory=list)
    low_stock: list = field(default_factory=list)
    expiring: list = field(default_factory=list)
    expired: list = field(default_factory=list)

    @property
    def total(self):
        return (len(self.overdue) + len(self.due_soon) + len(self.low_stock)
                + len(self.expiring) + len(self.expired))


def derive_alerts(today=None):
    """Every alert set, computed from the current database state."""
    today = today or timezone.localdate()
    invoices = list(
        Invoice.objects.unpaid().filter(due_date__isnull=False)
        .select_related("customer", "supplier")
    )
    items = list(InventoryItem.objects.all())
    return Alerts(
        overdue=overdue_invoices(invoices, today),
        due_soon=invoices_due_soon(invoices, today),
        low_stock=low_stock_items(items),
        expiring=expiring_items(items, today),
        expired=expired_items(items, today),
    )
