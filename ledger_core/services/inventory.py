"""
Inventory reconciler.

Every function works on "lines": InvoiceLine rows or unsaved line inputs,
anything with ``item``, ``item_name``, ``quantity``, ``unit_price`` and
``expiry_date``. Quantities are grouped per product so an invoice that
lists the same product twice moves stock once.
"""
import datetime
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from ..conf import expiry_extension_ratio, ledger_setting
from ..exceptions import (InsufficientStockError, InsufficientStockToReverse,
                          ProductNotFound)
from ..models import InventoryItem
from ..utils import ZERO, money, to_decimal

logger = logging.getLogger(__name__)


# ----------------------------
# Product resolution
# ----------------------------
def resolve_item(item_id=None, name=None):
    """Find a product by id, falling back to its (unique) name."""
    if item_id:
        return InventoryItem.objects.filter(pk=item_id).first()
    if name:
        return InventoryItem.objects.filter(name=name.strip()).first()
    return None


def resolve_lines(lines, allow_new=False):
    """
    Attach an InventoryItem to every line that has none yet.

    Runs before any mutation. Unknown products raise ProductNotFound,
    except purchase lines given by name only (``allow_new``): those
    become new products when the purchase is applied.
    """
    missing = []
    for line in lines:
        if getattr(line, "item", None) is not None:
            continue
        item_id = getattr(line, "item_id", None)
        item = resolve_item(item_id, line.item_name)
        if item is None:
            if allow_new and not item_id and line.item_name:
                continue
            missing.append(str(item_id or line.item_name or "?"))
            continue
        line.item = item
        if not line.item_name:
            line.item_name = item.name
    if missing:
        raise ProductNotFound(f"Product not found: {', '.join(missing)}")
    return lines


def group_quantities(lines):
    """{item pk: summed quantity}"""
    grouped = {}
    for line in lines:
        if line.item is None:
            continue
        grouped[line.item.pk] = grouped.get(line.item.pk, ZERO) + to_decimal(line.quantity)
    return grouped


def _locked_items(pks):
    # sorted so concurrent reconcilers always lock in the same order
    return {
        item.pk: item
        for item in InventoryItem.objects.select_for_update().filter(
            pk__in=sorted(pks)).order_by("pk")
    }


def lock_stock(lines):
    """Lock the products of ``lines`` ahead of later stock moves."""
    return _locked_items(group_quantities(lines).keys())


# ----------------------------
# Stock checks
# ----------------------------
def check_sale_stock(lines, credit=None, error_class=InsufficientStockError):
    """
    Every product must have quantity + credit >= required.
    ``credit`` holds quantities an edited invoice already took out.
    """
    credit = credit or {}
    required = group_quantities(lines)
    items = _locked_items(required.keys())
    shortages = []
    for pk, qty in required.items():
        item = items[pk]
        available = item.quantity + credit.get(pk, ZERO)
        if available < qty:
            shortages.append(f"{item.name} (available {available}, required {qty})")
    if shortages:
        raise error_class(f"Insufficient stock: {'; '.join(shortages)}")


# ----------------------------
# Applying effects
# ----------------------------
def apply_sale(lines):
    """Take sold quantities out of stock, never below zero."""
    required = group_quantities(lines)
    items = _locked_items(required.keys())
    for pk, qty in required.items():
        item = items[pk]
        item.quantity = max(item.quantity - qty, ZERO)
        item.save(update_fields=["quantity", "updated_at"])
        logger.debug("Stock %s -%s → %s", item.name, qty, item.quantity)
    return list(items.values())


def undo_sale(lines):
    """Put sold quantities back (sales delete, edit, return)."""
    returned = group_quantities(lines)
    items = _locked_items(returned.keys())
    for pk, qty in returned.items():
        item = items[pk]
        item.quantity += qty
        item.save(update_fields=["quantity", "updated_at"])
    return list(items.values())


def _create_new_item(line):
    item, created = InventoryItem.objects.get_or_create(
        name=line.item_name.strip(),
        defaults={
            "price": money(line.unit_price),
            "purchase_price": ZERO,
            "quantity": ZERO,
        },
    )
    if created:
        logger.info("New product %s created from purchase", item.name)
    line.item = item
    return item


def _should_extend_expiry(item, incoming_qty, today):
    if not ledger_setting("EXPIRY_EXTENSION_ENABLED") or not item.expiry_date:
        return False
    days_left = item.days_until_expiry(today)
    if days_left > ledger_setting("EXPIRY_WARNING_DAYS"):
        return False
    # fresh batch must be a real part of the stock, not a top-up
    return incoming_qty > expiry_extension_ratio() * item.quantity


def apply_purchase(lines, today=None):
    """
    Add purchased quantities and merge the cost into the weighted average:
        new_cost = (old_qty × old_cost + add_qty × price) / (old_qty + add_qty)
    where price is the quantity-weighted unit price of the invoice lines.
    """
    today = today or timezone.localdate()
    for line in lines:
        if line.item is None:
            _create_new_item(line)

    groups = {}
    for line in lines:
        qty = to_decimal(line.quantity)
        group = groups.setdefault(
            line.item.pk, {"qty": ZERO, "value": ZERO, "expiry": None})
        group["qty"] += qty
        group["value"] += qty * to_decimal(line.unit_price)
        expiry = getattr(line, "expiry_date", None)
        if expiry and (group["expiry"] is None or expiry > group["expiry"]):
            group["expiry"] = expiry

    items = _locked_items(groups.keys())
    for pk, group in groups.items():
        item = items[pk]
        add_qty = group["qty"]
        weighted_price = group["value"] / add_qty
        old_qty, old_cost = item.quantity, item.purchase_price
        new_qty = old_qty + add_qty
        item.purchase_price = money((old_qty * old_cost + add_qty * weighted_price) / new_qty)

        if group["expiry"]:
            item.expiry_date = group["expiry"]
        elif _should_extend_expiry(item, add_qty, today):
            item.expiry_date = today + datetime.timedelta(
                days=ledger_setting("EXPIRY_EXTENSION_DAYS"))
            logger.info("Expiry of %s extended to %s", item.name, item.expiry_date)

        item.quantity = new_qty
        item.save(update_fields=[
            "quantity", "purchase_price", "expiry_date", "updated_at"])
        logger.debug("Stock %s +%s @ %s → %s", item.name, add_qty, weighted_price, new_qty)
    return list(items.values())


def undo_purchase(lines):
    """Take purchased quantities back out. The average cost is left as is."""
    purchased = group_quantities(lines)
    items = _locked_items(purchased.keys())
    for pk, qty in purchased.items():
        item = items[pk]
        item.quantity = max(item.quantity - qty, ZERO)
        item.save(update_fields=["quantity", "updated_at"])
    return list(items.values())


# ----------------------------
# Lifecycle helpers
# ----------------------------
@transaction.atomic
def reconcile(old_invoice, new_lines):
    """
    Move stock from the effect of a sales invoice's saved lines to the
    effect of ``new_lines``: undo the old once per product, then apply the
    new. The old quantities count as available while checking the new.
    """
    old_lines = list(old_invoice.lines.select_related("item"))
    check_sale_stock(new_lines, credit=group_quantities(old_lines))
    undo_sale(old_lines)
    apply_sale(new_lines)


@transaction.atomic
def reverse_on_delete(invoice):
    """Undo an invoice's stock effect before it is deleted."""
    lines = list(invoice.lines.select_related("item"))
    if invoice.invoice_type == "sales":
        return undo_sale(lines)
    # Part of the purchase may already be sold
    check_sale_stock(lines, error_class=InsufficientStockToReverse)
    return undo_purchase(lines)


@transaction.atomic
def apply_return(return_invoice):
    """Stock moves opposite to the original invoice."""
    lines = list(return_invoice.lines.select_related("item"))
    if return_invoice.invoice_type == "sales":
        return undo_sale(lines)
    check_sale_stock(lines)
    return undo_purchase(lines)


def stock_value(item) -> Decimal:
    return money(item.quantity * item.purchase_price)
