"""
Invoice lifecycle: create, edit, delete and return.

Each operation is one database transaction. Validation runs first; then
the invoice, counterparty and product rows are locked; then the old effect
is undone, the new one applied and the journal entries posted. Any error
rolls the whole unit back.
"""
import logging
from dataclasses import dataclass, field
from datetime import date as date_cls
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from ..exceptions import (ConcurrentModificationError, DeleteNotAllowedError,
                          EditNotAllowedError, ReturnQuantityExceededError)
from ..models import Customer, InventoryItem, Invoice, InvoiceLine, Supplier
from ..models.invoice import (PAYMENT_METHODS, compute_invoice_amounts,
                              compute_line_amounts)
from ..signals import notify_change
from ..utils import ZERO, generate_number, money, parse_day, to_decimal
from . import inventory
from .audit_helper import log_action, snapshot
from .balances import available_credit
from .chart import get_account, settlement_account
from .ledger import EntryLine, post_entry, reverse_entries

logger = logging.getLogger(__name__)

# Statuses a caller may choose; "n/a" is reserved for unrefunded returns
CREATE_STATUSES = ("paid", "partial", "pending", "overdue")

NUMBER_SERIES_KEYS = {
    ("sales", False): "SALES_INVOICE",
    ("purchase", False): "PURCHASE_INVOICE",
    ("sales", True): "SALES_RETURN",
    ("purchase", True): "PURCHASE_RETURN",
}

# Purchase invoices are edit-locked apart from these
PURCHASE_EDITABLE_FIELDS = ("description", "notes")
# Keys clients send along that are not invoice data
META_KEYS = ("version", "expected_version", "id", "number",
             "deduct_from_balance", "deduction_amount")


@dataclass
class LineInput:
    """One invoice line as submitted, before it is saved."""
    item_name: str = ""
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    color_price: Decimal = ZERO
    discount: Decimal = ZERO
    discount_type: str = "amount"
    expiry_date: date_cls | None = None
    item_id: int | None = None
    item: InventoryItem | None = None
    original_line: InvoiceLine | None = field(default=None, repr=False)

    @property
    def amounts(self):
        return compute_line_amounts(
            self.quantity, self.unit_price, self.color_price,
            self.discount, self.discount_type,
        )

    @property
    def total(self):
        return self.amounts[1]

    def signature(self):
        """Comparable tuple of everything that moves money or stock."""
        return (
            self.item.pk if self.item else self.item_id, money(self.quantity),
            money(self.unit_price), money(self.color_price),
            money(self.discount), self.discount_type,
        )


# ----------------------------
# Input parsing
# ----------------------------
def parse_lines(raw_lines):
    """Turn submitted line dicts into LineInput values."""
    if not raw_lines:
        raise ValidationError("An invoice needs at least one line.")
    lines = []
    for idx, raw in enumerate(raw_lines, start=1):
        item = raw.get("item")
        line = LineInput(
            item_name=(raw.get("item_name") or raw.get("name") or "").strip(),
            quantity=to_decimal(raw.get("quantity")),
            unit_price=to_decimal(raw.get("unit_price", raw.get("price"))),
            color_price=to_decimal(raw.get("color_price")),
            discount=to_decimal(raw.get("discount")),
            discount_type=raw.get("discount_type") or "amount",
            expiry_date=parse_day(raw.get("expiry_date"), "expiry_date"),
            item_id=raw.get("item_id") or (item if isinstance(item, int) else None),
            item=item if isinstance(item, InventoryItem) else None,
        )
        if line.quantity <= 0:
            raise ValidationError(f"Line {idx}: quantity must be greater than zero.")
        if line.unit_price < 0 or line.color_price < 0:
            raise ValidationError(f"Line {idx}: prices cannot be negative.")
        if line.discount < 0:
            raise ValidationError(f"Line {idx}: discount cannot be negative.")
        if line.discount_type not in ("amount", "percentage"):
            raise ValidationError(f"Line {idx}: unknown discount type.")
        if not (line.item or line.item_id or line.item_name):
            raise ValidationError(f"Line {idx}: a product is required.")
        lines.append(line)
    return lines


def _lines_from_invoice(invoice):
    return [
        LineInput(
            item_name=line.item_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            color_price=line.color_price,
            discount=line.discount,
            discount_type=line.discount_type,
            expiry_date=line.expiry_date,
            item_id=line.item_id,
            item=line.item,
        )
        for line in invoice.lines.select_related("item")
    ]


def _resolve_counterparty(invoice_type, data, current=None):
    model, key = (Customer, "customer") if invoice_type == "sales" else (Supplier, "supplier")
    value = data.get(key, data.get(f"{key}_id"))
    if value is None:
        if current is not None:
            return current
        raise ValidationError({key: f"A {invoice_type} invoice needs a {key}."})
    if isinstance(value, model):
        return value
    try:
        return model.objects.get(pk=value)
    except (model.DoesNotExist, ValueError, TypeError):
        raise ValidationError({key: f"Unknown {key}: {value}"})


# ----------------------------
# Status helpers
# ----------------------------
def auto_payment_status(current, due_date, today=None):
    """
    Derive the time-driven part of the payment status:
    pending past its due date becomes overdue, overdue with a future
    due date goes back to pending. Other statuses are left alone.
    """
    if current not in ("pending", "overdue"):
        return current
    if not due_date:
        return current or "pending"
    today = today or timezone.localdate()
    return "overdue" if due_date < today else "pending"


def _settled_status(invoice, today=None):
    """Status after money moved: paid / partial / time-driven."""
    net_total = invoice.net_total
    # fully returned: nothing left to collect
    if invoice.pk and invoice.returns.exists() and net_total <= 0:
        return "paid"
    if invoice.paid_amount > 0 and invoice.paid_amount >= net_total:
        return "paid"
    if invoice.paid_amount > 0:
        return "partial"
    return auto_payment_status(
        "pending" if invoice.payment_status in ("paid", "partial") else invoice.payment_status,
        invoice.due_date, today,
    )


def _voucher_total(invoice):
    if not invoice.pk:
        return ZERO
    return invoice.vouchers.aggregate(total=models.Sum("amount"))["total"] or ZERO


def _apply_totals(invoice, lines, data):
    invoice.discount = to_decimal(data.get("discount", invoice.discount))
    invoice.discount_type = data.get("discount_type", invoice.discount_type) or "amount"
    invoice.vat_rate = to_decimal(data.get("vat_rate", invoice.vat_rate))
    invoice.subtotal = money(sum((line.total for line in lines), ZERO))
    invoice.discount_amount, invoice.vat_amount, invoice.total = compute_invoice_amounts(
        invoice.subtotal, invoice.discount, invoice.discount_type, invoice.vat_rate)


def _apply_payment_terms(invoice, data, today=None):
    """
    Validate the requested payment status and set initial_payment.
    ``paid_amount`` in the request is what the customer paid up front.
    """
    status = data.get("payment_status", invoice.payment_status) or "pending"
    if status not in CREATE_STATUSES:
        raise ValidationError({"payment_status": f"Invalid payment status: {status}"})
    method = data.get("payment_method", invoice.payment_method) or "cash"
    if method not in dict(PAYMENT_METHODS):
        raise ValidationError({"payment_method": f"Invalid payment method: {method}"})
    invoice.payment_method = method

    already_settled = invoice.balance_deducted + _voucher_total(invoice)
    if status == "paid":
        invoice.initial_payment = money(max(invoice.total - already_settled, ZERO))
    elif status == "partial":
        initial = money(data.get("paid_amount", invoice.initial_payment))
        if not ZERO < initial + already_settled < invoice.total:
            raise ValidationError(
                {"paid_amount": "A partial payment must be more than 0 and less than the total."})
        invoice.initial_payment = initial
    else:
        invoice.initial_payment = ZERO
        status = auto_payment_status(status, invoice.due_date, today)

    invoice.paid_amount = money(invoice.initial_payment + already_settled)
    if invoice.paid_amount > invoice.total:
        raise ValidationError("Paid amount cannot exceed the invoice total.")
    if invoice.paid_amount > 0 and invoice.paid_amount >= invoice.total and status != "paid":
        status = "paid"
    elif invoice.paid_amount > 0 and status in ("pending", "overdue"):
        # vouchers already settled part of it
        status = "partial"
    invoice.payment_status = status


def _current_terms(invoice):
    """
    Payment terms of an existing invoice expressed as request data, so an
    edit that doesn't mention them keeps them. Deductions and vouchers are
    re-applied on top and are not part of the requested status.
    """
    if invoice.initial_payment <= 0:
        return {"payment_status": "pending"}
    settled_elsewhere = invoice.balance_deducted + _voucher_total(invoice)
    if not settled_elsewhere and invoice.initial_payment >= invoice.total:
        return {"payment_status": "paid"}
    return {"payment_status": "partial", "paid_amount": invoice.initial_payment}


def _save_lines(invoice, lines):
    for line in lines:
        InvoiceLine.objects.create(
            invoice=invoice,
            item=line.item,
            item_name=line.item_name or line.item.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            color_price=line.color_price,
            discount=line.discount,
            discount_type=line.discount_type,
            expiry_date=line.expiry_date,
            original_line=line.original_line,
        )


# ----------------------------
# Journal postings
# ----------------------------
def _post_invoice_entries(invoice, user=None):
    """
    Main entry plus the optional immediate payment.

    sales:    Dr cash/bank (paid) + Dr receivables (rest) / Cr sales / Cr VAT
    purchase: Dr inventory / Dr VAT / Cr cash/bank (paid) + Cr payables (rest)
    """
    number = invoice.number
    net = money(invoice.subtotal - invoice.discount_amount)
    paid_now = invoice.initial_payment if invoice.payment_status == "paid" else ZERO
    on_account = money(invoice.total - paid_now)
    cash = settlement_account(invoice.payment_method)

    if invoice.invoice_type == "sales":
        ar = get_account("receivables")
        lines = [
            EntryLine.dr(cash, paid_now, f"Cash sale {number}"),
            EntryLine.dr(ar, on_account, f"Receivable for {number}"),
            EntryLine.cr(get_account("sales"), net, f"Sales {number}"),
            EntryLine.cr(get_account("vat_payable"), invoice.vat_amount, f"VAT on {number}"),
        ]
    else:
        ap = get_account("payables")
        lines = [
            EntryLine.dr(get_account("inventory"), net, f"Stock purchased on {number}"),
            EntryLine.dr(get_account("vat_receivable"), invoice.vat_amount, f"VAT on {number}"),
            EntryLine.cr(cash, paid_now, f"Cash purchase {number}"),
            EntryLine.cr(ap, on_account, f"Payable for {number}"),
        ]

    results = [
        post_entry(
            date=invoice.date,
            description=f"{invoice.get_invoice_type_display()} invoice {number}",
            lines=lines,
            operation="invoice",
            source_key=number,
            reference=f"INV-{number}",
            invoice=invoice,
            user=user,
        )
    ]

    if invoice.payment_status == "partial" and invoice.initial_payment > 0:
        results.append(_post_payment(
            invoice, invoice.initial_payment, cash, operation="payment",
            reference=f"PAY-{number}", user=user,
        ))
    return results


def _post_payment(invoice, amount, cash_account, *, operation, reference, user=None):
    if invoice.invoice_type == "sales":
        lines = [
            EntryLine.dr(cash_account, amount),
            EntryLine.cr(get_account("receivables"), amount),
        ]
    else:
        lines = [
            EntryLine.dr(get_account("payables"), amount),
            EntryLine.cr(cash_account, amount),
        ]
    return post_entry(
        date=invoice.date,
        description=f"Payment on {invoice.number}",
        lines=lines,
        operation=operation,
        source_key=invoice.number,
        reference=reference,
        entry_type="payment",
        invoice=invoice,
        user=user,
    )


def _post_balance_deduction(invoice, user=None):
    amount = invoice.balance_deducted
    if invoice.invoice_type == "sales":
        lines = [
            EntryLine.dr(get_account("customer_advances"), amount),
            EntryLine.cr(get_account("receivables"), amount),
        ]
    else:
        lines = [
            EntryLine.dr(get_account("payables"), amount),
            EntryLine.cr(get_account("supplier_advances"), amount),
        ]
    return post_entry(
        date=invoice.date,
        description=f"Balance deduction on {invoice.number}",
        lines=lines,
        operation="balance_deduction",
        source_key=invoice.number,
        reference=f"BAL-DED-{invoice.number}",
        entry_type="payment",
        invoice=invoice,
        user=user,
    )


def _move_opening(counterparty, amount):
    """
    Settle ``amount`` from the counterparty's credit (positive amount)
    or give it back (negative amount). Customers hold credit as a negative
    opening balance, suppliers as a positive one.
    """
    if counterparty.ROLE == "customer":
        counterparty.balance = money(counterparty.balance + amount)
    else:
        counterparty.balance = money(counterparty.balance - amount)
    counterparty.save(update_fields=["balance", "updated_at"])


def _apply_balance_deduction(invoice, counterparty, requested=None):
    """Use the counterparty's credit against what is still unpaid."""
    remaining = money(invoice.total - invoice.paid_amount)
    amount = min(available_credit(counterparty), remaining)
    if requested is not None:
        amount = min(amount, money(requested))
    if amount <= 0:
        return ZERO
    _move_opening(counterparty, amount)
    invoice.balance_deducted = money(invoice.balance_deducted + amount)
    invoice.paid_amount = money(invoice.paid_amount + amount)
    invoice.payment_status = _settled_status(invoice)
    logger.info("Deducted %s from %s balance for %s", amount, counterparty, invoice.number)
    return amount


def _lock_counterparty(counterparty):
    return counterparty.__class__.objects.select_for_update().get(pk=counterparty.pk)


# ----------------------------
# Lifecycle operations
# ----------------------------
@transaction.atomic
def create_invoice(data, user=None, today=None):
    """
    Validate, number, save and post a new sales or purchase invoice,
    and move its stock. Returns the saved Invoice.
    """
    today = today or timezone.localdate()
    invoice_type = data.get("invoice_type") or data.get("type")
    if invoice_type not in ("sales", "purchase"):
        raise ValidationError({"invoice_type": "Invoice type must be 'sales' or 'purchase'."})

    counterparty = _resolve_counterparty(invoice_type, data)
    lines = parse_lines(data.get("lines"))

    invoice = Invoice(
        invoice_type=invoice_type,
        date=parse_day(data.get("date"), "date") or today,
        due_date=parse_day(data.get("due_date"), "due_date"),
        description=data.get("description", ""),
        notes=data.get("notes", ""),
        payment_status=data.get("payment_status") or "pending",
    )
    if invoice_type == "sales":
        invoice.customer = counterparty
    else:
        invoice.supplier = counterparty
    _apply_totals(invoice, lines, data)
    _apply_payment_terms(invoice, data, today)

    # Lock order everywhere: invoice, counterparty, products by pk
    counterparty = _lock_counterparty(counterparty)

    # Products must exist (purchases may introduce new ones by name)
    inventory.resolve_lines(lines, allow_new=invoice_type == "purchase")
    if invoice_type == "sales":
        inventory.check_sale_stock(lines)

    """ Validation done, start writing """
    invoice.number = generate_number(
        NUMBER_SERIES_KEYS[(invoice_type, False)], Invoice,
        invoice_type=invoice_type, is_return=False,
    )
    invoice.save()

    if invoice_type == "sales":
        inventory.apply_sale(lines)
    else:
        inventory.apply_purchase(lines, today=today)
    _save_lines(invoice, lines)

    _post_invoice_entries(invoice, user=user)
    if data.get("deduct_from_balance"):
        if _apply_balance_deduction(invoice, counterparty, data.get("deduction_amount")):
            invoice.save()
            _post_balance_deduction(invoice, user=user)

    log_action(action="create", instance=invoice, user=user, changes=snapshot(invoice))
    notify_change(invoice, "create")
    logger.info("Created %s invoice %s total=%s", invoice_type, invoice.number, invoice.total)
    return invoice


def _purchase_changes(invoice, data):
    """Names of monetary / quantity fields a purchase edit tries to change."""
    changed = []
    for key, value in data.items():
        if key in PURCHASE_EDITABLE_FIELDS or key in META_KEYS:
            continue
        if key == "lines":
            current = [line.signature() for line in _lines_from_invoice(invoice)]
            try:
                submitted = parse_lines(value)
                inventory.resolve_lines(submitted, allow_new=True)
            except ValidationError:
                changed.append(key)
                continue
            if [line.signature() for line in submitted] != current:
                changed.append(key)
            continue
        current = getattr(invoice, key, None)
        if key == "type":
            current = invoice.invoice_type
        if key in ("supplier", "supplier_id"):
            current = invoice.supplier_id
            value = getattr(value, "pk", value)
        if isinstance(current, Decimal):
            if money(value) != current:
                changed.append(key)
        elif isinstance(current, date_cls):
            if parse_day(value, key) != current:
                changed.append(key)
        elif str(current) != str(value):
            changed.append(key)
    return changed


@transaction.atomic
def edit_invoice(invoice_id, data, user=None, expected_version=None, today=None):
    """
    Edit a sales invoice: reverse its entries, swap its stock effect for the
    new lines and post again. Purchase invoices only accept notes/description.
    """
    today = today or timezone.localdate()
    invoice = Invoice.objects.select_for_update().get(pk=invoice_id)

    if expected_version is None:
        expected_version = data.get("expected_version")
    if expected_version is not None:
        try:
            expected_version = int(expected_version)
        except (TypeError, ValueError):
            raise ValidationError(
                {"expected_version": f"Invalid version: {expected_version!r}"})
    if expected_version is not None and expected_version != invoice.version:
        raise ConcurrentModificationError(
            f"Invoice {invoice.number} was modified (version {invoice.version}, "
            f"expected {expected_version}). Reload and try again."
        )
    if invoice.is_return:
        raise EditNotAllowedError("Return invoices cannot be edited.")
    if invoice.returns.exists():
        raise EditNotAllowedError(
            f"Invoice {invoice.number} has returns and can no longer be edited.")

    before = snapshot(invoice)

    if invoice.invoice_type == "purchase":
        changed = _purchase_changes(invoice, data)
        if changed:
            raise EditNotAllowedError(
                f"Purchase invoices can only change description and notes "
                f"(attempted: {', '.join(sorted(changed))})."
            )
        for key in PURCHASE_EDITABLE_FIELDS:
            if key in data:
                setattr(invoice, key, data[key] or "")
        invoice.version += 1
        invoice.save()
        log_action(action="edit", instance=invoice, user=user,
                   changes={"before": before, "after": snapshot(invoice)})
        notify_change(invoice, "edit")
        return invoice

    """ Sales invoice: validate the new state before touching anything """
    if "payment_status" not in data:
        data = {**_current_terms(invoice), **data}
    old_customer = invoice.customer
    customer = _resolve_counterparty("sales", data, current=old_customer)
    # Lock order everywhere: invoice, counterparty, products by pk
    locked = {
        c.pk: _lock_counterparty(c)
        for c in sorted({old_customer.pk: old_customer, customer.pk: customer}.values(),
                        key=lambda c: c.pk)
    }
    old_customer, customer = locked[old_customer.pk], locked[customer.pk]
    lines = parse_lines(data["lines"]) if "lines" in data else _lines_from_invoice(invoice)
    inventory.resolve_lines(lines)

    if "date" in data:
        invoice.date = parse_day(data["date"], "date") or invoice.date
    if "due_date" in data:
        invoice.due_date = parse_day(data["due_date"], "due_date")
    for key in PURCHASE_EDITABLE_FIELDS:
        if key in data:
            setattr(invoice, key, data[key] or "")

    # Give back the previous balance deduction; it is re-applied below
    kept_deduction = invoice.balance_deducted
    if kept_deduction:
        _move_opening(old_customer, -kept_deduction)
        invoice.balance_deducted = ZERO

    invoice.customer = customer
    _apply_totals(invoice, lines, data)
    _apply_payment_terms(invoice, data, today)

    # Stock: credit the old quantities, then undo old / apply new once per product
    inventory.reconcile(invoice, lines)

    reverse_entries(invoice.number, user=user, date=today,
                    reason=f"Edit of invoice {invoice.number}")

    invoice.lines.all().delete()
    _save_lines(invoice, lines)

    invoice.version += 1
    invoice.save()
    _post_invoice_entries(invoice, user=user)

    if kept_deduction:
        if _apply_balance_deduction(invoice, customer, kept_deduction):
            invoice.save()
            _post_balance_deduction(invoice, user=user)

    log_action(action="edit", instance=invoice, user=user,
               changes={"before": before, "after": snapshot(invoice)})
    notify_change(invoice, "edit")
    logger.info("Edited invoice %s (version %s)", invoice.number, invoice.version)
    return invoice


@transaction.atomic
def delete_invoice(invoice_id, user=None, today=None):
    """
    Remove an invoice: undo its stock effect, reverse its entries and give
    back any balance deduction. Returns the deleted invoice's number.
    """
    invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
    if invoice.is_return:
        raise DeleteNotAllowedError("Return invoices cannot be deleted.")
    if invoice.returns.exists():
        raise DeleteNotAllowedError(
            f"Invoice {invoice.number} has returns and cannot be deleted.")
    if invoice.vouchers.exists():
        raise DeleteNotAllowedError(
            f"Invoice {invoice.number} has linked vouchers and cannot be deleted.")

    number = invoice.number
    before = snapshot(invoice)

    # Lock order everywhere: invoice, counterparty, products by pk
    counterparty = _lock_counterparty(invoice.counterparty)
    # Raises InsufficientStockToReverse before anything else moves
    inventory.reverse_on_delete(invoice)
    reverse_entries(number, user=user, date=today,
                    reason=f"Deletion of invoice {number}")
    if invoice.balance_deducted:
        _move_opening(counterparty, -invoice.balance_deducted)

    log_action(action="delete", instance=invoice, user=user, changes=before)
    notify_change(invoice, "delete")
    invoice.delete()
    logger.info("Deleted invoice %s", number)
    return number


def returnable_by_line(invoice):
    """{original line pk: quantity that can still be returned}"""
    returned = dict(
        InvoiceLine.objects.filter(original_line__invoice=invoice)
        .order_by()
        .values_list("original_line")
        .annotate(qty=models.Sum("quantity"))
    )
    return {
        line.pk: money(line.quantity - (returned.get(line.pk) or ZERO))
        for line in invoice.lines.all()
    }


def returnable_quantities(invoice):
    """{item pk: quantity that can still be returned}"""
    left = returnable_by_line(invoice)
    grouped = {}
    for line in invoice.lines.all():
        grouped[line.item_id] = grouped.get(line.item_id, ZERO) + left[line.pk]
    return grouped


def _returned_discounts(invoice):
    """{original line pk: line discount already given back}"""
    return dict(
        InvoiceLine.objects.filter(original_line__invoice=invoice)
        .order_by()
        .values_list("original_line")
        .annotate(given=models.Sum("discount_amount"))
    )


def _return_line(source, quantity, left, given_back):
    if quantity == left:
        # last units of the line take whatever discount is still open
        discount = money(source.discount_amount - (given_back or ZERO))
    else:
        # Give back the same share of the line discount
        discount = money(source.discount_amount * quantity / source.quantity)
    return LineInput(
        item_name=source.item_name,
        quantity=quantity,
        unit_price=source.unit_price,
        color_price=source.color_price,
        discount=discount,
        discount_type="amount",
        item_id=source.item_id,
        item=source.item,
        original_line=source,
    )


def _return_lines(original, raw_lines):
    """
    Map requested {line_id | item_id, quantity} onto the original lines.

    A line_id request is capped at what that line has left. An item_id
    request is spread over the lines carrying the product, in line order.
    """
    if not raw_lines:
        raise ValidationError("A return needs at least one line.")
    original_lines = list(original.lines.select_related("item"))
    by_id = {line.pk: line for line in original_lines}
    left = returnable_by_line(original)
    given_back = _returned_discounts(original)

    lines = []
    for raw in raw_lines:
        quantity = money(raw.get("quantity"))
        if quantity <= 0:
            raise ValidationError("Return quantity must be greater than zero.")

        if raw.get("line_id") is not None:
            sources = [by_id[raw["line_id"]]] if raw["line_id"] in by_id else []
        else:
            sources = [line for line in original_lines if line.item_id == raw.get("item_id")]
        if not sources:
            raise ValidationError(
                f"Line {raw.get('line_id') or raw.get('item_id')} is not on invoice {original.number}.")

        available = sum((left[line.pk] for line in sources), ZERO)
        if quantity > available:
            raise ReturnQuantityExceededError(
                f"Cannot return {quantity} of {sources[0].item_name}: "
                f"only {available} left to return.")

        for source in sources:
            take = min(quantity, left[source.pk])
            if take <= 0:
                continue
            lines.append(_return_line(source, take, left[source.pk], given_back.get(source.pk)))
            given_back[source.pk] = money(
                (given_back.get(source.pk) or ZERO) + lines[-1].amounts[0])
            left[source.pk] = money(left[source.pk] - take)
            quantity = money(quantity - take)
            if quantity <= 0:
                break
    return lines


def _post_return_entry(ret, refund, user=None):
    """Opposite side of the original, for the returned amount only."""
    number = ret.number
    net = money(ret.subtotal - ret.discount_amount)
    settle = (settlement_account(ret.payment_method) if refund else
              get_account("receivables" if ret.invoice_type == "sales" else "payables"))
    if ret.invoice_type == "sales":
        lines = [
            EntryLine.dr(get_account("sales"), net, f"Sales return {number}"),
            EntryLine.dr(get_account("vat_payable"), ret.vat_amount, f"VAT on {number}"),
            EntryLine.cr(settle, ret.total, f"Refund for {number}" if refund else f"Credit for {number}"),
        ]
    else:
        lines = [
            EntryLine.dr(settle, ret.total, f"Refund for {number}" if refund else f"Debit note {number}"),
            EntryLine.cr(get_account("inventory"), net, f"Stock returned on {number}"),
            EntryLine.cr(get_account("vat_receivable"), ret.vat_amount, f"VAT on {number}"),
        ]
    return post_entry(
        date=ret.date,
        description=f"Return {number} of {ret.original_invoice.number}",
        lines=lines,
        operation="return",
        source_key=number,
        reference=f"RET-{number}",
        invoice=ret,
        user=user,
    )


@transaction.atomic
def create_return(original_id, lines, refund=False, user=None, today=None,
                  payment_method=None, notes=""):
    """
    Return part of an invoice. Quantities are capped per original line at
    what has not been returned yet; discounts and VAT are given back pro
    rata, and the return that completes the invoice takes what is left.
    """
    today = today or timezone.localdate()
    original = Invoice.objects.select_for_update().get(pk=original_id)
    if original.is_return:
        raise ValidationError("A return cannot itself be returned.")

    return_lines = _return_lines(original, lines)
    if original.invoice_type == "purchase":
        # Purchase returns need the stock to still be there
        inventory.check_sale_stock(return_lines)
    else:
        inventory.lock_stock(return_lines)

    left = returnable_by_line(original)
    for line in return_lines:
        left[line.original_line.pk] -= line.quantity
    completes = all(qty <= 0 for qty in left.values())

    ret = Invoice(
        invoice_type=original.invoice_type,
        date=today,
        customer=original.customer,
        supplier=original.supplier,
        is_return=True,
        original_invoice=original,
        vat_rate=original.vat_rate,
        payment_method=payment_method or original.payment_method,
        notes=notes,
        description=f"Return of {original.number}",
    )
    ret.subtotal = money(sum((line.total for line in return_lines), ZERO))
    ret.discount_type = "amount"
    if completes:
        earlier = original.returns.aggregate(
            discount=models.Sum("discount_amount"), vat=models.Sum("vat_amount"))
        ret.discount = ret.discount_amount = money(
            max(original.discount_amount - (earlier["discount"] or ZERO), ZERO))
        ret.vat_amount = money(max(original.vat_amount - (earlier["vat"] or ZERO), ZERO))
        ret.total = money(max(ret.subtotal - ret.discount_amount + ret.vat_amount, ZERO))
    else:
        # Invoice-level discount shrinks with the returned share of the subtotal
        ret.discount = (
            money(original.discount_amount * ret.subtotal / original.subtotal)
            if original.subtotal else ZERO
        )
        ret.discount_amount, ret.vat_amount, ret.total = compute_invoice_amounts(
            ret.subtotal, ret.discount, "amount", ret.vat_rate)
    if refund:
        ret.payment_status = "paid"
        ret.initial_payment = ret.paid_amount = ret.total
    else:
        ret.payment_status = "n/a"

    ret.number = generate_number(
        NUMBER_SERIES_KEYS[(original.invoice_type, True)], Invoice,
        invoice_type=original.invoice_type, is_return=True,
    )
    ret.save()
    _save_lines(ret, return_lines)

    inventory.apply_return(ret)
    _post_return_entry(ret, refund, user=user)

    original.transition_to("returned_full" if completes else "returned_partial")
    if original.payment_status != "paid":
        original.payment_status = _settled_status(original, today)
    original.version += 1
    original.save()

    log_action(action="return", instance=ret, user=user,
               changes={"original": original.number, "total": str(ret.total), "refund": refund})
    notify_change(ret, "return")
    logger.info("Return %s against %s total=%s", ret.number, original.number, ret.total)
    return ret


def apply_payment(invoice, amount, today=None):
    """Record a linked voucher amount on a locked invoice."""
    amount = money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero.")
    if amount > invoice.outstanding:
        raise ValidationError(
            f"Payment of {amount} exceeds the outstanding {invoice.outstanding} "
            f"on invoice {invoice.number}.")
    invoice.paid_amount = money(invoice.paid_amount + amount)
    invoice.payment_status = _settled_status(invoice, today)
    invoice.version += 1
    invoice.save()
    return invoice


@transaction.atomic
def refresh_overdue_statuses(today=None):
    """Flip pending ↔ overdue by due date. Returns the number of invoices changed."""
    today = today or timezone.localdate()
    open_invoices = Invoice.objects.originals().filter(due_date__isnull=False)
    became_overdue = open_invoices.filter(
        payment_status="pending", due_date__lt=today).update(payment_status="overdue")
    back_to_pending = open_invoices.filter(
        payment_status="overdue", due_date__gte=today).update(payment_status="pending")
    if became_overdue or back_to_pending:
        logger.info(
            "Payment statuses refreshed: %s overdue, %s pending again",
            became_overdue, back_to_pending,
        )
    return became_overdue + back_to_pending
