import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..models import Customer, Invoice, Supplier, Voucher
from ..models.invoice import PAYMENT_METHODS
from ..signals import notify_change
from ..utils import ZERO, generate_number, money
from .audit_helper import log_action, snapshot
from .chart import get_account, settlement_account
from .invoices import apply_payment
from .ledger import EntryLine, post_entry

logger = logging.getLogger(__name__)

NUMBER_SERIES_KEYS = {
    "receipt": "RECEIPT_VOUCHER",
    "payment": "PAYMENT_VOUCHER",
}


def _get(model, value, label):
    if value is None or isinstance(value, model):
        return value
    try:
        return model.objects.select_for_update().get(pk=value)
    except model.DoesNotExist:
        raise ValidationError({label: f"Unknown {label}: {value}"})


def _unlinked_lines(voucher, counterparty, cash):
    """
    Money received/paid outside any invoice.
    The part that settles an opening balance hits the control account,
    anything beyond it is an advance.
    """
    amount = voucher.amount
    if voucher.voucher_type == "receipt":
        owed_to_us = money(max(counterparty.balance, ZERO))
        settles = min(amount, owed_to_us)
        return [
            EntryLine.dr(cash, amount),
            EntryLine.cr(get_account("receivables"), settles),
            EntryLine.cr(get_account("customer_advances"), money(amount - settles)),
        ]
    owed_by_us = money(max(-counterparty.balance, ZERO))
    settles = min(amount, owed_by_us)
    return [
        EntryLine.dr(get_account("payables"), settles),
        EntryLine.dr(get_account("supplier_advances"), money(amount - settles)),
        EntryLine.cr(cash, amount),
    ]


@transaction.atomic
def record_voucher(
    voucher_type,
    amount,
    *,
    customer=None,
    supplier=None,
    invoice=None,
    date=None,
    payment_method="cash",
    reference="",
    notes="",
    user=None,
    today=None,
):
    """
    Record a receipt (from a customer) or payment (to a supplier).

    Linked to an invoice it raises that invoice's paid amount; without one
    it moves the counterparty's opening balance. Returns the Voucher.
    """
    today = today or timezone.localdate()
    amount = money(amount)
    if voucher_type not in NUMBER_SERIES_KEYS:
        raise ValidationError({"voucher_type": "Voucher type must be 'receipt' or 'payment'."})
    if amount <= 0:
        raise ValidationError({"amount": "Voucher amount must be greater than zero."})
    if payment_method not in dict(PAYMENT_METHODS):
        raise ValidationError({"payment_method": f"Invalid payment method: {payment_method}"})

    invoice = _get(Invoice, invoice, "invoice")
    if invoice is not None:
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)

    if voucher_type == "receipt":
        counterparty = _get(Customer, customer, "customer") or (invoice and invoice.customer)
        if counterparty is None:
            raise ValidationError({"customer": "A receipt voucher needs a customer."})
    else:
        counterparty = _get(Supplier, supplier, "supplier") or (invoice and invoice.supplier)
        if counterparty is None:
            raise ValidationError({"supplier": "A payment voucher needs a supplier."})
    counterparty = counterparty.__class__.objects.select_for_update().get(pk=counterparty.pk)

    voucher = Voucher(
        voucher_type=voucher_type,
        date=date or today,
        amount=amount,
        invoice=invoice,
        payment_method=payment_method,
        reference=reference,
        notes=notes,
    )
    if voucher_type == "receipt":
        voucher.customer = counterparty
    else:
        voucher.supplier = counterparty
    # role / invoice consistency, before anything is written
    voucher.number = "pending"
    voucher.full_clean(exclude=["number"])

    cash = settlement_account(payment_method)
    if invoice is not None:
        # raises when the amount is more than what is still open
        apply_payment(invoice, amount, today)
        if voucher_type == "receipt":
            lines = [EntryLine.dr(cash, amount), EntryLine.cr(get_account("receivables"), amount)]
        else:
            lines = [EntryLine.dr(get_account("payables"), amount), EntryLine.cr(cash, amount)]
    else:
        lines = _unlinked_lines(voucher, counterparty, cash)
        # receipts lower what the customer owes, payments raise the supplier side
        if voucher_type == "receipt":
            counterparty.balance = money(counterparty.balance - amount)
        else:
            counterparty.balance = money(counterparty.balance + amount)
        counterparty.save(update_fields=["balance", "updated_at"])

    voucher.number = generate_number(
        NUMBER_SERIES_KEYS[voucher_type], Voucher, voucher_type=voucher_type)
    voucher.save()

    post_entry(
        date=voucher.date,
        description=f"{voucher.get_voucher_type_display()} voucher {voucher.number}"
        + (f" for {invoice.number}" if invoice else ""),
        lines=lines,
        operation="voucher",
        source_key=voucher.number,
        reference=f"VCH-{voucher.number}",
        entry_type="payment",
        invoice=invoice,
        voucher=voucher,
        user=user,
    )

    log_action(action="create", instance=voucher, user=user, changes=snapshot(voucher))
    notify_change(voucher, "create")
    logger.info(
        "Recorded %s voucher %s amount=%s invoice=%s",
        voucher_type, voucher.number, amount, invoice.number if invoice else None,
    )
    return voucher
