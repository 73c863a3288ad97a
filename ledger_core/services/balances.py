"""
Counterparty balances.

Stored ``balance`` on a Customer/Supplier is the opening balance only.
The running balance is derived from it and the open invoices:

    total = opening + role_sign × unpaid_invoice_balance

in "we are owed (+) / we owe (−)" units, with role_sign +1 for customers
and −1 for suppliers. Vouchers are never summed here: linked ones are
already part of paid_amount, unlinked ones already moved the opening.
"""
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F

from ..exceptions import OpeningBalanceLockedError
from ..models import Customer, Invoice, Supplier
from ..utils import ZERO, money


def _open_value(qs):
    agg = qs.aggregate(value=models.Sum(F("total") - F("paid_amount")))
    return agg["value"] or ZERO


def unpaid_invoice_balance(counterparty):
    """Σ(total − paid) of invoices minus Σ(total − paid) of returns."""
    invoices = Invoice.objects.for_counterparty(counterparty)
    return money(_open_value(invoices.originals()) - _open_value(invoices.returns()))


def total_balance(counterparty):
    sign = counterparty.BALANCE_SIGN
    return money(counterparty.balance + sign * unpaid_invoice_balance(counterparty))


def balance_side(counterparty, amount=None):
    """
    Presentation helper: (side, magnitude).
    Customers with a positive balance owe us → debit;
    suppliers with a negative balance are owed by us → credit.
    """
    if amount is None:
        amount = total_balance(counterparty)
    if amount == 0:
        return "settled", ZERO
    return ("debit" if amount > 0 else "credit"), money(abs(amount))


def has_transactions(counterparty):
    return counterparty.invoices.exists() or counterparty.vouchers.exists()


def validate_opening_balance(role, value):
    """Customers open at >= 0, suppliers at <= 0."""
    model = Customer if role == "customer" else Supplier
    error = model().opening_balance_error(value)
    if error:
        raise ValidationError({"balance": error})


def set_opening_balance(counterparty, value):
    """Change the opening balance while the counterparty is still untouched."""
    value = money(value)
    if has_transactions(counterparty):
        raise OpeningBalanceLockedError(
            f"Opening balance of {counterparty} is locked: it already has transactions."
        )
    validate_opening_balance(counterparty.ROLE, value)
    counterparty.balance = value
    counterparty.save(update_fields=["balance", "updated_at"])
    return counterparty


def available_credit(counterparty):
    """
    Credit we hold for the counterparty that can settle a new invoice:
    a customer who prepaid (negative opening) or a supplier we prepaid
    (positive opening).
    """
    if counterparty.ROLE == "customer":
        return money(max(-counterparty.balance, ZERO))
    return money(max(counterparty.balance, ZERO))
