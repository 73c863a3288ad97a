"""
Engine policy knobs.

Values come from ``settings.LEDGER_CORE``; anything missing falls back to
DEFAULTS. The ACCOUNTS map ties a posting role (receivables, sales, ...) to an
account code in the chart of accounts.
"""
from decimal import Decimal

from django.conf import settings

DEFAULT_ACCOUNTS = {
    "cash": "1001",
    "bank": "1002",
    "receivables": "1101",
    "inventory": "1201",
    "supplier_advances": "1301",
    "vat_receivable": "1401",
    "payables": "2001",
    "customer_advances": "2201",
    "vat_payable": "2301",
    "capital": "3001",
    "retained_earnings": "3101",
    "sales": "4001",
    "other_revenue": "4101",
    "cogs": "5001",
    "operating_expenses": "5101",
}

DEFAULTS = {
    "DUE_SOON_DAYS": 7,
    "EXPIRY_WARNING_DAYS": 30,
    "EXPIRY_EXTENSION_ENABLED": True,
    "EXPIRY_EXTENSION_RATIO": "0.5",
    "EXPIRY_EXTENSION_DAYS": 365,
    "ACCOUNTS": DEFAULT_ACCOUNTS,
}


def ledger_setting(name):
    """Return one LEDGER_CORE value, falling back to the built-in default."""
    overrides = getattr(settings, "LEDGER_CORE", {}) or {}
    if name == "ACCOUNTS":
        # Partial maps only override the roles they name
        return {**DEFAULT_ACCOUNTS, **overrides.get("ACCOUNTS", {})}
    return overrides.get(name, DEFAULTS[name])


def account_code(role: str) -> str:
    accounts = ledger_setting("ACCOUNTS")
    try:
        return accounts[role]
    except KeyError:
        raise KeyError(f"No account code configured for role '{role}'")


def expiry_extension_ratio() -> Decimal:
    return Decimal(str(ledger_setting("EXPIRY_EXTENSION_RATIO")))
