import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from ..conf import account_code, ledger_setting
from ..models import Account

logger = logging.getLogger(__name__)

# role → (name, type, control account?)
DEFAULT_CHART = {
    "cash": ("Cash", "asset", False),
    "bank": ("Bank", "asset", False),
    "receivables": ("Customers", "asset", True),
    "inventory": ("Inventory", "asset", False),
    "supplier_advances": ("Supplier Advances", "asset", False),
    "vat_receivable": ("VAT Receivable", "asset", False),
    "payables": ("Suppliers", "liability", True),
    "customer_advances": ("Customer Advances", "liability", False),
    "vat_payable": ("VAT Payable", "liability", False),
    "capital": ("Capital", "equity", False),
    "retained_earnings": ("Retained Earnings", "equity", False),
    "sales": ("Sales", "revenue", False),
    "other_revenue": ("Other Revenue", "revenue", False),
    "cogs": ("Cost of Goods Sold", "expense", False),
    "operating_expenses": ("Operating Expenses", "expense", False),
}


def _create_default(role):
    name, ac_type, is_control = DEFAULT_CHART[role]
    account, created = Account.objects.get_or_create(
        code=account_code(role),
        defaults={
            "name": name,
            "ac_type": ac_type,
            "is_control_account": is_control,
        },
    )
    if created:
        logger.info("Created default account %s %s", account.code, account.name)
    return account, created


@transaction.atomic
def seed_chart_of_accounts():
    """Create every default account that is missing. Returns the new ones."""
    created_accounts = []
    for role in ledger_setting("ACCOUNTS"):
        if role not in DEFAULT_CHART:
            continue
        account, created = _create_default(role)
        if created:
            created_accounts.append(account)
    return created_accounts


def get_account(role: str) -> Account:
    """
    Resolve a posting role (``receivables``, ``sales``, ...) to its Account.
    Default roles are created on first use; custom roles must exist.
    """
    code = account_code(role)
    account = Account.objects.filter(code=code).first()
    if account is None:
        if role not in DEFAULT_CHART:
            raise ValidationError(f"No account with code {code} for role '{role}'.")
        account, _ = _create_default(role)
    if not account.is_active:
        raise ValidationError(f"Account {account} is inactive and cannot be posted to.")
    return account


def settlement_account(payment_method: str) -> Account:
    """Cash or bank, depending on how the money moved."""
    return get_account("bank" if payment_method == "bank" else "cash")
