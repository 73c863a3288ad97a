"""
Financial statements read straight from posted journal lines.

Reversals are posted lines too, so a corrected or deleted document nets
out without any special casing. Nothing here writes.
"""
import datetime
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import models

from ..models import Account, JournalLine
from ..utils import ZERO, money


@dataclass
class AccountRow:
    code: str
    name: str
    ac_type: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO

    @property
    def balance(self):
        """Debit minus credit; positive means a debit balance."""
        return money(self.debit - self.credit)

    @property
    def natural_balance(self):
        """Balance on the account type's own side (credit for revenue, ...)."""
        if self.ac_type in ("asset", "expense"):
            return self.balance
        return money(-self.balance)


@dataclass
class TrialBalance:
    as_of: datetime.date | None
    rows: list = field(default_factory=list)

    @property
    def total_debit(self):
        return money(sum((row.debit for row in self.rows), ZERO))

    @property
    def total_credit(self):
        return money(sum((row.credit for row in self.rows), ZERO))

    @property
    def is_balanced(self):
        return self.total_debit == self.total_credit


@dataclass
class IncomeStatement:
    start: datetime.date | None
    end: datetime.date | None
    revenue: list = field(default_factory=list)
    expenses: list = field(default_factory=list)

    @property
    def total_revenue(self):
        return money(sum((row.natural_balance for row in self.revenue), ZERO))

    @property
    def total_expenses(self):
        return money(sum((row.natural_balance for row in self.expenses), ZERO))

    @property
    def net_income(self):
        return money(self.total_revenue - self.total_expenses)


@dataclass
class BalanceSheet:
    as_of: datetime.date | None
    assets: list = field(default_factory=list)
    liabilities: list = field(default_factory=list)
    equity: list = field(default_factory=list)
    # revenue - expenses to date, not yet closed into retained earnings
    current_earnings: Decimal = ZERO

    @property
    def total_assets(self):
        return money(sum((row.natural_balance for row in self.assets), ZERO))

    @property
    def total_liabilities(self):
        return money(sum((row.natural_balance for row in self.liabilities), ZERO))

    @property
    def total_equity(self):
        equity = sum((row.natural_balance for row in self.equity), ZERO)
        return money(equity + self.current_earnings)

    @property
    def is_balanced(self):
        return self.total_assets == money(self.total_liabilities + self.total_equity)


def account_movements(start=None, end=None):
    """
    AccountRow per account with posted lines dated in [start, end],
    ordered by account code. Either bound may be left open.
    """
    lines = JournalLine.objects.filter(journal__status="posted")
    if start:
        lines = lines.filter(journal__date__gte=start)
    if end:
        lines = lines.filter(journal__date__lte=end)
    totals = {
        row["account_id"]: row
        for row in lines.order_by().values("account_id").annotate(
            debit=models.Sum("debit"), credit=models.Sum("credit"))
    }
    rows = []
    for account in Account.objects.filter(pk__in=totals.keys()).order_by("code"):
        agg = totals[account.pk]
        rows.append(AccountRow(
            code=account.code,
            name=account.name,
            ac_type=account.ac_type,
            debit=money(agg["debit"] or ZERO),
            credit=money(agg["credit"] or ZERO),
        ))
    return rows


def trial_balance(as_of=None):
    """Debit and credit totals per account up to ``as_of`` (inclusive)."""
    return TrialBalance(as_of=as_of, rows=account_movements(end=as_of))


def income_statement(start=None, end=None):
    """Revenue and expense accounts for the period."""
    rows = account_movements(start, end)
    return IncomeStatement(
        start=start,
        end=end,
        revenue=[row for row in rows if row.ac_type == "revenue"],
        expenses=[row for row in rows if row.ac_type == "expense"],
    )


def balance_sheet(as_of=None):
    """Assets against liabilities and equity as of a day (inclusive)."""
    rows = account_movements(end=as_of)
    by_type = {}
    for row in rows:
        by_type.setdefault(row.ac_type, []).append(row)
    earnings = (
        sum((row.natural_balance for row in by_type.get("revenue", [])), ZERO)
        - sum((row.natural_balance for row in by_type.get("expense", [])), ZERO)
    )
    return BalanceSheet(
        as_of=as_of,
        assets=by_type.get("asset", []),
        liabilities=by_type.get("liability", []),
        equity=by_type.get("equity", []),
        current_earnings=money(earnings),
    )
