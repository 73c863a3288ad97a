from decimal import Decimal
import datetime
from django.test import TestCase
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import ProtectedError
from ..exceptions import AlreadyPostedDifferentPayload, UnbalancedEntryError
from ..models import Account, AuditLog, JournalEntry, JournalLine
from ..services.chart import get_account, seed_chart_of_accounts
from ..services.ledger import (DuplicatePostingSkipped, EntryLine, active_entries,
                               find_unbalanced_entries, post_entry,
                               recompute_account_balances, reverse_entries)


class JournalPostingTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.cash = get_account("cash")
        self.sales = get_account("sales")
        self.receivables = get_account("receivables")
        self.today = datetime.date(2025, 9, 18)

    def post_sale(self, amount="100.000", source_key="S0001", **kwargs):
        """
        Helper: Dr Cash / Cr Sales for ``amount`` under the invoice operation.
        """
        return post_entry(
            date=self.today,
            description="Cash sale",
            lines=[
                EntryLine.dr(self.cash, amount),
                EntryLine.cr(self.sales, amount),
            ],
            operation="invoice",
            source_key=source_key,
            reference=f"INV-{source_key}",
            **kwargs,
        )

    def test_balanced_entry_is_posted_and_moves_balances(self):
        je = self.post_sale()

        self.assertEqual(je.status, "posted")
        self.assertEqual(je.entry_number, 1)
        self.assertEqual(je.attempt, 1)
        self.assertTrue(je.is_balanced())
        self.assertTrue(all(line.is_posted for line in je.lines.all()))

        # debit-normal cash and credit-normal sales both grow
        self.cash.refresh_from_db()
        self.sales.refresh_from_db()
        self.assertEqual(self.cash.balance, Decimal("100.000"))
        self.assertEqual(self.sales.balance, Decimal("100.000"))

    def test_unbalanced_entry_is_rejected_before_anything_is_written(self):
        with self.assertRaises(UnbalancedEntryError):
            post_entry(
                date=self.today,
                description="Broken",
                lines=[
                    EntryLine.dr(self.cash, "100"),
                    EntryLine.cr(self.sales, "90"),
                ],
            )
        self.assertEqual(JournalEntry.objects.count(), 0)
        self.assertEqual(JournalLine.objects.count(), 0)

    def test_zero_lines_are_dropped(self):
        je = post_entry(
            date=self.today,
            description="Sale with no VAT",
            lines=[
                EntryLine.dr(self.cash, "20"),
                EntryLine.cr(self.sales, "20"),
                EntryLine.cr(get_account("vat_payable"), "0"),
            ],
        )
        self.assertEqual(je.lines.count(), 2)

        # nothing left at all → nothing posted
        self.assertIsNone(post_entry(
            date=self.today,
            description="Empty",
            lines=[EntryLine.dr(self.cash, 0), EntryLine.cr(self.sales, 0)],
        ))

    def test_post_twice_is_idempotent(self):
        je = self.post_sale()
        again = je.post()

        self.assertEqual(again.entry_number, je.entry_number)
        # balances moved only once
        self.cash.refresh_from_db()
        self.assertEqual(self.cash.balance, Decimal("100.000"))

    def test_post_with_changed_payload_raises(self):
        je = self.post_sale()

        # Tamper with the stored lines behind the model's back
        JournalLine.objects.filter(journal=je, account=self.cash).update(debit=Decimal("50.000"))
        JournalLine.objects.filter(journal=je, account=self.sales).update(credit=Decimal("50.000"))

        with self.assertRaises(AlreadyPostedDifferentPayload):
            je.post()

    def test_duplicate_posting_is_skipped(self):
        first = self.post_sale()
        second = self.post_sale()

        self.assertIsInstance(second, DuplicatePostingSkipped)
        self.assertFalse(second)
        self.assertEqual(second.existing, first)
        self.assertEqual(JournalEntry.objects.count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="skip_duplicate").exists())

        self.cash.refresh_from_db()
        self.assertEqual(self.cash.balance, Decimal("100.000"))

    def test_posted_entry_is_immutable(self):
        je = self.post_sale()

        # no new lines on a posted entry
        with self.assertRaises(ValidationError):
            JournalLine.objects.create(
                journal=je, account=self.cash, debit=Decimal("1.000"))

        # header fields are frozen
        je.description = "Changed"
        with self.assertRaises(ValidationError):
            je.save()

        # and it can't be deleted, not even through a queryset
        je.refresh_from_db()
        with self.assertRaises(ValidationError):
            je.delete()
        with self.assertRaises(ValidationError), transaction.atomic():
            JournalEntry.objects.filter(pk=je.pk).delete()
        self.assertTrue(JournalEntry.objects.filter(pk=je.pk).exists())

    def test_account_with_lines_cannot_be_deleted_or_disabled(self):
        self.post_sale()

        with self.assertRaises(ProtectedError):
            self.cash.delete()

        self.cash.refresh_from_db()
        self.cash.is_active = False
        with self.assertRaises(ValidationError):
            self.cash.save()


class ReversalTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.cash = get_account("cash")
        self.sales = get_account("sales")
        self.today = datetime.date(2025, 9, 18)

    def post_sale(self, amount="40"):
        return post_entry(
            date=self.today,
            description="Cash sale",
            lines=[EntryLine.dr(self.cash, amount), EntryLine.cr(self.sales, amount)],
            operation="invoice",
            source_key="S0007",
            reference="INV-S0007",
        )

    def test_reversal_swaps_sides_and_restores_balances(self):
        original = self.post_sale()
        reversals = reverse_entries("S0007")

        self.assertEqual(len(reversals), 1)
        rev = reversals[0]
        self.assertEqual(rev.reversal_of, original)
        self.assertEqual(rev.reference, "REV-INV-S0007")
        self.assertEqual(rev.entry_type, "reversal")
        self.assertEqual(rev.lines.get(account=self.cash).credit, Decimal("40.000"))
        self.assertEqual(rev.lines.get(account=self.sales).debit, Decimal("40.000"))

        # the original stays in the journal
        self.assertTrue(JournalEntry.objects.filter(pk=original.pk).exists())

        self.cash.refresh_from_db()
        self.sales.refresh_from_db()
        self.assertEqual(self.cash.balance, Decimal("0.000"))
        self.assertEqual(self.sales.balance, Decimal("0.000"))

    def test_reversing_twice_is_a_no_op(self):
        self.post_sale()
        reverse_entries("S0007")

        self.assertEqual(reverse_entries("S0007"), [])
        self.assertEqual(JournalEntry.objects.filter(entry_type="reversal").count(), 1)

    def test_repost_after_reversal_gets_next_attempt(self):
        self.post_sale()
        reverse_entries("S0007")
        self.assertFalse(active_entries("S0007").exists())

        reposted = self.post_sale(amount="55")
        self.assertIsInstance(reposted, JournalEntry)
        self.assertEqual(reposted.attempt, 2)
        self.assertEqual(list(active_entries("S0007")), [reposted])

        self.cash.refresh_from_db()
        self.assertEqual(self.cash.balance, Decimal("55.000"))

    def test_no_unbalanced_entries_after_post_and_reverse(self):
        self.post_sale()
        reverse_entries("S0007")
        self.post_sale(amount="12.345")
        self.assertEqual(find_unbalanced_entries(), [])


class BalanceRecomputeTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.cash = get_account("cash")
        self.sales = get_account("sales")

    def test_drifted_cache_is_rebuilt_from_lines(self):
        post_entry(
            date=datetime.date(2025, 9, 18),
            description="Cash sale",
            lines=[EntryLine.dr(self.cash, "30"), EntryLine.cr(self.sales, "30")],
        )
        Account.objects.filter(pk=self.cash.pk).update(balance=Decimal("999.000"))

        fixed = recompute_account_balances()

        self.assertEqual([a.code for a in fixed], [self.cash.code])
        self.cash.refresh_from_db()
        self.assertEqual(self.cash.balance, Decimal("30.000"))
        # a second pass has nothing to fix
        self.assertEqual(recompute_account_balances(), [])

    def test_seed_is_idempotent(self):
        self.assertEqual(seed_chart_of_accounts(), [])
        self.assertEqual(get_account("receivables").normal_balance, "debit")
        self.assertEqual(get_account("payables").normal_balance, "credit")
        self.assertTrue(get_account("receivables").is_control_account)
