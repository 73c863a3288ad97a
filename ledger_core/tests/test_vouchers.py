from decimal import Decimal
import datetime
from django.test import TestCase
from django.core.exceptions import ValidationError
from ..models import Customer, InventoryItem, Supplier, Voucher
from ..services.balances import total_balance
from ..services.chart import get_account, seed_chart_of_accounts
from ..services.invoices import create_invoice
from ..services.ledger import active_entries
from ..services.vouchers import record_voucher

TODAY = datetime.date(2025, 9, 18)


class VoucherTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.customer = Customer.objects.create(name="Ali")
        self.supplier = Supplier.objects.create(name="Gulf Trading", balance=Decimal("-40"))
        self.item = InventoryItem.objects.create(name="Widget", quantity=Decimal("10"))
        self.sale = create_invoice({
            "invoice_type": "sales",
            "customer_id": self.customer.pk,
            "lines": [{"item_id": self.item.pk, "quantity": 2, "unit_price": "10"}],
        }, today=TODAY)
        self.purchase = create_invoice({
            "invoice_type": "purchase",
            "supplier_id": self.supplier.pk,
            "lines": [{"item_id": self.item.pk, "quantity": 5, "unit_price": "3"}],
        }, today=TODAY)

    def test_linked_receipt_settles_invoice(self):
        voucher = record_voucher("receipt", "5", invoice=self.sale.pk, today=TODAY)

        self.assertEqual(voucher.number, "RV0001")
        self.assertEqual(voucher.customer, self.customer)
        self.sale.refresh_from_db()
        self.assertEqual(self.sale.paid_amount, Decimal("5.000"))
        self.assertEqual(self.sale.payment_status, "partial")
        self.assertEqual(active_entries("RV0001", "voucher").get().reference, "VCH-RV0001")

        record_voucher("receipt", "15", invoice=self.sale, payment_method="bank", today=TODAY)
        self.sale.refresh_from_db()
        self.assertEqual(self.sale.payment_status, "paid")
        self.assertEqual(total_balance(self.customer), Decimal("0.000"))
        self.assertEqual(get_account("receivables").balance, Decimal("0.000"))
        self.assertEqual(get_account("cash").balance, Decimal("5.000"))
        self.assertEqual(get_account("bank").balance, Decimal("15.000"))

    def test_receipt_cannot_exceed_outstanding(self):
        with self.assertRaises(ValidationError):
            record_voucher("receipt", "20.001", invoice=self.sale.pk, today=TODAY)
        self.assertFalse(Voucher.objects.exists())

    def test_linked_payment_settles_purchase(self):
        voucher = record_voucher("payment", "15", invoice=self.purchase.pk, today=TODAY)

        self.assertEqual(voucher.number, "PV0001")
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.payment_status, "paid")
        self.assertEqual(get_account("payables").balance, Decimal("0.000"))
        # only the opening balance is left
        self.assertEqual(total_balance(self.supplier), Decimal("-40.000"))

    def test_unlinked_receipt_moves_opening_into_credit(self):
        record_voucher("receipt", "50", customer=self.customer.pk, today=TODAY)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.balance, Decimal("-50.000"))
        # the invoice is still open; the money sits as an advance
        self.assertEqual(total_balance(self.customer), Decimal("-30.000"))
        self.assertEqual(get_account("customer_advances").balance, Decimal("50.000"))

    def test_unlinked_payment_settles_opening_then_advances(self):
        record_voucher("payment", "60", supplier=self.supplier.pk, today=TODAY)

        self.supplier.refresh_from_db()
        self.assertEqual(self.supplier.balance, Decimal("20.000"))
        je = active_entries("PV0001", "voucher").get()
        self.assertEqual(je.lines.get(account=get_account("payables")).debit, Decimal("40.000"))
        self.assertEqual(je.lines.get(account=get_account("supplier_advances")).debit, Decimal("20.000"))
        self.assertEqual(je.lines.get(account=get_account("cash")).credit, Decimal("60.000"))

    def test_role_and_invoice_must_match(self):
        with self.assertRaises(ValidationError):
            record_voucher("payment", "5", customer=self.customer.pk, today=TODAY)
        with self.assertRaises(ValidationError):
            record_voucher("receipt", "5", invoice=self.purchase.pk, today=TODAY)
        other = Customer.objects.create(name="Sara")
        with self.assertRaises(ValidationError):
            record_voucher("receipt", "5", customer=other, invoice=self.sale.pk, today=TODAY)
        with self.assertRaises(ValidationError):
            record_voucher("refund", "5", customer=self.customer.pk, today=TODAY)
        with self.assertRaises(ValidationError):
            record_voucher("receipt", "0", customer=self.customer.pk, today=TODAY)
        with self.assertRaises(ValidationError):
            record_voucher("receipt", "ten", customer=self.customer.pk, today=TODAY)
        self.assertFalse(Voucher.objects.exists())
