from decimal import Decimal
import datetime
from django.test import TestCase
from ..models import Customer, InventoryItem, Supplier
from ..services import reports
from ..services.chart import seed_chart_of_accounts
from ..services.invoices import create_invoice, delete_invoice

TODAY = datetime.date(2025, 10, 18)
SEPT_1 = datetime.date(2025, 9, 1)
SEPT_30 = datetime.date(2025, 9, 30)


class ReportTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.customer = Customer.objects.create(name="Ali")
        self.supplier = Supplier.objects.create(name="Gulf Trading")
        self.item = InventoryItem.objects.create(name="Widget")

        # Dr Inventory 20 / Cr Suppliers 20
        create_invoice({
            "invoice_type": "purchase",
            "supplier_id": self.supplier.pk,
            "date": "2025-09-01",
            "lines": [{"item_id": self.item.pk, "quantity": 5, "unit_price": "4"}],
        }, today=TODAY)
        # Dr Cash 21 / Cr Sales 20 / Cr VAT 1
        create_invoice({
            "invoice_type": "sales",
            "customer_id": self.customer.pk,
            "date": "2025-09-10",
            "vat_rate": "5",
            "payment_status": "paid",
            "lines": [{"item_id": self.item.pk, "quantity": 2, "unit_price": "10"}],
        }, today=TODAY)
        # Dr Customers 10 / Cr Sales 10
        self.october_sale = create_invoice({
            "invoice_type": "sales",
            "customer_id": self.customer.pk,
            "date": "2025-10-05",
            "lines": [{"item_id": self.item.pk, "quantity": 1, "unit_price": "10"}],
        }, today=TODAY)

    def test_trial_balance(self):
        report = reports.trial_balance()

        self.assertTrue(report.is_balanced)
        self.assertEqual(report.total_debit, Decimal("51.000"))
        rows = {row.code: row for row in report.rows}
        self.assertEqual(sorted(rows), ["1001", "1101", "1201", "2001", "2301", "4001"])
        self.assertEqual(rows["1001"].balance, Decimal("21.000"))
        self.assertEqual(rows["4001"].credit, Decimal("30.000"))
        self.assertEqual(rows["4001"].natural_balance, Decimal("30.000"))

        # up to the end of September: no October sale yet
        september = reports.trial_balance(as_of=SEPT_30)
        self.assertTrue(september.is_balanced)
        self.assertEqual(september.total_debit, Decimal("41.000"))
        self.assertNotIn("1101", [row.code for row in september.rows])

    def test_income_statement(self):
        september = reports.income_statement(SEPT_1, SEPT_30)
        self.assertEqual(september.total_revenue, Decimal("20.000"))
        self.assertEqual(september.total_expenses, Decimal("0.000"))
        self.assertEqual(september.net_income, Decimal("20.000"))

        self.assertEqual(reports.income_statement().net_income, Decimal("30.000"))

    def test_balance_sheet(self):
        sheet = reports.balance_sheet()

        self.assertEqual(sheet.total_assets, Decimal("51.000"))
        self.assertEqual(sheet.total_liabilities, Decimal("21.000"))
        self.assertEqual(sheet.current_earnings, Decimal("30.000"))
        self.assertEqual(sheet.total_equity, Decimal("30.000"))
        self.assertTrue(sheet.is_balanced)

    def test_deleted_invoice_nets_out(self):
        delete_invoice(self.october_sale.pk, today=TODAY)

        self.assertEqual(reports.income_statement().net_income, Decimal("20.000"))
        rows = {row.code: row for row in reports.trial_balance().rows}
        # both sides stay visible, the balance is gone
        self.assertEqual(rows["1101"].debit, Decimal("10.000"))
        self.assertEqual(rows["1101"].balance, Decimal("0.000"))

        sheet = reports.balance_sheet()
        self.assertEqual(sheet.total_assets, Decimal("41.000"))
        self.assertTrue(sheet.is_balanced)
