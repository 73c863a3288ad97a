from decimal import Decimal
import datetime
from django.test import SimpleTestCase, TestCase
from ..models import Customer, InventoryItem, Invoice
from ..services import alerts
from ..services.chart import seed_chart_of_accounts
from ..services.invoices import create_invoice

TODAY = datetime.date(2025, 9, 18)


def days(n):
    return TODAY + datetime.timedelta(days=n)


class AlertFunctionTests(SimpleTestCase):
    """Pure functions: unsaved instances, fixed dates."""

    def make_invoice(self, number, due_in, status="pending", total="10", is_return=False):
        return Invoice(
            number=number,
            invoice_type="sales",
            date=TODAY,
            due_date=days(due_in) if due_in is not None else None,
            payment_status=status,
            total=Decimal(total),
            is_return=is_return,
        )

    def test_overdue_and_due_soon(self):
        late = self.make_invoice("S0001", -3, status="overdue", total="12")
        today = self.make_invoice("S0002", 0, total="5")
        soon = self.make_invoice("S0003", 7)
        later = self.make_invoice("S0004", 8)
        paid = self.make_invoice("S0005", -10, status="paid")
        no_due = self.make_invoice("S0006", None)
        ret = self.make_invoice("SR0001", -1, status="n/a", is_return=True)
        invoices = [late, today, soon, later, paid, no_due, ret]

        self.assertEqual(alerts.overdue_invoices(invoices, TODAY), [late])
        self.assertEqual(alerts.invoices_due_soon(invoices, TODAY), [today, soon])
        self.assertEqual(alerts.invoices_due_today(invoices, TODAY), [today])
        self.assertEqual(alerts.days_until_due(late, TODAY), -3)
        self.assertIsNone(alerts.days_until_due(no_due, TODAY))

        notes = alerts.invoice_notifications(invoices, TODAY)
        self.assertEqual(notes["overdue"]["count"], 1)
        self.assertEqual(notes["overdue"]["amount"], Decimal("12.000"))
        self.assertEqual(notes["due_soon"]["amount"], Decimal("15.000"))
        self.assertEqual(notes["due_today"]["count"], 1)

    def test_low_stock_is_strictly_below_minimum(self):
        low = InventoryItem(name="A", quantity=Decimal("2"), min_stock_level=Decimal("3"))
        exact = InventoryItem(name="B", quantity=Decimal("3"), min_stock_level=Decimal("3"))
        fine = InventoryItem(name="C", quantity=Decimal("9"), min_stock_level=Decimal("3"))

        self.assertEqual(alerts.low_stock_items([low, exact, fine]), [low])
        self.assertEqual(alerts.stock_alert_level(exact), "critical_low")
        self.assertIsNone(alerts.stock_alert_level(fine))
        self.assertEqual(
            alerts.stock_alert_level(InventoryItem(name="D", quantity=Decimal("0"))),
            "out_of_stock",
        )

    def test_expiry_windows(self):
        expired = InventoryItem(name="A", expiry_date=days(-1))
        today = InventoryItem(name="B", expiry_date=TODAY)
        month = InventoryItem(name="C", expiry_date=days(30))
        quarter = InventoryItem(name="D", expiry_date=days(60))
        none = InventoryItem(name="E")
        items = [expired, today, month, quarter, none]

        self.assertEqual(alerts.expiring_items(items, TODAY), [today, month])
        self.assertEqual(alerts.expired_items(items, TODAY), [expired])
        self.assertEqual(alerts.expiring_items(items, TODAY, days=90), [today, month, quarter])

        self.assertEqual(alerts.expiry_status(expired, TODAY), "expired")
        self.assertEqual(alerts.expiry_status(month, TODAY), "expiring_soon")
        self.assertEqual(alerts.expiry_status(quarter, TODAY), "expiring_within_3_months")
        self.assertIsNone(alerts.expiry_status(none, TODAY))


class DeriveAlertsTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.customer = Customer.objects.create(name="Ali")
        self.item = InventoryItem.objects.create(
            name="Widget", quantity=Decimal("5"), min_stock_level=Decimal("4"),
            expiry_date=days(5))

    def test_alerts_read_current_state(self):
        invoice = create_invoice({
            "invoice_type": "sales",
            "customer_id": self.customer.pk,
            "date": "2025-09-01",
            "due_date": "2025-09-10",
            "lines": [{"item_id": self.item.pk, "quantity": 2, "unit_price": "10"}],
        }, today=TODAY)

        found = alerts.derive_alerts(TODAY)

        self.assertEqual(found.overdue, [invoice])
        self.assertEqual(found.due_soon, [])
        self.assertEqual(found.low_stock, [self.item])
        self.assertEqual(found.expiring, [self.item])
        self.assertEqual(found.expired, [])
        self.assertEqual(found.total, 3)
