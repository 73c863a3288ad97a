from decimal import Decimal
import datetime
from django.test import TestCase, override_settings
from ..exceptions import InsufficientStockError, InsufficientStockToReverse, ProductNotFound
from ..models import Customer, InventoryItem, Invoice, JournalEntry, Supplier
from ..services.chart import seed_chart_of_accounts
from ..services.inventory import group_quantities, stock_value
from ..services.invoices import create_invoice, delete_invoice, parse_lines

TODAY = datetime.date(2025, 9, 18)


class InventoryTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.customer = Customer.objects.create(name="Ali")
        self.supplier = Supplier.objects.create(name="Gulf Trading")
        self.item = InventoryItem.objects.create(
            name="Widget", quantity=Decimal("0"), price=Decimal("10.000"))

    def purchase(self, lines, **extra):
        data = {"invoice_type": "purchase", "supplier_id": self.supplier.pk, "lines": lines}
        data.update(extra)
        return create_invoice(data, today=TODAY)

    def sale(self, lines, **extra):
        data = {"invoice_type": "sales", "customer_id": self.customer.pk, "lines": lines}
        data.update(extra)
        return create_invoice(data, today=TODAY)

    def test_weighted_average_cost(self):
        self.purchase([{"item_id": self.item.pk, "quantity": 10, "unit_price": "5"}])
        self.purchase([{"item_id": self.item.pk, "quantity": 10, "unit_price": "7"}])

        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("20.000"))
        self.assertEqual(self.item.purchase_price, Decimal("6.000"))
        self.assertEqual(stock_value(self.item), Decimal("120.000"))

    def test_same_product_twice_on_one_invoice_moves_stock_once(self):
        self.purchase([
            {"item_id": self.item.pk, "quantity": 4, "unit_price": "5"},
            {"item_id": self.item.pk, "quantity": 6, "unit_price": "10"},
        ])
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("10.000"))
        # (4×5 + 6×10) / 10
        self.assertEqual(self.item.purchase_price, Decimal("8.000"))

        self.sale([
            {"item_id": self.item.pk, "quantity": 3, "unit_price": "10"},
            {"item_id": self.item.pk, "quantity": 2, "unit_price": "10"},
        ])
        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("5.000"))

    def test_group_quantities_sums_per_product(self):
        lines = parse_lines([
            {"item_id": self.item.pk, "quantity": 1},
            {"item_id": self.item.pk, "quantity": "2.5"},
        ])
        for line in lines:
            line.item = self.item
        self.assertEqual(group_quantities(lines), {self.item.pk: Decimal("3.5")})

    def test_purchase_by_new_name_creates_product(self):
        self.purchase([{"item_name": "Gadget", "quantity": 3, "unit_price": "4"}])

        gadget = InventoryItem.objects.get(name="Gadget")
        self.assertEqual(gadget.quantity, Decimal("3.000"))
        self.assertEqual(gadget.purchase_price, Decimal("4.000"))

    def test_sale_of_unknown_product_changes_nothing(self):
        with self.assertRaises(ProductNotFound):
            self.sale([{"item_id": 99999, "quantity": 1, "unit_price": "10"}])

        self.assertEqual(Invoice.objects.count(), 0)
        self.assertEqual(JournalEntry.objects.count(), 0)

    def test_sale_needs_enough_stock(self):
        self.purchase([{"item_id": self.item.pk, "quantity": 2, "unit_price": "5"}])

        with self.assertRaises(InsufficientStockError):
            self.sale([{"item_id": self.item.pk, "quantity": 3, "unit_price": "10"}])

        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("2.000"))
        self.assertEqual(Invoice.objects.sales().count(), 0)

    def test_purchase_delete_rejected_when_stock_was_sold(self):
        purchase = self.purchase([{"item_id": self.item.pk, "quantity": 10, "unit_price": "5"}])
        self.sale([{"item_id": self.item.pk, "quantity": 6, "unit_price": "10"}])

        with self.assertRaises(InsufficientStockToReverse):
            delete_invoice(purchase.pk)

        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("4.000"))
        self.assertTrue(Invoice.objects.filter(pk=purchase.pk).exists())

    def test_purchase_delete_takes_stock_back_out(self):
        purchase = self.purchase([{"item_id": self.item.pk, "quantity": 10, "unit_price": "5"}])
        delete_invoice(purchase.pk)

        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("0.000"))

    def test_sale_delete_restores_stock(self):
        self.purchase([{"item_id": self.item.pk, "quantity": 10, "unit_price": "5"}])
        sale = self.sale([{"item_id": self.item.pk, "quantity": 4, "unit_price": "10"}])
        delete_invoice(sale.pk)

        self.item.refresh_from_db()
        self.assertEqual(self.item.quantity, Decimal("10.000"))


class ExpiryExtensionTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.supplier = Supplier.objects.create(name="Gulf Trading")
        self.item = InventoryItem.objects.create(
            name="Milk",
            quantity=Decimal("10"),
            purchase_price=Decimal("1.000"),
            expiry_date=TODAY + datetime.timedelta(days=10),
        )

    def purchase(self, quantity, expiry_date=None):
        line = {"item_id": self.item.pk, "quantity": quantity, "unit_price": "1"}
        if expiry_date:
            line["expiry_date"] = expiry_date.isoformat()
        return create_invoice(
            {"invoice_type": "purchase", "supplier_id": self.supplier.pk, "lines": [line]},
            today=TODAY,
        )

    def test_large_fresh_batch_extends_near_expiry(self):
        # 6 > 0.5 × 10 and the current batch expires within 30 days
        self.purchase(6)
        self.item.refresh_from_db()
        self.assertEqual(self.item.expiry_date, TODAY + datetime.timedelta(days=365))

    def test_small_top_up_keeps_expiry(self):
        self.purchase(4)
        self.item.refresh_from_db()
        self.assertEqual(self.item.expiry_date, TODAY + datetime.timedelta(days=10))

    def test_line_expiry_date_wins(self):
        batch_expiry = datetime.date(2026, 3, 1)
        self.purchase(2, expiry_date=batch_expiry)
        self.item.refresh_from_db()
        self.assertEqual(self.item.expiry_date, batch_expiry)

    @override_settings(LEDGER_CORE={"EXPIRY_EXTENSION_ENABLED": False})
    def test_extension_can_be_switched_off(self):
        self.purchase(8)
        self.item.refresh_from_db()
        self.assertEqual(self.item.expiry_date, TODAY + datetime.timedelta(days=10))
