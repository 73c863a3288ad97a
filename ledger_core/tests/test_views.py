from decimal import Decimal
from django.test import Client, TestCase
from django.urls import reverse
from ..models import Customer, InventoryItem, Invoice, Voucher
from ..services.chart import seed_chart_of_accounts


class ApiViewTests(TestCase):
    def setUp(self):
        seed_chart_of_accounts()
        self.customer = Customer.objects.create(name="Ali", balance=Decimal("3"))
        self.item = InventoryItem.objects.create(
            name="Widget", quantity=Decimal("5"), price=Decimal("10.000"))

    def post_json(self, name, payload, **kwargs):
        return self.client.post(
            reverse(f"ledger_core:{name}", kwargs=kwargs),
            data=payload,
            content_type="application/json",
        )

    def create_sale(self, quantity=2):
        return self.post_json("invoice-create", {
            "invoice_type": "sales",
            "customer_id": self.customer.pk,
            "lines": [{"item_id": self.item.pk, "quantity": quantity, "unit_price": "10"}],
        })

    def test_create_invoice(self):
        response = self.create_sale()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["invoice"]["number"], "S0001")
        self.assertEqual(Decimal(body["invoice"]["total"]), Decimal("20.000"))

    def test_business_errors_are_400(self):
        response = self.create_sale(quantity=50)

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["ok"])
        self.assertIn("Insufficient stock", response.json()["errors"][0])
        self.assertFalse(Invoice.objects.exists())

    def test_stale_edit_is_409(self):
        invoice_id = self.create_sale().json()["invoice"]["id"]

        ok = self.post_json("invoice-edit", {"notes": "x", "expected_version": 1},
                            invoice_id=invoice_id)
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["invoice"]["version"], 2)

        stale = self.post_json("invoice-edit", {"notes": "y", "expected_version": 1},
                               invoice_id=invoice_id)
        self.assertEqual(stale.status_code, 409)

    def test_return_and_delete(self):
        invoice_id = self.create_sale().json()["invoice"]["id"]

        response = self.post_json("invoice-return", {
            "lines": [{"item_id": self.item.pk, "quantity": 1}],
            "refund": True,
        }, invoice_id=invoice_id)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["invoice"]["number"], "SR0001")

        # invoices with returns stay
        response = self.post_json("invoice-delete", {}, invoice_id=invoice_id)
        self.assertEqual(response.status_code, 400)

        other_id = self.create_sale(quantity=1).json()["invoice"]["id"]
        response = self.post_json("invoice-delete", {}, invoice_id=other_id)
        self.assertEqual(response.json(), {"ok": True, "deleted": "S0002"})

    def test_unknown_invoice_is_404(self):
        response = self.post_json("invoice-delete", {}, invoice_id=999)
        self.assertEqual(response.status_code, 404)

    def test_voucher_and_balance(self):
        invoice_id = self.create_sale().json()["invoice"]["id"]
        response = self.post_json("voucher-create", {
            "voucher_type": "receipt", "amount": "8", "invoice_id": invoice_id,
        })
        self.assertEqual(response.status_code, 201)
        self.assertTrue(Voucher.objects.filter(number="RV0001").exists())

        url = reverse("ledger_core:counterparty-balance",
                      kwargs={"role": "customer", "pk": self.customer.pk})
        body = self.client.get(url).json()
        # opening 3 + unpaid (20 - 8)
        self.assertEqual(Decimal(body["total_balance"]), Decimal("15.000"))
        self.assertEqual(body["side"], "debit")

        url = reverse("ledger_core:counterparty-balance",
                      kwargs={"role": "employee", "pk": self.customer.pk})
        self.assertEqual(self.client.get(url).status_code, 404)

    def test_alerts(self):
        InventoryItem.objects.create(name="Gadget", quantity=Decimal("1"),
                                     min_stock_level=Decimal("2"))
        body = self.client.get(reverse("ledger_core:alerts")).json()
        self.assertEqual(body["low_stock"], ["Gadget"])
        self.assertEqual(body["total"], 1)

    def test_get_not_allowed_on_create(self):
        response = self.client.get(reverse("ledger_core:invoice-create"))
        self.assertEqual(response.status_code, 405)

    def test_json_clients_need_no_csrf_token(self):
        client = Client(enforce_csrf_checks=True)
        response = client.post(
            reverse("ledger_core:invoice-create"),
            data={
                "invoice_type": "sales",
                "customer_id": self.customer.pk,
                "lines": [{"item_id": self.item.pk, "quantity": 1, "unit_price": "10"}],
            },
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)

    def test_bad_numbers_are_400(self):
        response = self.post_json("invoice-create", {
            "invoice_type": "sales",
            "customer_id": self.customer.pk,
            "lines": [{"item_id": self.item.pk, "quantity": "two", "unit_price": "10"}],
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid number", response.json()["errors"][0])

        invoice_id = self.create_sale().json()["invoice"]["id"]
        response = self.post_json("invoice-edit", {"notes": "x", "expected_version": "latest"},
                                  invoice_id=invoice_id)
        self.assertEqual(response.status_code, 400)

        response = self.post_json("voucher-create", {
            "voucher_type": "receipt", "amount": "ten", "invoice_id": invoice_id,
        })
        self.assertEqual(response.status_code, 400)

    def test_reports(self):
        self.create_sale()

        body = self.client.get(reverse("ledger_core:trial-balance")).json()
        self.assertTrue(body["is_balanced"])
        self.assertEqual(Decimal(body["total_debit"]), Decimal("20.000"))
        self.assertEqual([row["code"] for row in body["rows"]], ["1101", "4001"])

        body = self.client.get(reverse("ledger_core:income-statement")).json()
        self.assertEqual(Decimal(body["net_income"]), Decimal("20.000"))

        body = self.client.get(reverse("ledger_core:balance-sheet")).json()
        self.assertTrue(body["is_balanced"])
        self.assertEqual(Decimal(body["total_assets"]), Decimal("20.000"))

        response = self.client.get(reverse("ledger_core:balance-sheet"), {"as_of": "someday"})
        self.assertEqual(response.status_code, 400)
