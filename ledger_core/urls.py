from django.urls import path

from . import views

app_name = "ledger_core"

urlpatterns = [
    path("invoices/", views.invoice_create_view, name="invoice-create"),
    path("invoices/<int:invoice_id>/edit/", views.invoice_edit_view, name="invoice-edit"),
    path("invoices/<int:invoice_id>/delete/", views.invoice_delete_view, name="invoice-delete"),
    path("invoices/<int:invoice_id>/returns/", views.invoice_return_view, name="invoice-return"),
    path("vouchers/", views.voucher_create_view, name="voucher-create"),
    path("<str:role>/<int:pk>/balance/", views.counterparty_balance_view,
         name="counterparty-balance"),
    path("alerts/", views.alerts_view, name="alerts"),
    path("reports/trial-balance/", views.trial_balance_view, name="trial-balance"),
    path("reports/income-statement/", views.income_statement_view, name="income-statement"),
    path("reports/balance-sheet/", views.balance_sheet_view, name="balance-sheet"),
]
