"""
JSON endpoints over the ledger services.

The POST endpoints are csrf_exempt: API clients send JSON without the
session cookie / CSRF token pair. Put authentication in front of them
(reverse proxy or middleware) when the API is exposed.
"""
import json
import logging

from django.core.exceptions import ValidationError
from django.http import Http404, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .exceptions import ConcurrentModificationError
from .models import Customer, Invoice, Supplier
from .services import alerts, balances, invoices, reports, vouchers
from .utils import parse_day

logger = logging.getLogger(__name__)


def _payload(request):
    if request.content_type == "application/json":
        try:
            return json.loads(request.body or b"{}")
        except json.JSONDecodeError:
            raise ValidationError("Request body is not valid JSON.")
    return request.POST.dict()


def _error(exc, status=400):
    logger.info("Request rejected (%s): %s", status, "; ".join(exc.messages))
    # ValidationError.messages flattens dict and list errors alike
    return JsonResponse({"ok": False, "errors": exc.messages}, status=status)


def _invoice_json(invoice):
    return {
        "id": invoice.pk,
        "number": invoice.number,
        "invoice_type": invoice.invoice_type,
        "total": invoice.total,
        "paid_amount": invoice.paid_amount,
        "payment_status": invoice.payment_status,
        "lifecycle_state": invoice.lifecycle_state,
        "version": invoice.version,
    }


@csrf_exempt
@require_POST
def invoice_create_view(request):
    try:
        invoice = invoices.create_invoice(_payload(request), user=request.user)
    except ValidationError as e:
        return _error(e)
    return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)}, status=201)


@csrf_exempt
@require_POST
def invoice_edit_view(request, invoice_id):
    get_object_or_404(Invoice, pk=invoice_id)
    try:
        data = _payload(request)
        invoice = invoices.edit_invoice(invoice_id, data, user=request.user)
    except ValidationError as e:
        # stale version → 409 so clients know to reload
        status = 409 if isinstance(e, ConcurrentModificationError) else 400
        return _error(e, status=status)
    return JsonResponse({"ok": True, "invoice": _invoice_json(invoice)})


@csrf_exempt
@require_POST
def invoice_delete_view(request, invoice_id):
    get_object_or_404(Invoice, pk=invoice_id)
    try:
        number = invoices.delete_invoice(invoice_id, user=request.user)
    except ValidationError as e:
        return _error(e)
    return JsonResponse({"ok": True, "deleted": number})


@csrf_exempt
@require_POST
def invoice_return_view(request, invoice_id):
    get_object_or_404(Invoice, pk=invoice_id)
    try:
        data = _payload(request)
        ret = invoices.create_return(
            invoice_id,
            data.get("lines") or [],
            refund=bool(data.get("refund")),
            user=request.user,
            payment_method=data.get("payment_method"),
            notes=data.get("notes", ""),
        )
    except ValidationError as e:
        return _error(e)
    return JsonResponse({"ok": True, "invoice": _invoice_json(ret)}, status=201)


@csrf_exempt
@require_POST
def voucher_create_view(request):
    try:
        data = _payload(request)
        voucher = vouchers.record_voucher(
            data.get("voucher_type"),
            data.get("amount"),
            customer=data.get("customer_id"),
            supplier=data.get("supplier_id"),
            invoice=data.get("invoice_id"),
            date=parse_day(data.get("date"), "date"),
            payment_method=data.get("payment_method") or "cash",
            reference=data.get("reference", ""),
            notes=data.get("notes", ""),
            user=request.user,
        )
    except ValidationError as e:
        return _error(e)
    return JsonResponse(
        {"ok": True, "voucher": {"id": voucher.pk, "number": voucher.number,
                                 "amount": voucher.amount}},
        status=201,
    )


@require_GET
def counterparty_balance_view(request, role, pk):
    models_by_role = {"customer": Customer, "supplier": Supplier}
    if role not in models_by_role:
        raise Http404("Unknown counterparty type")
    model = models_by_role[role]
    counterparty = get_object_or_404(model, pk=pk)
    total = balances.total_balance(counterparty)
    side, magnitude = balances.balance_side(counterparty, total)
    return JsonResponse({
        "name": counterparty.name,
        "opening_balance": counterparty.balance,
        "unpaid_invoices": balances.unpaid_invoice_balance(counterparty),
        "total_balance": total,
        "side": side,
        "amount": magnitude,
    })


@require_GET
def alerts_view(request):
    found = alerts.derive_alerts()
    return JsonResponse({
        "overdue": [inv.number for inv in found.overdue],
        "due_soon": [inv.number for inv in found.due_soon],
        "low_stock": [item.name for item in found.low_stock],
        "expiring": [item.name for item in found.expiring],
        "expired": [item.name for item in found.expired],
        "total": found.total,
    })


def _row_json(row):
    return {
        "code": row.code,
        "name": row.name,
        "ac_type": row.ac_type,
        "debit": row.debit,
        "credit": row.credit,
        "balance": row.natural_balance,
    }


@require_GET
def trial_balance_view(request):
    try:
        report = reports.trial_balance(parse_day(request.GET.get("as_of"), "as_of"))
    except ValidationError as e:
        return _error(e)
    return JsonResponse({
        "as_of": report.as_of,
        "rows": [_row_json(row) for row in report.rows],
        "total_debit": report.total_debit,
        "total_credit": report.total_credit,
        "is_balanced": report.is_balanced,
    })


@require_GET
def income_statement_view(request):
    try:
        report = reports.income_statement(
            parse_day(request.GET.get("start"), "start"),
            parse_day(request.GET.get("end"), "end"),
        )
    except ValidationError as e:
        return _error(e)
    return JsonResponse({
        "start": report.start,
        "end": report.end,
        "revenue": [_row_json(row) for row in report.revenue],
        "expenses": [_row_json(row) for row in report.expenses],
        "total_revenue": report.total_revenue,
        "total_expenses": report.total_expenses,
        "net_income": report.net_income,
    })


@require_GET
def balance_sheet_view(request):
    try:
        report = reports.balance_sheet(parse_day(request.GET.get("as_of"), "as_of"))
    except ValidationError as e:
        return _error(e)
    return JsonResponse({
        "as_of": report.as_of,
        "assets": [_row_json(row) for row in report.assets],
        "liabilities": [_row_json(row) for row in report.liabilities],
        "equity": [_row_json(row) for row in report.equity],
        "current_earnings": report.current_earnings,
        "total_assets": report.total_assets,
        "total_liabilities": report.total_liabilities,
        "total_equity": report.total_equity,
        "is_balanced": report.is_balanced,
    })
