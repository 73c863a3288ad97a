from django.contrib import admin
from django.core.exceptions import PermissionDenied
from django.db.models import Prefetch

from .models import (Account, AuditLog, Customer, InventoryItem, Invoice,
                     InvoiceLine, JournalEntry, JournalLine, Supplier, Voucher)
from .services.balances import total_balance
from .services.inventory import stock_value

"""Base admin for read-only models: documents created through the services."""


class ReadOnlyAdmin(admin.ModelAdmin):
    list_per_page = 50

    # make every model field readonly
    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    # Viewing the change form is allowed; the fields are all readonly
    def has_change_permission(self, request, obj=None):
        return True

    def save_model(self, request, obj, form, change):
        raise PermissionDenied("Rows cannot be changed via the admin.")

    # Disable admin actions like delete_selected
    def get_actions(self, request):
        return {}


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request, obj=None):
        return False


class JournalLineInline(ReadOnlyInline):
    model = JournalLine
    fields = ("account", "account_name", "description", "debit", "credit", "is_posted")


class InvoiceLineInline(ReadOnlyInline):
    model = InvoiceLine
    fields = ("item", "item_name", "quantity", "unit_price", "color_price",
              "discount_amount", "total", "expiry_date")


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "ac_type", "normal_balance", "balance",
                    "is_control_account", "is_active")
    list_filter = ("ac_type", "is_active", "is_control_account")
    search_fields = ("code", "name")
    # the balance cache is maintained by postings only
    readonly_fields = ("balance",)


@admin.register(JournalEntry)
class JournalEntryAdmin(ReadOnlyAdmin):
    list_display = ("entry_number", "date", "reference", "entry_type", "operation",
                    "source_key", "attempt", "status", "balanced")
    list_filter = ("status", "entry_type", "operation", "date")
    search_fields = ("reference", "description", "source_key")
    inlines = [JournalLineInline]

    # Fetch lines and their accounts in one go
    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.prefetch_related(
            Prefetch("lines", queryset=JournalLine.objects.select_related("account"))
        )

    @admin.display(boolean=True, description="Balanced")
    def balanced(self, obj):
        lines = obj.lines.all()
        return sum(line.debit for line in lines) == sum(line.credit for line in lines)


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("name", "sku", "quantity", "price", "purchase_price",
                    "min_stock_level", "expiry_date", "is_low_stock", "stock_value")
    search_fields = ("name", "sku")
    list_filter = ("expiry_date",)

    def get_readonly_fields(self, request, obj=None):
        # after creation stock moves only through invoices
        if obj is not None:
            return ("quantity", "purchase_price")
        return ()

    @admin.display(boolean=True, description="Low stock")
    def is_low_stock(self, obj):
        return obj.is_low_stock

    @admin.display(description="Stock value")
    def stock_value(self, obj):
        return stock_value(obj)


class CounterpartyAdmin(admin.ModelAdmin):
    list_display = ("name", "phone", "email", "balance", "running_balance")
    search_fields = ("name", "phone", "email")

    def get_readonly_fields(self, request, obj=None):
        # opening balance is frozen once documents reference the counterparty
        if obj is not None and (obj.invoices.exists() or obj.vouchers.exists()):
            return ("balance",)
        return ()

    @admin.display(description="Running balance")
    def running_balance(self, obj):
        return total_balance(obj)


admin.site.register(Customer, CounterpartyAdmin)
admin.site.register(Supplier, CounterpartyAdmin)


@admin.register(Invoice)
class InvoiceAdmin(ReadOnlyAdmin):
    list_display = ("number", "invoice_type", "date", "due_date", "customer",
                    "supplier", "total", "paid_amount", "payment_status",
                    "lifecycle_state", "is_return")
    list_filter = ("invoice_type", "payment_status", "lifecycle_state", "is_return")
    search_fields = ("number", "customer__name", "supplier__name")
    inlines = [InvoiceLineInline]


@admin.register(Voucher)
class VoucherAdmin(ReadOnlyAdmin):
    list_display = ("number", "voucher_type", "date", "customer", "supplier",
                    "amount", "invoice", "payment_method")
    list_filter = ("voucher_type", "payment_method")
    search_fields = ("number", "reference")


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "actor", "action", "object_type", "object_id")
    list_filter = ("action", "object_type")
    search_fields = ("object_id", "actor")
