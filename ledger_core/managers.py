from django.db import models

# -----------------------------------------
# Reusable query helpers for the ledger models
# -----------------------------------------


class JournalEntryQuerySet(models.QuerySet):
    def posted(self):
        return self.filter(status="posted")

    def for_key(self, source_key, operation=None):
        qs = self.filter(source_key=source_key)
        if operation:
            qs = qs.filter(operation=operation)
        return qs

    def active(self):
        """Posted entries that are neither reversals nor already reversed."""
        return (
            self.posted()
            .exclude(entry_type="reversal")
            .filter(reversed_by__isnull=True)
        )


class JournalEntryManager(models.Manager):
    def get_queryset(self):
        return JournalEntryQuerySet(self.model, using=self._db)

    def posted(self):
        return self.get_queryset().posted()

    def for_key(self, source_key, operation=None):
        return self.get_queryset().for_key(source_key, operation)

    def active(self):
        return self.get_queryset().active()


class InvoiceQuerySet(models.QuerySet):
    def sales(self):
        return self.filter(invoice_type="sales")

    def purchases(self):
        return self.filter(invoice_type="purchase")

    def originals(self):
        # Everything that is not a return document
        return self.filter(is_return=False)

    def returns(self):
        return self.filter(is_return=True)

    def unpaid(self):
        return self.originals().exclude(payment_status="paid")

    def for_counterparty(self, counterparty):
        if counterparty.ROLE == "customer":
            return self.filter(customer=counterparty)
        return self.filter(supplier=counterparty)


class InvoiceManager(models.Manager):
    def get_queryset(self):
        return InvoiceQuerySet(self.model, using=self._db)

    def sales(self):
        return self.get_queryset().sales()

    def purchases(self):
        return self.get_queryset().purchases()

    def originals(self):
        return self.get_queryset().originals()

    def returns(self):
        return self.get_queryset().returns()

    def unpaid(self):
        return self.get_queryset().unpaid()

    def for_counterparty(self, counterparty):
        return self.get_queryset().for_counterparty(counterparty)


class InventoryItemQuerySet(models.QuerySet):
    def low_stock(self):
        # Strictly below the minimum; sitting exactly on it is fine
        return self.filter(quantity__lt=models.F("min_stock_level"))

    def with_expiry(self):
        return self.filter(expiry_date__isnull=False)


# Enables InventoryItem.objects.low_stock()
InventoryItemManager = models.Manager.from_queryset(InventoryItemQuerySet)
