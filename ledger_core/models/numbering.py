from django.db import models


class NumberSeries(models.Model):
    """
    One row per document series (SALES_INVOICE, RECEIPT_VOUCHER,
    JOURNAL_ENTRY, ...). Numbering takes a row lock here first, so
    concurrent writers queue up instead of computing the same number.
    """

    key = models.CharField(max_length=50, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["key"]
        verbose_name_plural = "number series"

    def __str__(self):
        return self.key
