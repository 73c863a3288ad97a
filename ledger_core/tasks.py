import logging

from celery import shared_task
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def refresh_overdue_invoices():
    # import services lazily to avoid circular imports at module import time
    from .services.invoices import refresh_overdue_statuses

    changed = refresh_overdue_statuses(timezone.localdate())
    logger.info("Overdue refresh changed %s invoices", changed)
    return changed


@shared_task
def recompute_account_balances():
    """Rebuild cached account balances and report broken entries."""
    from .services.ledger import find_unbalanced_entries
    from .services.ledger import recompute_account_balances as rebuild

    unbalanced = find_unbalanced_entries()
    for je in unbalanced:
        logger.error("Unbalanced journal entry found: %s", je)

    fixed = rebuild()
    return {
        "fixed_accounts": [account.code for account in fixed],
        "unbalanced_entries": [je.pk for je in unbalanced],
    }
