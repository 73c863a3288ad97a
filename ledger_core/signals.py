from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models.signals import pre_delete
from django.dispatch import Signal, receiver

from .models import Account, AuditLog, JournalEntry, JournalLine

""" Fired after every committed change to invoices, vouchers,
    stock or balances. Receivers get sender (model class),
    action ("create", "edit", "delete", "return", ...) and instance. """
ledger_changed = Signal()


def notify_change(instance, action):
    """Send ledger_changed once the surrounding transaction commits."""
    sender = instance.__class__

    def _send():
        ledger_changed.send(sender=sender, action=action, instance=instance)

    # Rolled back work never notifies anyone
    transaction.on_commit(_send)


"""Block deletion if account has ever been used in a journal line."""


@receiver(pre_delete, sender=Account)
def prevent_delete_account_with_journal_lines(sender, instance, **kwargs):
    if JournalLine.objects.filter(account=instance).exists():
        raise ValidationError("Cannot delete account used in journal lines.")


"""Posted journals are append-only, even for queryset deletes."""


@receiver(pre_delete, sender=JournalEntry)
def prevent_delete_posted_journal(sender, instance, **kwargs):
    if instance.status == "posted":
        raise ValidationError(
            "Cannot delete a posted JournalEntry; reverse it instead.")


@receiver(pre_delete, sender=AuditLog)
def prevent_delete_audit_log(sender, instance, **kwargs):
    raise ValidationError("Audit log entries cannot be deleted.")
