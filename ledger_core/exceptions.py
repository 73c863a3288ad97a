from django.core.exceptions import ValidationError


class UnbalancedEntryError(Exception):
    """Raised when a JournalEntry fails the double-entry balance check."""
    pass


class AlreadyPostedDifferentPayload(Exception):
    """Raised when a JournalEntry already posted with different payload """
    pass


""" Recoverable business rule violations.
    All of them are ValidationErrors so views and forms
    can report them the same way as field errors. """


class ProductNotFound(ValidationError):
    """An invoice line points at a product that does not exist."""
    pass


class InsufficientStockError(ValidationError):
    """Not enough stock on hand to sell or return the requested quantity."""
    pass


class InsufficientStockToReverse(InsufficientStockError):
    """A purchase cannot be undone because part of its stock is gone."""
    pass


class ReturnQuantityExceededError(ValidationError):
    pass


class EditNotAllowedError(ValidationError):
    pass


class DeleteNotAllowedError(ValidationError):
    pass


class OpeningBalanceLockedError(ValidationError):
    """Opening balances are frozen once the counterparty has transactions."""
    pass


class ConcurrentModificationError(ValidationError):
    """The invoice changed since the caller last read it."""
    pass
