import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils.dateparse import parse_date

# KWD has three minor units (fils); quantities are tracked to the same scale
MONEY_PLACES = Decimal("0.001")
ZERO = Decimal("0.000")


def to_decimal(value) -> Decimal:
    """Coerce user input (str, int, float, None) into a Decimal."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() first so floats like 0.1 don't drag binary noise along
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"Invalid number: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"Invalid number: {value!r}")
    return result


def money(value) -> Decimal:
    """Round to 0.001 with ROUND_HALF_UP."""
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def lock_series(key):
    """
    Row lock on one numbering series. Whoever holds it is the only one
    reading the last number and writing the next, until commit.
    """
    # lazy import: the models import this module
    from .models import NumberSeries

    series, _ = NumberSeries.objects.select_for_update().get_or_create(key=key)
    return series


@transaction.atomic
def generate_number(document_type, model_class, number_field="number", **filters):
    """
    Generate a sequential number for documents.
    Format: PREFIX + zero padded sequence (e.g., S0001, SR0012)

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'SALES_INVOICE')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number
        filters: Extra lookups narrowing the series (e.g. invoice_type)

    Returns:
        str: Generated number
    """
    config = settings.NUMBER_SERIES.get(document_type, {})
    prefix = config.get("prefix", "DOC")
    padding = config.get("padding", 4)

    lock_series(document_type)

    # Match PREFIX followed by digits only, so "S" never picks up "SR0003"
    filter_kwargs = {f"{number_field}__regex": rf"^{prefix}[0-9]+$", **filters}
    numbers = model_class.objects.filter(**filter_kwargs).values_list(
        number_field, flat=True
    )

    last_seq = 0
    for number in numbers:
        try:
            last_seq = max(last_seq, int(number[len(prefix):]))
        except ValueError:
            continue

    return f"{prefix}{str(last_seq + 1).zfill(padding)}"


def parse_day(value, field_name="date"):
    """Accept a date or an ISO string; blank means no date."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime.date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        # well formed but not a real day, e.g. 2025-02-30
        parsed = None
    if parsed is None:
        raise ValidationError({field_name: f"Invalid date: {value}"})
    return parsed
