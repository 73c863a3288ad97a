from django.forms.models import model_to_dict
from ..models import AuditLog


def actor_name(user) -> str | None:
    """Username for a Django user, the value itself for plain strings."""
    if user is None:
        return None
    get_username = getattr(user, "get_username", None)
    if callable(get_username):
        return get_username()
    return str(user)


def snapshot(instance, fields=None) -> dict:
    """JSON-safe dict of a model instance, used for before/after diffs."""
    data = model_to_dict(instance, fields=fields)
    return {key: str(value) if value is not None else None for key, value in data.items()}


def log_action(
    *,
    action: str,
    instance=None,
    user=None,
    object_type: str | None = None,
    object_id=None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Safe to call multiple times (caller ensures idempotency).
    """
    if instance is not None:
        object_type = object_type or instance.__class__.__name__
        object_id = object_id if object_id is not None else instance.pk

    return AuditLog.objects.create(
        actor=actor_name(user),
        action=action,
        object_type=object_type or "",
        object_id=str(object_id) if object_id is not None else "",
        changes=changes,
    )
