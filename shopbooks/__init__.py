# Celery instance lives in shopbooks/celery.py and reads the Django settings
# Exposing it here lets "celery -A shopbooks worker -l info" find it
from .celery import celery_app

__all__ = ("celery_app",)
