from __future__ import annotations
import os
from celery import Celery
from celery.schedules import crontab

# Celery workers need the Django settings module before anything is imported
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "shopbooks.settings")

celery_app = Celery("shopbooks")

# read config from Django settings, using CELERY_ prefix
celery_app.config_from_object("django.conf:settings", namespace="CELERY")

# pick up ledger_core/tasks.py
celery_app.autodiscover_tasks()

# Nightly maintenance: flip pending invoices past their due date to overdue
# and rebuild the account balance cache from the posted journal lines
celery_app.conf.beat_schedule = {
    "refresh-overdue-invoices": {
        "task": "ledger_core.tasks.refresh_overdue_invoices",
        "schedule": crontab(hour=0, minute=5),
    },
    "recompute-account-balances": {
        "task": "ledger_core.tasks.recompute_account_balances",
        "schedule": crontab(hour=0, minute=30),
    },
}
