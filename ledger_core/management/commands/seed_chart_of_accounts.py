from django.core.management.base import BaseCommand

from ledger_core.services.chart import seed_chart_of_accounts


class Command(BaseCommand):
    help = "Create the default chart of accounts (existing codes are left alone)."

    def handle(self, *args, **options):
        created = seed_chart_of_accounts()
        for account in created:
            self.stdout.write(f"  + {account.code} {account.name}")
        self.stdout.write(
            self.style.SUCCESS(f"Chart of accounts ready ({len(created)} accounts created).")
        )
