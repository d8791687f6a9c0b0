"""
Management command to re-derive fee balances and statuses.
Fees only change status on save, so fees passing their due date need a periodic refresh
(e.g. a daily cron job) to become overdue.
"""
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from accounts.models import Fee
from accounts.utils import derive_fee_status, compute_balance


class Command(BaseCommand):
    help = 'Recompute balance and status for every fee that is not cancelled'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show which fees would change without saving them',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)
        today = timezone.localdate()

        fees = Fee.objects.exclude(status='cancelled').select_related('student')
        self.stdout.write(f"Checking {fees.count()} fees...")

        changed = 0
        for fee in fees.iterator():
            status = derive_fee_status(fee.total_amount, fee.paid_amount, fee.due_date,
                                       current_status=fee.status, today=today)
            balance = compute_balance(fee.total_amount, fee.paid_amount)
            if status == fee.status and balance == fee.balance:
                continue

            changed += 1
            if dry_run:
                self.stdout.write(
                    self.style.WARNING(f"[DRY RUN] Fee {fee.pk} ({fee.student.display_name}): {fee.status} -> {status}")
                )
                continue

            with transaction.atomic():
                fee = Fee.objects.select_for_update().get(pk=fee.pk)
                previous = fee.status
                fee.save(update_fields=['balance', 'status'])
            self.stdout.write(self.style.SUCCESS(f"Fee {fee.pk}: {previous} -> {fee.status}"))

        if dry_run:
            self.stdout.write(self.style.WARNING(f"[DRY RUN] {changed} fee(s) would be updated"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Updated {changed} fee(s)"))
