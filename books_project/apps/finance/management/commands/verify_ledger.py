"""
Verify ledger integrity.

Checks:
1. Every posted journal entry balances (debit == credit)
2. Each account's cached balance equals the fold of its posted lines
3. The trial balance balances

Usage:
    python manage.py verify_ledger
    python manage.py verify_ledger --fix   # rebuild drifted cached balances
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.money import format_aed
from apps.finance.ledger import recompute_balances, unbalanced_entries
from apps.finance.statements import trial_balance


class Command(BaseCommand):
    help = 'Verify journal entries balance and cached account balances match the ledger'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Rebuild cached account balances that have drifted.',
        )

    def handle(self, *args, **options):
        fix = options.get('fix', False)
        problems = 0

        self.stdout.write(self.style.NOTICE('1. Checking posted entries balance...'))
        bad_entries = list(unbalanced_entries())
        for entry in bad_entries:
            self.stdout.write(self.style.ERROR(
                f'   {entry.entry_number}: debit {entry.line_debit} != credit {entry.line_credit}'
            ))
        if not bad_entries:
            self.stdout.write(self.style.SUCCESS('   All posted entries balance.'))
        problems += len(bad_entries)

        self.stdout.write(self.style.NOTICE('2. Checking cached account balances...'))
        drift = recompute_balances(fix=fix)
        for row in drift:
            self.stdout.write(self.style.WARNING(
                f"   {row['account']}: cached {format_aed(row['cached'])}, "
                f"ledger {format_aed(row['computed'])}" + (' (fixed)' if fix else '')
            ))
        if not drift:
            self.stdout.write(self.style.SUCCESS('   Cached balances match the ledger.'))
        if not fix:
            problems += len(drift)

        self.stdout.write(self.style.NOTICE('3. Checking trial balance...'))
        tb = trial_balance()
        if tb['is_balanced']:
            self.stdout.write(self.style.SUCCESS(
                f"   Balanced at {format_aed(tb['total_debit'])}."
            ))
        else:
            self.stdout.write(self.style.ERROR(
                f"   Out of balance: debit {format_aed(tb['total_debit'])}, credit {format_aed(tb['total_credit'])}"
            ))
            problems += 1

        if problems:
            raise CommandError(f'Ledger verification found {problems} problem(s).')
        self.stdout.write(self.style.SUCCESS('\nLedger verified.'))
