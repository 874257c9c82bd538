"""
Management command to flag overdue invoices and bills.
Should be run daily via cron job or task scheduler.

Usage:
    python manage.py mark_overdue
    python manage.py mark_overdue --as-of 2025-03-31 --dry-run
"""
import datetime

from django.core.management.base import BaseCommand, CommandError

from apps.documents.posting import mark_overdue


class Command(BaseCommand):
    help = 'Mark issued, unpaid documents past their due date as overdue.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--as-of',
            help='Date to check against (YYYY-MM-DD). Defaults to today.',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be marked without changing anything.',
        )

    def handle(self, *args, **options):
        as_of = None
        if options.get('as_of'):
            try:
                as_of = datetime.date.fromisoformat(options['as_of'])
            except ValueError:
                raise CommandError(f"Invalid --as-of date '{options['as_of']}'; use YYYY-MM-DD.")
        dry_run = options.get('dry_run', False)

        numbers = mark_overdue(as_of=as_of, dry_run=dry_run)

        if not numbers:
            self.stdout.write(self.style.SUCCESS('No documents are overdue.'))
            return
        for number in numbers:
            self.stdout.write(f'  {number}')
        verb = 'would be marked' if dry_run else 'marked'
        self.stdout.write(self.style.SUCCESS(f'{len(numbers)} document(s) {verb} overdue.'))
