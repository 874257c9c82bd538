"""
Seed the UAE base Chart of Accounts and default Account Mappings.

Safe to run repeatedly: existing accounts and mappings are left alone.

Usage:
    python manage.py seed_chart_of_accounts
    python manage.py seed_chart_of_accounts --industry healthcare
"""
from django.core.management.base import BaseCommand

from apps.finance.accounts import load_chart_template
from apps.finance.chart_templates import DEFAULT_MAPPINGS, INDUSTRIES
from apps.finance.models import AccountMapping


class Command(BaseCommand):
    help = 'Load the UAE base chart of accounts and default account mappings'

    def add_arguments(self, parser):
        parser.add_argument(
            '--industry',
            choices=INDUSTRIES,
            default='general',
            help='Also load the industry-specific accounts (default: general, base chart only)',
        )

    def handle(self, *args, **options):
        industry = options['industry']
        self.stdout.write(self.style.NOTICE(f'Seeding chart of accounts ({industry})...'))

        created, mapped = load_chart_template(industry=industry)

        for transaction_type, _, _ in DEFAULT_MAPPINGS:
            mapping = AccountMapping.objects.select_related('account').get(transaction_type=transaction_type)
            self.stdout.write(f'  {transaction_type} -> {mapping.account}')

        self.stdout.write(self.style.SUCCESS(
            f'\nSummary: {created} accounts created, {mapped} mappings created'
        ))
