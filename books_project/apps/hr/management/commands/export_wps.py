"""
Export a processed payroll run as a WPS Salary Information File (.sif).

Usage:
    python manage.py export_wps <run_id> [--output-dir DIR]
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.exceptions import ValidationError
from apps.core.money import format_aed
from apps.hr.models import PayrollRun
from apps.hr.wps import export_wps, write_sif


class Command(BaseCommand):
    help = 'Write the WPS SIF file for a processed payroll run.'

    def add_arguments(self, parser):
        parser.add_argument('run_id', type=int, help='Payroll run ID')
        parser.add_argument(
            '--output-dir',
            default='.',
            help='Directory to write the .sif file to (default: current directory).',
        )

    def handle(self, *args, **options):
        try:
            run = PayrollRun.objects.get(pk=options['run_id'])
        except PayrollRun.DoesNotExist:
            raise CommandError(f"Payroll run {options['run_id']} does not exist.")

        try:
            export = export_wps(run)
        except ValidationError as exc:
            raise CommandError('; '.join(exc.messages))

        path = write_sif(export, options['output_dir'])

        for skipped in export['ineligible']:
            self.stdout.write(self.style.WARNING(
                f"Skipped {skipped['employee']}: {', '.join(skipped['reasons'])}"
            ))
        self.stdout.write(self.style.SUCCESS(
            f"Wrote {path}: {export['record_count']} employee(s), net {format_aed(export['total_net'])}"
        ))
