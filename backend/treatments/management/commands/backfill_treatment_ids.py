# backend/treatments/management/commands/backfill_treatment_ids.py
#
# Run: python manage.py backfill_treatment_ids [--national-id ID]
#
# Gives every legacy (id-less) treatment an id so lookups stop falling back
# to name matching.

from django.core.management.base import BaseCommand

from treatments import services
from treatments.models import PatientRecord


class Command(BaseCommand):
    help = 'Assign ids to treatments stored without one'

    def add_arguments(self, parser):
        parser.add_argument('--national-id', dest='national_id', default=None,
                            help='Only backfill this patient')

    def handle(self, *args, **options):
        queryset = PatientRecord.objects.order_by('id')
        if options['national_id']:
            queryset = queryset.filter(national_id=options['national_id'])

        national_ids = list(queryset.values_list('national_id', flat=True))
        total = 0
        for national_id in national_ids:
            assigned = services.backfill_treatment_ids(national_id)
            if assigned:
                self.stdout.write(f'  {national_id}: {assigned} id(s) assigned')
            total += assigned

        self.stdout.write(self.style.SUCCESS(
            f'Backfill complete: {total} id(s) across {len(national_ids)} record(s).'
        ))
