# backend/treatments/management/commands/load_mock_data.py
#
# Run: python manage.py load_mock_data
#
# Seeds a few patients and walks their treatments through the real service
# functions, so the JSON columns look exactly like production rows.

from django.core.management.base import BaseCommand

from treatments import services
from treatments.models import PatientRecord, PrescriptionAnalysis


class Command(BaseCommand):
    help = 'Load demo patients with ongoing, updated and completed treatments'

    def handle(self, *args, **options):
        # wipe old data so the command can be re-run
        self.stdout.write('Clearing existing data...')
        PrescriptionAnalysis.objects.all().delete()
        PatientRecord.objects.all().delete()

        # ============================================================
        # 1. Patients
        # ============================================================
        self.stdout.write('Creating patients...')
        patients = [
            {'national_id': '123456789012', 'name': 'Asha Verma', 'age': 54,
             'gender': 'Female', 'blood_group': 'B+', 'medical_history': ['Hypertension']},
            {'national_id': '234567890123', 'name': 'Rahul Nair', 'age': 37,
             'gender': 'Male', 'blood_group': 'O+', 'medical_history': ['Asthma']},
            {'national_id': '345678901234', 'name': 'Meera Iyer', 'age': 68,
             'gender': 'Female', 'blood_group': 'A-', 'medical_history': ['Type 2 diabetes', 'CKD stage 2']},
        ]
        for data in patients:
            services.create_patient_record(data)

        # ============================================================
        # 2. Treatments
        # ============================================================
        self.stdout.write('Creating treatments...')

        # Asha: one treatment edited twice, one completed
        htn = services.create_treatment('123456789012', {
            'treatmentName': 'Hypertension Rx',
            'startDate': '2024-01-10',
            'prescriptions': [
                {'medicineName': 'Amlodipine', 'dose': '5mg', 'quantity': '30', 'frequency': ['morning']},
            ],
        }).treatment
        services.update_treatment('123456789012', htn, {
            'treatmentName': 'Hypertension Rx',
            'startDate': '2024-01-10',
            'notes': 'dose increased',
            'prescriptions': [
                {'medicineName': 'Amlodipine', 'dose': '10mg', 'quantity': '30', 'frequency': ['morning']},
            ],
        })
        services.attach_report(
            '123456789012', 'Lipid Profile', 'https://reports.example.org/lipid-asha.pdf',
            reference={'id': htn['id']},
        )
        uti = services.create_treatment('123456789012', {
            'treatmentName': 'UTI course',
            'startDate': '2024-02-01',
            'prescriptions': [
                {'medicineName': 'Nitrofurantoin', 'dose': '100mg', 'quantity': '10',
                 'frequency': ['morning', 'night']},
            ],
        }).treatment
        services.complete_treatment('123456789012', {'id': uti['id']})

        # Rahul: a single ongoing treatment
        services.create_treatment('234567890123', {
            'treatmentName': 'Asthma maintenance',
            'description': 'Inhaled corticosteroid',
            'prescriptions': [
                {'medicineName': 'Budesonide', 'dose': '200mcg', 'quantity': '1 inhaler',
                 'frequency': ['morning', 'evening']},
            ],
        })

        # Meera: a legacy row written before treatments carried ids
        PatientRecord.objects.filter(national_id='345678901234').update(
            ongoing_treatments=[{
                'treatmentName': 'Diabetes care',
                'prescriptions': [
                    {'medicineName': 'Metformin', 'dose': '500mg', 'quantity': '60',
                     'frequency': ['morning', 'night']},
                ],
            }],
        )

        # ============================================================
        # 3. Summary
        # ============================================================
        self.stdout.write(self.style.SUCCESS(
            f'Done! Created {PatientRecord.objects.count()} patients.'
        ))
        for patient in PatientRecord.objects.all():
            self.stdout.write(
                f'  {patient.national_id} {patient.name}: '
                f'{len(patient.ongoing_treatments or [])} ongoing, '
                f'{len(patient.past_treatments or [])} past, '
                f'{len(patient.ongoing_treatment_past or [])} history entries'
            )
