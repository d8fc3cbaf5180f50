import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='PatientRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('national_id', models.CharField(max_length=32, unique=True)),
                ('name', models.CharField(blank=True, default='', max_length=200)),
                ('age', models.PositiveIntegerField(blank=True, null=True)),
                ('gender', models.CharField(blank=True, default='', max_length=20)),
                ('blood_group', models.CharField(blank=True, default='', max_length=5)),
                ('medical_history', models.JSONField(blank=True, default=list)),
                ('ongoing_treatments', models.JSONField(blank=True, default=list, null=True)),
                ('ongoing_treatment_past', models.JSONField(blank=True, default=list, null=True)),
                ('past_treatments', models.JSONField(blank=True, default=list, null=True)),
                ('past_treatments_past', models.JSONField(blank=True, default=list, null=True)),
                ('report_url_treatments', models.JSONField(blank=True, default=dict, null=True)),
                ('report_url_treatments_past', models.JSONField(blank=True, default=dict, null=True)),
                ('revision', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='PrescriptionAnalysis',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transcript', models.TextField()),
                ('treatment_context', models.JSONField(blank=True, default=dict)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('result', models.JSONField(blank=True, null=True)),
                ('llm_model', models.CharField(blank=True, default='', max_length=100)),
                ('error_message', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='prescription_analyses', to='treatments.patientrecord')),
                ('previous', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='retries', to='treatments.prescriptionanalysis')),
            ],
        ),
    ]
