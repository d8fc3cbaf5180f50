# backend/treatments/models.py
#
# One row per patient. Treatments, their history stacks and the report maps
# are JSON columns on that row, the same layout the portal front end reads.

from django.db import models


class PatientRecord(models.Model):
    """
    Patient document.

    Unique key: national_id (opaque string).
    Every write bumps `revision`; writers compare-and-swap on it.
    """
    national_id = models.CharField(max_length=32, unique=True)

    # ---------- demographics (AI prompt context only) ----------
    name = models.CharField(max_length=200, blank=True, default='')
    age = models.PositiveIntegerField(null=True, blank=True)
    gender = models.CharField(max_length=20, blank=True, default='')
    blood_group = models.CharField(max_length=5, blank=True, default='')
    medical_history = models.JSONField(default=list, blank=True)

    # ---------- treatment columns ----------
    ongoing_treatments = models.JSONField(default=list, blank=True, null=True)
    ongoing_treatment_past = models.JSONField(default=list, blank=True, null=True)   # history stack, newest first
    past_treatments = models.JSONField(default=list, blank=True, null=True)
    past_treatments_past = models.JSONField(default=list, blank=True, null=True)
    report_url_treatments = models.JSONField(default=dict, blank=True, null=True)
    report_url_treatments_past = models.JSONField(default=dict, blank=True, null=True)

    revision = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name or 'Patient'} ({self.national_id})"


class PrescriptionAnalysis(models.Model):
    """
    One AI analysis of a voice-transcribed prescription.

    Created as 'pending'; the Celery task moves it to processing and then
    completed/failed. A re-analysis points at the run it retries via `previous`.
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    patient = models.ForeignKey(PatientRecord, on_delete=models.CASCADE, related_name='prescription_analyses')
    previous = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='retries')

    transcript = models.TextField()
    treatment_context = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    result = models.JSONField(null=True, blank=True)
    llm_model = models.CharField(max_length=100, blank=True, default='')
    error_message = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"PrescriptionAnalysis #{self.id} - {self.patient.national_id} ({self.status})"
