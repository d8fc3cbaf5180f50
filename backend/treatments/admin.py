# backend/treatments/admin.py
from django.contrib import admin
from .models import PatientRecord, PrescriptionAnalysis

# Browse / inspect rows at http://localhost:8000/admin/
admin.site.register(PatientRecord)
admin.site.register(PrescriptionAnalysis)
