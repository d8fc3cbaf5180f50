# backend/treatments/urls.py

from django.urls import path
from . import views

urlpatterns = [
    # POST /api/patients/                                  → register patient
    path('patients/', views.PatientCreate.as_view(), name='patient-create'),
    # GET  /api/patients/A123/                             → full record
    path('patients/<str:national_id>/', views.PatientDetail.as_view(), name='patient-detail'),

    # GET  /api/patients/A123/treatments/?scope=past       → list
    # POST /api/patients/A123/treatments/                  → create
    path('patients/<str:national_id>/treatments/', views.TreatmentListCreate.as_view(), name='treatment-list-create'),
    path('patients/<str:national_id>/treatments/update/', views.TreatmentUpdate.as_view(), name='treatment-update'),
    path('patients/<str:national_id>/treatments/complete/', views.TreatmentComplete.as_view(), name='treatment-complete'),
    path('patients/<str:national_id>/treatments/remove/', views.TreatmentRemove.as_view(), name='treatment-remove'),
    # GET  /api/patients/A123/treatments/history/?id=treatment_...&scope=ongoing
    path('patients/<str:national_id>/treatments/history/', views.TreatmentHistory.as_view(), name='treatment-history'),

    # POST /api/patients/A123/reports/                     → attach a report
    path('patients/<str:national_id>/reports/', views.ReportAttach.as_view(), name='report-attach'),

    # POST /api/patients/A123/prescription-analyses/       → queue AI analysis
    path('patients/<str:national_id>/prescription-analyses/', views.PrescriptionAnalysisCreate.as_view(), name='prescription-analysis-create'),
    # GET  /api/prescription-analyses/7/                   → poll status
    path('prescription-analyses/<int:pk>/', views.PrescriptionAnalysisDetail.as_view(), name='prescription-analysis-detail'),
]
