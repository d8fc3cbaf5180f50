# backend/treatments/views.py
#
# Views only parse the request, call the service, and shape the response.
# Errors are raised by the service and rendered by exception_handler.
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .serializers import (
    PatientRecordSerializer,
    PrescriptionAnalysisRequestSerializer,
    PrescriptionAnalysisSerializer,
    ReportAttachSerializer,
    TreatmentActionSerializer,
    TreatmentInputSerializer,
    TreatmentUpdateSerializer,
)


def _result_payload(result):
    return {
        'treatment': result.treatment,
        'record': result.record,
    }


class PatientCreate(APIView):
    """POST /api/patients/ → register a patient record"""

    def post(self, request):
        serializer = PatientRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        patient = services.create_patient_record(serializer.validated_data)
        return Response(PatientRecordSerializer(patient).data, status=status.HTTP_201_CREATED)


class PatientDetail(APIView):
    """GET /api/patients/{national_id}/ → full record"""

    def get(self, request, national_id):
        patient = services.get_patient_record(national_id)
        return Response(PatientRecordSerializer(patient).data)


class TreatmentListCreate(APIView):
    """
    GET  /api/patients/{national_id}/treatments/?scope=ongoing|past
    POST /api/patients/{national_id}/treatments/
    """

    def get(self, request, national_id):
        scope = request.query_params.get('scope', 'ongoing')
        treatments = services.list_treatments(national_id, scope=scope)
        return Response({'scope': scope, 'treatments': treatments})

    def post(self, request, national_id):
        serializer = TreatmentInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.create_treatment(national_id, serializer.validated_data)
        return Response(_result_payload(result), status=status.HTTP_201_CREATED)


class TreatmentUpdate(APIView):
    """POST /api/patients/{national_id}/treatments/update/"""

    def post(self, request, national_id):
        serializer = TreatmentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = services.update_treatment(
            national_id,
            data['reference'],
            data['treatment'],
            confirm=data['confirm'],
        )
        return Response(_result_payload(result))


class TreatmentComplete(APIView):
    """POST /api/patients/{national_id}/treatments/complete/"""

    def post(self, request, national_id):
        serializer = TreatmentActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.complete_treatment(national_id, serializer.validated_data['reference'])
        return Response(_result_payload(result))


class TreatmentRemove(APIView):
    """POST /api/patients/{national_id}/treatments/remove/"""

    def post(self, request, national_id):
        serializer = TreatmentActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.remove_treatment(national_id, serializer.validated_data['reference'])
        return Response(_result_payload(result))


class TreatmentHistory(APIView):
    """GET /api/patients/{national_id}/treatments/history/?id=...&name=...&scope=ongoing|past"""

    def get(self, request, national_id):
        scope = request.query_params.get('scope', 'ongoing')
        reference = {
            'id': request.query_params.get('id', ''),
            'name': request.query_params.get('name', ''),
        }
        history = services.query_history(national_id, reference, scope=scope)
        return Response({'scope': scope, 'history': history})


class ReportAttach(APIView):
    """POST /api/patients/{national_id}/reports/"""

    def post(self, request, national_id):
        serializer = ReportAttachSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = services.attach_report(
            national_id,
            data['name'],
            data['url'],
            reference=data['reference'],
            uploaded_by=data['uploadedBy'],
        )
        return Response(_result_payload(result), status=status.HTTP_201_CREATED)


class PrescriptionAnalysisCreate(APIView):
    """
    POST /api/patients/{national_id}/prescription-analyses/
    Queues the analysis and answers 202 right away; poll the detail URL.
    """

    def post(self, request, national_id):
        serializer = PrescriptionAnalysisRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        analysis = services.request_prescription_analysis(
            national_id,
            data['transcript'],
            treatment_context=data['treatment_context'],
            previous_id=data['previous_id'],
        )
        analysis.refresh_from_db()
        return Response(PrescriptionAnalysisSerializer(analysis).data, status=status.HTTP_202_ACCEPTED)


class PrescriptionAnalysisDetail(APIView):
    """GET /api/prescription-analyses/{id}/ → status and result"""

    def get(self, request, pk):
        analysis = services.get_prescription_analysis(pk)
        return Response(PrescriptionAnalysisSerializer(analysis).data)
