# backend/treatments/serializers.py
from rest_framework import serializers

from .models import PatientRecord, PrescriptionAnalysis
from .services import FREQUENCY_TAGS


class PatientRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = PatientRecord
        fields = [
            'national_id', 'name', 'age', 'gender', 'blood_group', 'medical_history',
            'ongoing_treatments', 'ongoing_treatment_past',
            'past_treatments', 'past_treatments_past',
            'report_url_treatments', 'report_url_treatments_past',
            'revision', 'created_at', 'updated_at',
        ]
        read_only_fields = [
            'ongoing_treatments', 'ongoing_treatment_past',
            'past_treatments', 'past_treatments_past',
            'report_url_treatments', 'report_url_treatments_past',
            'revision', 'created_at', 'updated_at',
        ]
        # uniqueness is checked by the service so the error carries our format
        extra_kwargs = {'national_id': {'validators': []}}


class PrescriptionSerializer(serializers.Serializer):
    # the portal keys prescription rows by a numeric Date.now() id
    id = serializers.JSONField(required=False)
    medicineName = serializers.CharField(allow_blank=True, required=False, default='')
    dose = serializers.CharField(allow_blank=True, required=False, default='')
    quantity = serializers.CharField(allow_blank=True, required=False, default='')
    frequency = serializers.ListField(
        child=serializers.ChoiceField(choices=FREQUENCY_TAGS),
        required=False,
        default=list,
    )


class AttachedReportSerializer(serializers.Serializer):
    name = serializers.CharField()
    url = serializers.CharField(allow_blank=True, required=False, default='')
    date = serializers.CharField(allow_blank=True, required=False)
    treatmentId = serializers.CharField(allow_blank=True, allow_null=True, required=False)


class TreatmentInputSerializer(serializers.Serializer):
    """
    Treatment fields as the portal sends them (camelCase).
    `name` is accepted as a legacy alias of `treatmentName`.
    Blank names are rejected by the service, not here.
    """
    treatmentName = serializers.CharField(allow_blank=True, required=False, default='')
    name = serializers.CharField(allow_blank=True, required=False, write_only=True)
    description = serializers.CharField(allow_blank=True, required=False, default='')
    startDate = serializers.CharField(allow_blank=True, required=False, default='')
    followUpDate = serializers.CharField(allow_blank=True, required=False, default='')
    notes = serializers.CharField(allow_blank=True, required=False, default='')
    prescriptions = PrescriptionSerializer(many=True, required=False, default=list)
    attachedReports = AttachedReportSerializer(many=True, required=False, default=list)

    def validate(self, attrs):
        legacy_name = attrs.pop('name', '')
        if not attrs.get('treatmentName'):
            attrs['treatmentName'] = legacy_name
        return attrs


class TreatmentReferenceSerializer(serializers.Serializer):
    id = serializers.CharField(allow_blank=True, required=False, default='')
    name = serializers.CharField(allow_blank=True, required=False, default='')
    treatmentName = serializers.CharField(allow_blank=True, required=False, write_only=True)

    def validate(self, attrs):
        legacy_name = attrs.pop('treatmentName', '')
        if not attrs.get('name'):
            attrs['name'] = legacy_name
        return attrs


class TreatmentUpdateSerializer(serializers.Serializer):
    reference = TreatmentReferenceSerializer()
    treatment = TreatmentInputSerializer()
    confirm = serializers.BooleanField(required=False, default=False)


class TreatmentActionSerializer(serializers.Serializer):
    """Body of complete/remove."""
    reference = TreatmentReferenceSerializer()


class ReportAttachSerializer(serializers.Serializer):
    name = serializers.CharField()
    url = serializers.CharField()
    uploadedBy = serializers.CharField(required=False, default='lab')
    reference = TreatmentReferenceSerializer(required=False, allow_null=True, default=None)


class PrescriptionAnalysisRequestSerializer(serializers.Serializer):
    transcript = serializers.CharField(allow_blank=True)
    treatment_context = serializers.DictField(required=False, default=dict)
    previous_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class PrescriptionAnalysisSerializer(serializers.ModelSerializer):
    analysis_id = serializers.IntegerField(source='id', read_only=True)
    national_id = serializers.CharField(source='patient.national_id', read_only=True)

    class Meta:
        model = PrescriptionAnalysis
        fields = [
            'analysis_id', 'national_id', 'previous', 'transcript', 'treatment_context',
            'status', 'result', 'llm_model', 'error_message', 'created_at', 'updated_at',
        ]
        read_only_fields = fields
