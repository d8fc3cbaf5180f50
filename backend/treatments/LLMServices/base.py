import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..exceptions import AnalysisError


@dataclass
class LLMResponse:
    content: str
    model: str


def _medications(treatment, with_frequency=True):
    prescriptions = treatment.get("prescriptions") or []
    if not prescriptions:
        return "No medications specified"
    parts = []
    for med in prescriptions:
        text = f"{med.get('medicineName', '')} {med.get('dose', '')}".strip()
        if with_frequency:
            frequency = ", ".join(med.get("frequency") or []) or "frequency not specified"
            text += f" ({frequency})"
        parts.append(text)
    return "; ".join(parts)


def _treatment_name(treatment):
    return treatment.get("treatmentName") or treatment.get("name") or "Unnamed"


def _json_block(text):
    match = re.search(r"\{[\s\S]*\}", text or "")
    if not match:
        raise AnalysisError(
            message="Could not parse the analysis",
            detail="No JSON object found in the model response.",
        )
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AnalysisError(
            message="Could not parse the analysis",
            detail=f"Invalid JSON in model response: {e}",
        ) from e


class BaseLLMAdapter(ABC):
    """
    Prompt building and response parsing are shared;
    each subclass only knows how to talk to its API.
    """

    def analyze_prescription(self, transcript, patient, treatment_context=None):
        """Returns (analysis dict, model name)."""
        prompt = self._build_prompt(transcript, patient, treatment_context)
        response = self._call_api(prompt)
        result = _json_block(response.content)
        if "prescriptions" not in result or "overallAssessment" not in result:
            raise AnalysisError(
                message="Invalid analysis result structure",
                detail="Expected 'prescriptions' and 'overallAssessment' keys.",
            )
        return result, response.model

    def reanalyze_prescription(self, transcript, patient, previous_result=None):
        prompt = self._build_retry_prompt(transcript, patient, previous_result)
        response = self._call_api(prompt)
        return _json_block(response.content), response.model

    def _build_prompt(self, transcript, patient, treatment_context=None) -> str:
        ongoing = patient.get("ongoing_treatments") or []
        past = patient.get("past_treatments") or []

        ongoing_details = "\n".join(
            f"Treatment: {_treatment_name(t)} | Medications: {_medications(t)} | "
            f"Started: {t.get('startDate') or 'Date not specified'}"
            for t in ongoing
        ) or "None"
        past_details = "\n".join(
            f"Treatment: {_treatment_name(t)} | Medications: {_medications(t, with_frequency=False)} | "
            f"Completed: {t.get('completedDate') or 'Date not specified'}"
            for t in past
        ) or "None"

        if treatment_context:
            existing = treatment_context.get("prescriptions") or []
            context = (
                f"- Treatment Name: {treatment_context.get('treatmentName') or 'Not specified'}\n"
                f"- Treatment Description: {treatment_context.get('description') or 'Not specified'}\n"
                f"- Treatment Start Date: {treatment_context.get('startDate') or 'Not specified'}\n"
                f"- Treatment Notes: {treatment_context.get('notes') or 'None'}\n"
                f"- Existing Prescriptions in Form: "
                f"{_medications({'prescriptions': existing}) if existing else 'None'}"
            )
        else:
            context = "No current treatment context provided"

        medical_history = ", ".join(patient.get("medicalHistory") or []) or "None available"

        return f"""As a medical AI assistant, analyze the following voice prescription and patient information to determine if the prescribed medications are suitable for the patient and the specific treatment context.

VOICE PRESCRIPTION TRANSCRIPT:
"{transcript}"

PATIENT INFORMATION:
- Name: {patient.get('name') or 'Unknown'}
- Age: {patient.get('age') or 'Unknown'} years
- Gender: {patient.get('gender') or 'Unknown'}
- Blood Group: {patient.get('bloodGroup') or 'Unknown'}
- Medical History: {medical_history}

CURRENT TREATMENT CONTEXT:
{context}

ONGOING TREATMENTS WITH MEDICATIONS:
{ongoing_details}

PAST TREATMENTS WITH MEDICATIONS:
{past_details}

Respond with ONLY a JSON object of this shape:
{{
  "prescriptions": [
    {{
      "medicineName": "extracted medicine name",
      "dose": "extracted dosage",
      "quantity": "extracted quantity",
      "frequency": ["morning", "afternoon", "evening", "night"],
      "suitability": "suitable|caution|unsuitable",
      "reasoning": "explanation for suitability assessment"
    }}
  ],
  "drugInteractions": {{
    "withOngoingTreatments": [
      {{
        "newMedicine": "medicine from the transcript",
        "existingMedicine": "medicine from an ongoing treatment",
        "interactionLevel": "severe|moderate|mild|none",
        "description": "interaction details",
        "recommendation": "action to take"
      }}
    ]
  }},
  "sideEffects": {{
    "combined": {{
      "potentialCombinedEffects": ["effect"],
      "monitoringRequired": ["what to monitor"],
      "riskLevel": "low|moderate|high"
    }}
  }},
  "overallAssessment": {{
    "status": "approved|needs_review|rejected",
    "summary": "assessment summary",
    "recommendations": ["recommendation"],
    "warnings": ["warning"],
    "criticalAlerts": ["critical alert"]
  }},
  "extractedText": "cleaned and structured prescription text"
}}

Check every new medicine against ALL ongoing treatment medications, consider age, gender and medical history, and flag contraindications. If the transcript is unclear or incomplete, say so in the warnings."""

    def _build_retry_prompt(self, transcript, patient, previous_result=None) -> str:
        current = ", ".join(
            _treatment_name(t) for t in (patient.get("ongoing_treatments") or [])
        ) or "None"
        previous = (
            f"PREVIOUS ANALYSIS FOR REFERENCE:\n{json.dumps(previous_result, indent=2)}\n"
            if previous_result else ""
        )
        return f"""Please re-analyze this voice prescription with more focus on accuracy and completeness.
The previous analysis had issues.

VOICE PRESCRIPTION TRANSCRIPT:
"{transcript}"

PATIENT INFORMATION:
- Name: {patient.get('name') or 'Unknown'}
- Age: {patient.get('age') or 'Unknown'} years
- Gender: {patient.get('gender') or 'Unknown'}
- Blood Group: {patient.get('bloodGroup') or 'Unknown'}
- Current Treatments: {current}

{previous}
Answer with a JSON object in the same format as before, paying special attention to:
1. More precise medicine name extraction
2. Clearer dosage and frequency interpretation
3. More thorough safety assessment
4. Better structured recommendations"""

    @abstractmethod
    def _call_api(self, prompt: str) -> LLMResponse:
        # each subclass implements its own API call
        pass
