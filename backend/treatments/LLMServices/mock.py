import json

from .base import BaseLLMAdapter, LLMResponse

MOCK_ANALYSIS = {
    "prescriptions": [
        {
            "medicineName": "Amlodipine",
            "dose": "5mg",
            "quantity": "30",
            "frequency": ["morning"],
            "suitability": "suitable",
            "reasoning": "Mock analysis for development and tests.",
        }
    ],
    "drugInteractions": {"withOngoingTreatments": []},
    "sideEffects": {
        "combined": {
            "potentialCombinedEffects": [],
            "monitoringRequired": ["blood pressure"],
            "riskLevel": "low",
        }
    },
    "overallAssessment": {
        "status": "approved",
        "summary": "Mock analysis.",
        "recommendations": [],
        "warnings": [],
        "criticalAlerts": [],
    },
    "extractedText": "Amlodipine 5mg once in the morning",
}


class MockLLMAdapter(BaseLLMAdapter):
    """No network; always answers with MOCK_ANALYSIS."""

    def _call_api(self, prompt: str) -> LLMResponse:
        return LLMResponse(content=json.dumps(MOCK_ANALYSIS), model="mock-model")
