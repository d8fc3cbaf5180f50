"""
Celery tasks for prescription analysis.
"""
import time

import structlog
from celery import shared_task
from prometheus_client import Counter, Histogram

from .LLMServices import get_LLM_adapter
from .models import PrescriptionAnalysis

logger = structlog.get_logger(__name__)

PRESCRIPTION_ANALYSIS_TOTAL = Counter(
    "prescription_analysis_total",
    "Prescription analysis attempts",
    ["status"],  # success, error, not_found
)
PRESCRIPTION_ANALYSIS_DURATION = Histogram(
    "prescription_analysis_duration_seconds",
    "Time spent analysing prescriptions",
    buckets=[1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)


@shared_task(bind=True, max_retries=3)
def analyze_prescription_task(self, analysis_id):
    """
    pending -> processing -> completed | failed.
    Errors are retried with a 1s, 2s, 4s countdown; after the last retry the
    analysis is marked failed.
    """
    try:
        analysis = PrescriptionAnalysis.objects.select_related('patient', 'previous').get(id=analysis_id)
    except PrescriptionAnalysis.DoesNotExist:
        logger.error("prescription_analysis_not_found", analysis_id=analysis_id)
        PRESCRIPTION_ANALYSIS_TOTAL.labels(status="not_found").inc()
        return {"status": "error", "message": "Analysis not found"}

    # build_patient_context lives in services, which imports this module
    from .services import build_patient_context

    start_time = time.time()
    analysis.status = 'processing'
    analysis.save(update_fields=['status', 'updated_at'])

    logger.info(
        "prescription_analysis_started",
        analysis_id=analysis_id,
        retry_count=self.request.retries,
        is_reanalysis=analysis.previous_id is not None,
    )

    try:
        adapter = get_LLM_adapter()
        patient = build_patient_context(analysis.patient)

        if analysis.previous_id is not None:
            result, model = adapter.reanalyze_prescription(
                analysis.transcript, patient, analysis.previous.result,
            )
        else:
            result, model = adapter.analyze_prescription(
                analysis.transcript, patient, analysis.treatment_context,
            )

    except Exception as e:
        PRESCRIPTION_ANALYSIS_DURATION.observe(time.time() - start_time)
        will_retry = self.request.retries < self.max_retries

        logger.error(
            "prescription_analysis_failed",
            analysis_id=analysis_id,
            error=str(e),
            error_type=type(e).__name__,
            retry_count=self.request.retries,
            will_retry=will_retry,
        )

        if not will_retry:
            PRESCRIPTION_ANALYSIS_TOTAL.labels(status="error").inc()
            analysis.status = 'failed'
            analysis.error_message = str(e)[:1000]
            analysis.save(update_fields=['status', 'error_message', 'updated_at'])
            return {"status": "failed", "analysis_id": analysis_id}

        raise self.retry(exc=e, countdown=2 ** self.request.retries)

    analysis.result = result
    analysis.llm_model = model
    analysis.error_message = ''
    analysis.status = 'completed'
    analysis.save(update_fields=['result', 'llm_model', 'error_message', 'status', 'updated_at'])

    duration = time.time() - start_time
    PRESCRIPTION_ANALYSIS_DURATION.observe(duration)
    PRESCRIPTION_ANALYSIS_TOTAL.labels(status="success").inc()

    warnings = (result.get("overallAssessment") or {}).get("warnings") or []
    logger.info(
        "prescription_analysis_completed",
        analysis_id=analysis_id,
        model=model,
        assessment=(result.get("overallAssessment") or {}).get("status"),
        warning_count=len(warnings),
        duration_seconds=round(duration, 2),
    )
    return {"status": "completed", "analysis_id": analysis_id}
