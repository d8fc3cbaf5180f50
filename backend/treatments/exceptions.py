"""
Unified exception hierarchy
===========================
Every business error derives from BaseAppException.
exception_handler only knows this base class and turns it into one JSON shape.

Rules:
- the service layer raises the matching exception when something is wrong
- views never write try/except around service calls
- exception_handler renders everything the same way
- the client only needs to look at response.type
"""


# ============================================================
# Base class
# ============================================================
class BaseAppException(Exception):
    """
    Base class for all application errors.

    Rendered as:
    {
        "type": "error" | "warning",
        "code": "TREATMENT_NAME_REQUIRED",   # machine readable
        "message": "short human readable text",
        "detail": ["detail line 1", "detail line 2"],
    }
    """
    type = "error"
    code = "UNKNOWN_ERROR"
    http_status = 500
    message = "An unexpected error occurred"

    def __init__(self, message=None, detail=None, code=None):
        if message:
            self.message = message
        if code:
            self.code = code

        # detail is always a list so the client can iterate it
        if detail is None:
            self.detail = []
        elif isinstance(detail, str):
            self.detail = [detail]
        else:
            self.detail = list(detail)

        super().__init__(self.message)

    def to_dict(self):
        return {
            "type": self.type,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


# ============================================================
# Input problems
# ============================================================
class AppValidationError(BaseAppException):
    """
    Required input missing or malformed, e.g. a blank treatment name.
    Raised before anything is written.

    Named AppValidationError so it never shadows
    rest_framework.exceptions.ValidationError.
    """
    type = "error"
    code = "VALIDATION_ERROR"
    http_status = 400
    message = "Input validation failed"


class NotFoundError(BaseAppException):
    """Patient record or treatment reference absent at read time."""
    type = "error"
    code = "NOT_FOUND"
    http_status = 404
    message = "Requested record was not found"


# ============================================================
# Business block (cannot be confirmed away)
# ============================================================
class BlockError(BaseAppException):
    """
    A business rule forbids the operation, e.g. registering a national id
    that already has a record. The input has to change.
    """
    type = "error"
    code = "BUSINESS_BLOCK"
    http_status = 409
    message = "Operation blocked by business rules"


# ============================================================
# Store problems
# ============================================================
class ConflictError(BaseAppException):
    """
    The record changed between fetch and write (revision mismatch).
    The caller must re-fetch before retrying.
    """
    type = "error"
    code = "REVISION_CONFLICT"
    http_status = 409
    message = "Patient record was modified concurrently"


class PersistenceError(BaseAppException):
    """
    The write round trip failed. Nothing computed in memory was kept;
    the caller must re-fetch before retrying.
    """
    type = "error"
    code = "PERSISTENCE_ERROR"
    http_status = 503
    message = "Could not save the patient record"


# ============================================================
# AI collaborator
# ============================================================
class AnalysisError(BaseAppException):
    """LLM call failed on every model, or returned something unusable."""
    type = "error"
    code = "ANALYSIS_ERROR"
    http_status = 503
    message = "Prescription analysis is temporarily unavailable"


# ============================================================
# Warnings (caller may confirm and resubmit)
# ============================================================
class WarningException(BaseAppException):
    """
    Suspicious but recoverable. The client shows a confirm dialog and
    resubmits with confirm=True.
    """
    type = "warning"
    code = "BUSINESS_WARNING"
    http_status = 200
    message = "Please confirm to continue"


class ReferenceAmbiguityWarning(WarningException):
    """
    An update referenced a treatment that is not among the ongoing ones.
    Confirming saves the data as a brand-new treatment.
    """
    code = "TREATMENT_REFERENCE_UNRESOLVED"
    message = "Treatment not found among ongoing treatments"
