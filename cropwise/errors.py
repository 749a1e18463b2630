"""
Error taxonomy for the prediction workflow.

Nothing here is fatal to the process: every error maps to a recoverable
workflow state or to a message the presentation layer can show.
"""
from typing import List, Optional


class CropwiseError(Exception):
    """Base class for all workflow and service errors."""


class ValidationError(CropwiseError):
    """Submitted inputs are incomplete; lists the fields that need fixing."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Please fill in all required fields: {', '.join(self.missing)}")


class EnrichmentUnavailable(CropwiseError):
    """Geolocation, weather or image lookup could not produce data."""


class ServiceError(CropwiseError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class PredictionServiceError(ServiceError):
    """The remote prediction call failed; message is passed through verbatim."""


class HistoryServiceError(ServiceError):
    """Fetching or deleting history records failed."""


class WorkflowStateError(CropwiseError):
    """The requested operation is not valid in the current workflow state."""


class WorkflowBusy(WorkflowStateError):
    """A prediction submission is already in flight."""
