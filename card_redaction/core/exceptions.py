# card_redaction/core/exceptions.py

"""Custom exception hierarchy for the card redaction pipeline.

Document-level failures (splitting, zero processed pages, cancellation) abort
a run. Page-level failures (analysis errors and timeouts) are caught by the
orchestrator and recorded in the page manifest instead.
"""

from typing import Any, List, Optional


class RedactionError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigurationError(RedactionError):
    """Raised when configuration loading or validation fails."""

    pass


class InitializationError(RedactionError):
    """Raised when the analysis client or external resources fail to initialize."""

    pass


class ValidationError(RedactionError):
    """Raised when input validation fails (e.g., unsupported content type)."""

    pass


class PipelineError(RedactionError):
    """Raised when a specific processing step in the pipeline fails."""

    pass


class SplitError(PipelineError):
    """Raised when a source document cannot be split into page images."""

    def __init__(self, message: str, page_index: Optional[int] = None):
        self.page_index = page_index
        if page_index is not None:
            message = f"Failed to render page {page_index + 1}: {message}"
        super().__init__(message)


class AnalysisError(PipelineError):
    """Raised when the analysis service rejects or fails to analyze a page."""

    pass


class AnalysisTimeoutError(AnalysisError):
    """Raised when a page analysis call exceeds its time limit."""

    pass


class DocumentProcessingError(PipelineError):
    """Raised when no page of a non-empty document could be processed.

    Attributes:
        pages: Per-page manifest entries collected before the failure
    """

    def __init__(self, message: str, pages: Optional[List[Any]] = None):
        self.pages = list(pages or [])
        super().__init__(message)


class ProcessingCancelled(PipelineError):
    """Raised when the caller cancels a run between pages."""

    pass


class RenderError(PipelineError):
    """Raised when redaction marks cannot be written to the output document."""

    pass
