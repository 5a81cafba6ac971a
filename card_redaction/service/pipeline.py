# card_redaction/service/pipeline.py

"""Main document redaction service pipeline."""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import List, Optional

from card_redaction.service.config import Settings, settings
from card_redaction.core.definitions import BlockKind, ElementKind
from card_redaction.core.domain import (
    BoundingBox,
    PageAnalysis,
    PageImage,
    PageOutcome,
    ProcessingResult,
    ProgressCallback,
    RedactionElement,
    RedactionOutcome,
    SensitiveMatch,
    TextBlock,
)
from card_redaction.core.exceptions import (
    AnalysisTimeoutError,
    DocumentProcessingError,
    InitializationError,
    PipelineError,
    ProcessingCancelled,
    RenderError,
    ValidationError,
)
from card_redaction.engine.analysis import DocumentAnalyzer, TextractAnalyzer
from card_redaction.engine.locator import BlockLocator
from card_redaction.engine.matcher import PatternMatcher, page_text
from card_redaction.engine.rasterizer import PageSplitter, resolve_content_type
from card_redaction.engine.renderer import apply_redactions
from card_redaction.logic.ordering import sort_reading_order
from card_redaction.logic.visibility import classify_blocks

logger = logging.getLogger(__name__)


class AnalyzerService:
    """Singleton holder for the Textract-backed analyzer.

    Manages client lifecycle and provides thread-safe access to it.
    """

    _instance: Optional[DocumentAnalyzer] = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> DocumentAnalyzer:
        """Returns singleton analyzer instance.

        Raises:
            InitializationError: If the analyzer cannot be created
        """
        if cls._instance is None:
            with cls._lock:
                # Double-checked locking pattern
                if cls._instance is None:
                    try:
                        logger.info("Initializing analysis client")
                        secret = settings.aws_secret_access_key
                        cls._instance = TextractAnalyzer(
                            feature_types=settings.textract_feature_types,
                            region_name=settings.aws_region,
                            aws_access_key_id=settings.aws_access_key_id,
                            aws_secret_access_key=(
                                secret.get_secret_value() if secret else None
                            ),
                            timeout_seconds=settings.page_timeout_seconds,
                        )
                        logger.info("Analysis client initialized successfully")

                    except Exception as e:
                        logger.error("Failed to initialize analysis client", exc_info=True)
                        if isinstance(e, InitializationError):
                            raise
                        raise InitializationError(
                            "Analysis client initialization failed"
                        ) from e

        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None


def safe_progress(on_progress: Optional[ProgressCallback]) -> ProgressCallback:
    """Wraps an observer so that it can never interrupt the pipeline."""

    def notify(status: str, current: int, total: int) -> None:
        if on_progress is None:
            return
        try:
            on_progress(status, current, total)
        except Exception:
            logger.warning("Progress observer raised; ignoring", exc_info=True)

    return notify


class DocumentRedactionPipeline:
    """Per-page orchestration of analysis, detection and block location.

    Pages are analyzed one after another. A failing page is recorded in the
    manifest and the next page is attempted; only a failed split or a run
    without a single successful page fails the document.
    """

    def __init__(
        self,
        analyzer: DocumentAnalyzer,
        splitter: Optional[PageSplitter] = None,
        matcher: Optional[PatternMatcher] = None,
        locator: Optional[BlockLocator] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.config = config or settings
        self.analyzer = analyzer
        self.splitter = splitter or PageSplitter(scale=self.config.raster_scale)
        self.matcher = matcher or PatternMatcher()
        self.locator = locator or BlockLocator(
            min_group_matches=self.config.min_group_matches
        )

    def build_element(
        self, match: SensitiveMatch, located: List[TextBlock], page_index: int
    ) -> Optional[RedactionElement]:
        """Turns located blocks into a RedactionElement.

        Returns:
            The element, or None when every block may stay visible
        """
        if not located:
            return None

        if all(b.kind == BlockKind.SYNTHETIC for b in located):
            placeholder = located[0]
            return RedactionElement(
                id=placeholder.id,
                text=match.raw_matched_string,
                confidence=placeholder.confidence,
                page_index=page_index,
                bounding_box=placeholder.bounding_box,
                kind=ElementKind.SYNTHETIC,
                label=match.canonical_label,
            )

        ordered = sort_reading_order(located, self.config.row_tolerance)
        to_redact, visible = classify_blocks(ordered, match)
        logger.debug(
            "Classified card blocks",
            extra={
                "label": match.canonical_label,
                "redact_count": len(to_redact),
                "visible_count": len(visible),
            },
        )

        if not to_redact:
            logger.info(
                "All located blocks show only the tail digits",
                extra={"label": match.canonical_label, "page_index": page_index},
            )
            return None

        return RedactionElement(
            id=uuid.uuid4().hex,
            text=match.raw_matched_string,
            confidence=min(b.confidence for b in to_redact),
            page_index=page_index,
            bounding_box=BoundingBox.union(
                [b.bounding_box for b in to_redact if b.bounding_box]
            ),
            word_level_blocks=to_redact,
            kind=ElementKind.LOCATED,
            label=match.canonical_label,
        )

    def process_page(self, page_index: int, blocks: List[TextBlock]) -> PageAnalysis:
        """Runs detection, location and classification on one page's blocks."""
        text = page_text(blocks)
        matches = self.matcher.find_matches(text)
        elements: List[RedactionElement] = []

        for match in matches:
            located = self.locator.locate(match, blocks)
            element = self.build_element(match, located, page_index)
            if element is not None:
                elements.append(element)

        logger.info(
            "Page analyzed",
            extra={
                "page_index": page_index,
                "block_count": len(blocks),
                "match_count": len(matches),
                "element_count": len(elements),
            },
        )
        return PageAnalysis(
            page_index=page_index, text=text, elements=elements, matches=matches
        )

    def _analyze(self, page: PageImage, timeout: float) -> List[TextBlock]:
        # One worker per page so a hung call cannot block later pages
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="page-analysis")
        try:
            future = executor.submit(self.analyzer.analyze, page.data)
            try:
                return future.result(timeout=timeout)
            except FuturesTimeout as e:
                future.cancel()
                raise AnalysisTimeoutError(
                    f"Analysis timed out after {timeout:g} seconds"
                ) from e
        finally:
            executor.shutdown(wait=False)

    def process_document(
        self,
        data: bytes,
        content_type: str,
        document_type: str = "",
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        page_timeout: Optional[float] = None,
    ) -> ProcessingResult:
        """Splits a document and processes every page.

        Args:
            data: Raw document bytes
            content_type: One of the supported content types
            document_type: Bookkeeping label copied to the result
            on_progress: Observer called at each phase transition
            cancel_event: Checked before each page; when set the run stops
            page_timeout: Per-page analysis bound in seconds

        Returns:
            ProcessingResult with elements from all successful pages

        Raises:
            ValidationError: If the input is empty or unsupported
            SplitError: If the document cannot be split into pages
            ProcessingCancelled: If ``cancel_event`` was set between pages
            DocumentProcessingError: If no page could be processed
        """
        progress = safe_progress(on_progress)
        timeout = page_timeout or self.config.page_timeout_seconds

        progress("Starting document processing...", 0, 1)
        pages = self.splitter.split(
            data,
            content_type,
            on_progress=lambda status, current, total: progress(
                f"Splitting document: {status}", current, total
            ),
        )
        total = len(pages)
        progress(f"Successfully split document into {total} pages", 0, total)

        analyses: List[PageAnalysis] = []
        outcomes: List[PageOutcome] = []

        for page in pages:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "Processing cancelled", extra={"next_page_index": page.index}
                )
                raise ProcessingCancelled(
                    f"Processing cancelled before page {page.index + 1}"
                )

            number = page.index + 1
            progress(f"Processing page {number} of {total}", page.index, total)

            try:
                blocks = self._analyze(page, timeout)
                analysis = self.process_page(page.index, blocks)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.error(
                    "Page processing failed",
                    exc_info=True,
                    extra={"page_index": page.index, "error_type": type(e).__name__},
                )
                progress(f"Error on page {number}: {message}", page.index, total)
                outcomes.append(
                    PageOutcome(page_index=page.index, success=False, error=message)
                )
                continue

            analyses.append(analysis)
            outcomes.append(PageOutcome(page_index=page.index, success=True))
            progress(f"Page {number} processed successfully", number, total)

        success_count = sum(1 for o in outcomes if o.success)
        if success_count == 0 and total > 0:
            raise DocumentProcessingError(
                "Failed to process any pages of the document (no pages processed)",
                pages=outcomes,
            )

        elements = [e for a in analyses for e in a.elements]
        extracted_text = "\n\n".join(
            f"[Page {a.page_index + 1}]\n{a.text}" for a in analyses if a.text
        )

        progress(
            f"Processing complete. Found {len(elements)} elements "
            f"across {success_count} pages.",
            total,
            total,
        )
        logger.info(
            "Document processing complete",
            extra={
                "total_pages": total,
                "successful_pages": success_count,
                "total_elements": len(elements),
                "text_length": len(extracted_text),
            },
        )

        return ProcessingResult(
            success=True,
            extracted_text=extracted_text,
            extracted_fields=elements,
            pages=outcomes,
            document_type=document_type,
            metadata={
                "page_count": total,
                "successful_pages": success_count,
                "match_count": sum(len(a.matches) for a in analyses),
                "content_type": content_type,
            },
        )


def redact_document(
    data: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    document_type: str = "",
    analyzer: Optional[DocumentAnalyzer] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    page_timeout: Optional[float] = None,
) -> RedactionOutcome:
    """Main entry point for document redaction.

    Args:
        data: Raw document bytes
        filename: Used to infer the content type when none is given
        content_type: Explicit MIME type of the input
        document_type: Bookkeeping label copied to the result
        analyzer: Analysis service; the Textract singleton by default
        on_progress: Observer called at each phase transition
        cancel_event: Checked between pages
        page_timeout: Per-page analysis bound in seconds

    Returns:
        RedactionOutcome with the result and the redacted bytes.
        On failure, returns a result indicating the error safely.
    """
    progress = safe_progress(on_progress)

    try:
        resolved_type = resolve_content_type(content_type, filename)
        pipeline = DocumentRedactionPipeline(analyzer or AnalyzerService.get_instance())

        logger.info(
            "Starting redaction request",
            extra={
                "content_type": resolved_type,
                "document_type": document_type,
                "size_bytes": len(data) if data else 0,
            },
        )

        result = pipeline.process_document(
            data,
            resolved_type,
            document_type=document_type,
            on_progress=progress,
            cancel_event=cancel_event,
            page_timeout=page_timeout,
        )

    except (InitializationError, PipelineError, ValidationError) as e:
        logger.error(
            f"Known error during redaction: {type(e).__name__}",
            exc_info=True,
            extra={"document_type": document_type},
        )
        return RedactionOutcome(
            result=ProcessingResult(
                success=False,
                error=str(e),
                pages=list(getattr(e, "pages", [])),
                document_type=document_type,
                metadata={"status": "failed", "error_type": type(e).__name__},
            )
        )

    except Exception:
        # Catch-all for unexpected bugs
        logger.error(
            "Unexpected critical error in redaction pipeline",
            exc_info=True,
            extra={"document_type": document_type},
        )
        return RedactionOutcome(
            result=ProcessingResult(
                success=False,
                error="An unexpected system error occurred.",
                document_type=document_type,
                metadata={"status": "failed"},
            )
        )

    try:
        redacted = apply_redactions(
            data,
            resolved_type,
            result.extracted_fields,
            color=pipeline.config.redaction_color,
            padding=pipeline.config.redaction_padding,
            on_progress=progress,
        )
    except (RenderError, ValidationError) as e:
        logger.error("Rendering redactions failed", exc_info=True)
        result.success = False
        result.error = str(e)
        result.metadata.update({"status": "failed", "error_type": type(e).__name__})
        return RedactionOutcome(result=result, content_type=resolved_type)

    progress("Redaction complete!", 1, 1)
    return RedactionOutcome(
        result=result, redacted_bytes=redacted, content_type=resolved_type
    )
