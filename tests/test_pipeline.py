# tests/test_pipeline.py

"""
Tests for page orchestration and the redact_document entry point.
"""

import threading

import pymupdf as fitz
import pytest

from card_redaction.core.definitions import ElementKind
from card_redaction.core.domain import BoundingBox
from card_redaction.core.exceptions import (
    AnalysisError,
    DocumentProcessingError,
    ProcessingCancelled,
)
from card_redaction.engine.renderer import ImageRedactionRenderer
from card_redaction.service.pipeline import DocumentRedactionPipeline, redact_document

CARD_LINE = "Card: 4111 1111 1111 1111 exp 12/25"


@pytest.fixture
def pipeline_for(fake_splitter, test_settings):
    """Builds a pipeline over fake pages and a fake analyzer."""

    def make(analyzer, page_count):
        return DocumentRedactionPipeline(
            analyzer, splitter=fake_splitter(page_count), config=test_settings
        )

    return make


def test_failed_page_is_recorded_and_others_continue(fake_analyzer, pipeline_for, line):
    """Page 3 of 5 fails; the other four are processed and reported."""
    responses = {i: [line(CARD_LINE)] for i in range(5)}
    responses[2] = AnalysisError("Textract rejected page (Throttling): slow down")
    pipeline = pipeline_for(fake_analyzer(responses), 5)

    result = pipeline.process_document(b"doc", "application/pdf")

    assert result.success
    assert result.is_partial
    assert [p.page_index for p in result.pages] == [0, 1, 2, 3, 4]
    assert [p.page_index for p in result.failed_pages] == [2]
    assert "slow down" in result.failed_pages[0].error
    assert sorted(e.page_index for e in result.extracted_fields) == [0, 1, 3, 4]
    assert "[Page 3]" not in result.extracted_text


def test_no_successful_pages_fails_document(fake_analyzer, pipeline_for):
    responses = {i: AnalysisError("service unavailable") for i in range(2)}
    pipeline = pipeline_for(fake_analyzer(responses), 2)

    with pytest.raises(DocumentProcessingError) as exc_info:
        pipeline.process_document(b"doc", "application/pdf")

    assert "no pages processed" in str(exc_info.value)
    assert [p.success for p in exc_info.value.pages] == [False, False]


def test_extracted_text_is_tagged_per_page(fake_analyzer, pipeline_for, line):
    responses = {0: [line("Invoice 42")], 1: [line(CARD_LINE)]}
    pipeline = pipeline_for(fake_analyzer(responses), 2)

    result = pipeline.process_document(b"doc", "application/pdf", document_type="invoice")

    assert result.extracted_text == f"[Page 1]\nInvoice 42\n\n[Page 2]\n{CARD_LINE}"
    assert result.document_type == "invoice"
    assert result.metadata["page_count"] == 2
    assert result.metadata["match_count"] == 1


def test_tail_word_stays_visible(fake_analyzer, pipeline_for, line, word):
    """Word blocks showing only the last four digits are not redacted."""
    words = [
        word("4111", BoundingBox(0.10, 0.5, 0.05, 0.02)),
        word("1111", BoundingBox(0.16, 0.5, 0.05, 0.02)),
        word("2222", BoundingBox(0.22, 0.5, 0.05, 0.02)),
        word("1234", BoundingBox(0.28, 0.5, 0.05, 0.02)),
    ]
    blocks = [line("Card 4111 1111"), line("2222 1234")] + words
    pipeline = pipeline_for(fake_analyzer({0: blocks}), 1)

    result = pipeline.process_document(b"doc", "application/pdf")

    element = result.extracted_fields[0]
    assert element.kind == ElementKind.LOCATED
    assert element.label == "**** **** **** 1234"
    assert [b.text for b in element.word_level_blocks] == ["4111", "1111", "2222"]
    assert element.bounding_box.left == pytest.approx(0.10)
    assert element.bounding_box.width == pytest.approx(0.17)


def test_unlocatable_number_becomes_synthetic_element(fake_analyzer, pipeline_for, line):
    """A number split across lines with no word blocks gets a placeholder."""
    blocks = [line("Card 4111 1111"), line("1111 1111 exp")]
    pipeline = pipeline_for(fake_analyzer({0: blocks}), 1)

    result = pipeline.process_document(b"doc", "application/pdf")

    assert len(result.extracted_fields) == 1
    element = result.extracted_fields[0]
    assert element.kind == ElementKind.SYNTHETIC
    assert element.id.startswith("synthetic-")
    assert element.word_level_blocks == []
    assert not element.has_geometry
    assert element.label == "**** **** **** 1111"


def test_progress_is_reported_per_page(fake_analyzer, pipeline_for, line):
    messages = []
    pipeline = pipeline_for(fake_analyzer({0: [line(CARD_LINE)]}), 2)

    pipeline.process_document(
        b"doc", "application/pdf", on_progress=lambda m, c, t: messages.append((m, c, t))
    )

    assert ("Successfully split document into 2 pages", 0, 2) in messages
    assert ("Processing page 1 of 2", 0, 2) in messages
    assert ("Page 2 processed successfully", 2, 2) in messages
    assert any(m.startswith("Splitting document:") for m, _, _ in messages)


def test_failing_observer_does_not_stop_processing(fake_analyzer, pipeline_for, line):
    def observer(message, current, total):
        raise RuntimeError("display went away")

    pipeline = pipeline_for(fake_analyzer({0: [line(CARD_LINE)]}), 1)

    result = pipeline.process_document(b"doc", "application/pdf", on_progress=observer)

    assert result.success
    assert len(result.extracted_fields) == 1


def test_cancellation_between_pages(fake_analyzer, pipeline_for, line):
    """Setting the event stops the run before the next page starts."""
    cancel = threading.Event()
    analyzer = fake_analyzer({0: [line(CARD_LINE)], 1: [line(CARD_LINE)]})
    pipeline = pipeline_for(analyzer, 3)

    def observer(message, current, total):
        if message == "Page 1 processed successfully":
            cancel.set()

    with pytest.raises(ProcessingCancelled):
        pipeline.process_document(
            b"doc", "application/pdf", on_progress=observer, cancel_event=cancel
        )

    assert len(analyzer.calls) == 1


def test_slow_page_times_out_and_is_recorded(pipeline_for, line):
    """A page exceeding its time limit fails; later pages still run."""
    release = threading.Event()

    class SlowFirstPage:
        calls = 0

        def analyze(self, page_image):
            SlowFirstPage.calls += 1
            if SlowFirstPage.calls == 1:
                release.wait(5)
                return []
            return [line(CARD_LINE)]

    pipeline = pipeline_for(SlowFirstPage(), 2)

    try:
        result = pipeline.process_document(b"doc", "application/pdf", page_timeout=0.1)
    finally:
        release.set()

    assert [p.success for p in result.pages] == [False, True]
    assert "timed out" in result.pages[0].error


def test_redact_document_end_to_end(fake_analyzer, blank_pdf, line):
    """A PDF comes back redacted, with the unlocated number in the top grid."""
    blocks = [line("Card 4111 1111"), line("1111 1111 exp")]
    progress = []

    outcome = redact_document(
        blank_pdf(),
        filename="statement.pdf",
        document_type="statement",
        analyzer=fake_analyzer({0: blocks}),
        on_progress=lambda m, c, t: progress.append(m),
    )

    assert outcome.result.success
    assert outcome.content_type == "application/pdf"
    assert progress[-1] == "Redaction complete!"

    payload = outcome.result.to_dict()
    assert payload["documentType"] == "statement"
    assert payload["pages"] == [{"pageIndex": 0, "success": True}]
    assert payload["extractedFields"][0]["kind"] == "SYNTHETIC"

    with fitz.open(stream=outcome.redacted_bytes, filetype="pdf") as document:
        pix = document.load_page(0).get_pixmap(alpha=False)
        assert tuple(pix.pixel(110, 30)) == (0, 0, 0)


def test_redacted_pdf_text_holds_no_card_digits(fake_analyzer, blank_pdf, line):
    """An unlocated number split across lines leaves no digit group in the output."""
    blocks = [line("Card 4111 1234"), line("5678 9999 exp")]

    outcome = redact_document(
        blank_pdf(), content_type="application/pdf", analyzer=fake_analyzer({0: blocks})
    )

    assert outcome.result.extracted_fields[0].kind == ElementKind.SYNTHETIC
    with fitz.open(stream=outcome.redacted_bytes, filetype="pdf") as document:
        text = document.load_page(0).get_text()
    assert "Redacted: ****" in text
    for group in ("4111", "1234", "5678", "9999"):
        assert group not in text


def test_redact_document_reports_image_render_failure(
    fake_analyzer, white_image, line, monkeypatch
):
    def broken(self, frame, elements):
        raise ValueError("bad draw")

    monkeypatch.setattr(ImageRedactionRenderer, "_render_frame", broken)
    blocks = [line("Card 4111 1111"), line("1111 1111 exp")]

    outcome = redact_document(
        white_image(), content_type="image/png", analyzer=fake_analyzer({0: blocks})
    )

    assert not outcome.result.success
    assert outcome.redacted_bytes is None
    assert outcome.result.metadata["error_type"] == "RenderError"
    assert "bad draw" in outcome.result.error


def test_redact_document_returns_error_for_unsupported_type(fake_analyzer):
    outcome = redact_document(b"hello", filename="notes.txt", analyzer=fake_analyzer({}))

    assert not outcome.result.success
    assert outcome.redacted_bytes is None
    assert outcome.result.metadata["error_type"] == "ValidationError"


def test_redact_document_reports_total_failure(fake_analyzer, blank_pdf):
    analyzer = fake_analyzer({0: AnalysisError("service unavailable")})

    outcome = redact_document(blank_pdf(), content_type="application/pdf", analyzer=analyzer)

    assert not outcome.result.success
    assert "no pages processed" in outcome.result.error
    assert [p.error for p in outcome.result.pages] == ["service unavailable"]
    assert outcome.result.to_dict()["error"] == outcome.result.error


def test_redact_document_reports_cancellation(fake_analyzer, blank_pdf):
    cancel = threading.Event()
    cancel.set()

    outcome = redact_document(
        blank_pdf(),
        content_type="application/pdf",
        analyzer=fake_analyzer({}),
        cancel_event=cancel,
    )

    assert not outcome.result.success
    assert outcome.result.metadata["error_type"] == "ProcessingCancelled"
