# main.py

"""Streamlit web UI for the card number redaction pipeline.

Provides a simple interface to upload a PDF or image, find payment-card
numbers with the analysis service, and download a redacted copy.
"""

import streamlit as st
import logging
from card_redaction.logging_config import configure_logging
from card_redaction.service.config import settings
from card_redaction.service.pipeline import redact_document

configure_logging(settings.log_level, json_format=settings.log_json)

logger = logging.getLogger(__name__)


def main():
    """Run the Streamlit application UI.

    This function configures the Streamlit page, accepts an uploaded document,
    runs the redaction pipeline with a live progress bar, and displays the
    per-page manifest along with a download button for the redacted file.
    """
    st.set_page_config(
        layout="wide", page_title="Card Number Redaction", page_icon="💳"
    )

    st.title("Card Number Redaction")
    st.markdown(
        "Detects payment-card numbers in scanned documents and permanently "
        "blacks them out, leaving only the last four digits visible."
    )
    st.markdown("---")

    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Input Document")
        uploaded = st.file_uploader(
            "Source Document", type=["pdf", "png", "jpg", "jpeg", "tif", "tiff"]
        )
        document_type = st.text_input("Document type", value="Unclassified")

    with col2:
        st.subheader("Redacted Output")

        if st.button("Redact card numbers", type="primary"):
            if uploaded is None:
                st.warning("Please upload a document to process.")
                logger.warning("Redaction attempted without a document")

            else:
                data = uploaded.getvalue()
                progress_bar = st.progress(0.0)
                status = st.empty()

                def on_progress(message: str, current: int, total: int) -> None:
                    status.text(message)
                    if total > 0:
                        progress_bar.progress(min(1.0, max(0.0, current / total)))

                try:
                    logger.info(f"Processing document of size: {len(data)}")
                    outcome = redact_document(
                        data,
                        filename=uploaded.name,
                        content_type=uploaded.type or None,
                        document_type=document_type,
                        on_progress=on_progress,
                    )
                    result = outcome.result

                    if not result.success:
                        st.error(f"Redaction failed: {result.error}")
                        logger.error(
                            "Redaction returned error status",
                            extra={"status": "failed", "size_bytes": len(data)},
                        )
                    else:
                        if result.failed_pages:
                            failed = ", ".join(
                                str(p.page_index + 1) for p in result.failed_pages
                            )
                            st.warning(
                                f"Some pages could not be analyzed (pages {failed}). "
                                "The output only covers the remaining pages."
                            )

                        st.success(
                            f"Redaction complete. Found {len(result.extracted_fields)} "
                            "card numbers."
                        )
                        for element in result.extracted_fields:
                            st.markdown(
                                f"- Page {element.page_index + 1}: `{element.label}` "
                                f"({element.kind.lower()})"
                            )

                        st.dataframe([p.to_dict() for p in result.pages])

                        if outcome.redacted_bytes is not None:
                            st.download_button(
                                "Download redacted document",
                                data=outcome.redacted_bytes,
                                file_name=f"redacted-{uploaded.name}",
                                mime=outcome.content_type,
                            )

                        logger.info(
                            f"Redaction successful: {len(result.extracted_fields)} elements found",
                            extra={"size_bytes": len(data)},
                        )

                except Exception:
                    st.error("An unexpected error occurred during redaction.")
                    logger.error(
                        "Unexpected error in main application loop",
                        exc_info=True,
                        extra={"size_bytes": len(data)},
                    )

    with st.sidebar:
        st.header("About")
        st.markdown("""
        Each page is analyzed separately, so a page that fails does not stop
        the rest of the document.

        - **Detection**: grouped, hyphenated and unspaced card numbers
        - **Location**: exact line, digit chunk and digit group matching
        - **Unlocated numbers**: redacted in a labelled grid at the top of the page
        - **Output**: same format as the input, with marks burned in
        """)

        st.header("Status")
        st.success("System Ready")


if __name__ == "__main__":
    main()
