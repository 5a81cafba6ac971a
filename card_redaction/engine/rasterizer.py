# card_redaction/engine/rasterizer.py

"""Splits input documents into independently analyzable page images."""

import io
import logging
from pathlib import Path
from typing import List, Optional

import pymupdf as fitz
from PIL import Image, ImageSequence, UnidentifiedImageError

from card_redaction.core.definitions import ContentType
from card_redaction.core.domain import PageImage, ProgressCallback
from card_redaction.core.exceptions import SplitError, ValidationError

logger = logging.getLogger(__name__)


def resolve_content_type(
    content_type: Optional[str] = None, filename: Optional[str] = None
) -> str:
    """Returns a supported content type from an explicit value or a filename.

    Raises:
        ValidationError: If neither yields a supported type.
    """
    if content_type:
        normalized = content_type.split(";")[0].strip().lower()
        if normalized in ContentType.SUPPORTED:
            return normalized
        raise ValidationError(
            f"Unsupported file type: {content_type}. Please upload a PDF or image."
        )

    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix in ContentType.BY_SUFFIX:
            return ContentType.BY_SUFFIX[suffix]
        raise ValidationError(f"Unsupported file extension: '{suffix or filename}'")

    raise ValidationError("A content type or filename is required")


def _encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class PageSplitter:
    """Renders each page of a document into a PNG image.

    PDF pages are rendered at ``scale`` (at least 2x) so the analysis service
    sees enough detail. Raster inputs are split into frames at their native
    resolution. Any page that fails to render aborts the split.
    """

    MIN_SCALE = 2.0

    def __init__(self, scale: float = 2.0):
        if scale < self.MIN_SCALE:
            raise ValueError(f"Raster scale must be >= {self.MIN_SCALE}, got {scale}")
        self.scale = scale

    def split(
        self,
        data: bytes,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[PageImage]:
        """Splits a document into ordered page images.

        Args:
            data: Raw document bytes
            content_type: One of ContentType.SUPPORTED
            on_progress: Optional observer for per-page rendering progress

        Returns:
            PageImage list; index i holds page i + 1

        Raises:
            ValidationError: If the input is empty or unsupported
            SplitError: If the document or any page cannot be rendered
        """
        if not data:
            raise ValidationError("Input document is empty")

        if content_type == ContentType.PDF:
            return self._split_pdf(data, on_progress)
        if content_type in ContentType.SUPPORTED:
            return self._split_image(data, on_progress)

        raise ValidationError(f"Unsupported file type: {content_type}")

    def _split_pdf(
        self, data: bytes, on_progress: Optional[ProgressCallback]
    ) -> List[PageImage]:
        try:
            document = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            logger.error("Failed to open PDF for splitting", exc_info=True)
            raise SplitError(f"Failed to open PDF: {e}") from e

        pages: List[PageImage] = []
        try:
            page_count = document.page_count
            matrix = fitz.Matrix(self.scale, self.scale)

            for index in range(page_count):
                if on_progress:
                    on_progress(
                        f"Rendering page {index + 1} of {page_count}", index, page_count
                    )
                try:
                    page = document.load_page(index)
                    pix = page.get_pixmap(matrix=matrix, alpha=False)
                    pages.append(
                        PageImage(
                            index=index,
                            data=pix.tobytes("png"),
                            width=pix.width,
                            height=pix.height,
                        )
                    )
                except Exception as e:
                    logger.error(
                        "Page rendering failed",
                        exc_info=True,
                        extra={"page_index": index},
                    )
                    raise SplitError(str(e), page_index=index) from e
        finally:
            document.close()

        logger.info(
            "PDF split into page images",
            extra={"page_count": len(pages), "scale": self.scale},
        )
        return pages

    def _split_image(
        self, data: bytes, on_progress: Optional[ProgressCallback]
    ) -> List[PageImage]:
        try:
            image = Image.open(io.BytesIO(data))
        except (UnidentifiedImageError, OSError) as e:
            raise SplitError(f"Failed to open image: {e}") from e

        pages: List[PageImage] = []
        with image:
            frame_count = getattr(image, "n_frames", 1)
            for index, frame in enumerate(ImageSequence.Iterator(image)):
                if on_progress:
                    on_progress(
                        f"Preparing page {index + 1} of {frame_count}",
                        index,
                        frame_count,
                    )
                try:
                    rgb = frame.convert("RGB")
                    pages.append(
                        PageImage(
                            index=index,
                            data=_encode_png(rgb),
                            width=rgb.width,
                            height=rgb.height,
                        )
                    )
                except OSError as e:
                    raise SplitError(str(e), page_index=index) from e

        logger.info("Image split into pages", extra={"page_count": len(pages)})
        return pages
