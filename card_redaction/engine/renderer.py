# card_redaction/engine/renderer.py

"""Draws irreversible redaction marks onto PDF and raster documents."""

import io
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pymupdf as fitz
from PIL import Image, ImageDraw, ImageSequence

from card_redaction.core.definitions import ContentType
from card_redaction.core.domain import (
    AbsoluteRect,
    PageDimensions,
    ProgressCallback,
    RedactionElement,
)
from card_redaction.core.exceptions import RenderError, ValidationError
from card_redaction.logic.geometry import DEFAULT_PADDING, map_to_page

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]

BLACK: Color = (0.0, 0.0, 0.0)
LABEL_FILL: Color = (0.2, 0.2, 0.2)
LABEL_TEXT: Color = (1.0, 1.0, 1.0)


FALLBACK_LABEL = "card number"


def label_text(text: str, preview_chars: int = 15) -> str:
    """Short reviewer-facing preview of a redacted value."""
    preview = text[:preview_chars]
    if len(text) > preview_chars:
        preview += "..."
    return f"Redacted: {preview}"


def placeholder_label(element: RedactionElement) -> str:
    """Label drawn next to a grid cell.

    Built from the masked label only; ``element.text`` holds the raw digits
    and is never written into the output.
    """
    return label_text(element.label or FALLBACK_LABEL)


def element_rects(
    element: RedactionElement, page: PageDimensions, padding: float = DEFAULT_PADDING
) -> List[AbsoluteRect]:
    """Page-space rectangles for an element with real geometry.

    Word-level blocks take precedence over the coarse bounding box.
    """
    word_boxes = [b.bounding_box for b in element.word_level_blocks if b.bounding_box]
    if word_boxes:
        return [map_to_page(box, page, padding) for box in word_boxes]
    if element.bounding_box is not None:
        return [map_to_page(element.bounding_box, page, padding)]
    return []


@dataclass
class GridSlot:
    row: int
    column: int
    cell: AbsoluteRect
    label: AbsoluteRect


class PlaceholderGrid:
    """Lays out unlocated elements in a grid along the top of one page.

    A new grid is created for every page, so slot numbering always starts at
    row 0, column 0.
    """

    COLUMNS = 3
    MAX_CELL_WIDTH = 200.0
    CELL_HEIGHT = 40.0
    MARGIN = 10.0
    GAP = 10.0
    LABEL_WIDTH = 100.0
    LABEL_HEIGHT = 12.0
    LABEL_OFFSET = 15.0

    def __init__(self, page: PageDimensions):
        self.page = page
        self.count = 0

    def next_slot(self) -> GridSlot:
        index = self.count
        self.count += 1

        cell_width = min(self.MAX_CELL_WIDTH, self.page.width / self.COLUMNS)
        column = index % self.COLUMNS
        row = index // self.COLUMNS

        x = column * (cell_width + self.GAP) + self.MARGIN
        y = self.page.height - (
            row * (self.CELL_HEIGHT + self.GAP) + self.MARGIN + self.CELL_HEIGHT
        )
        cell = AbsoluteRect(x=x, y=y, width=cell_width, height=self.CELL_HEIGHT)
        label = AbsoluteRect(
            x=x + cell_width / 2 - self.LABEL_WIDTH / 2,
            y=y - self.LABEL_OFFSET,
            width=self.LABEL_WIDTH,
            height=self.LABEL_HEIGHT,
        )
        return GridSlot(row=row, column=column, cell=cell, label=label)


def group_by_page(elements: List[RedactionElement]) -> Dict[int, List[RedactionElement]]:
    """Groups elements by page index, pages in ascending order."""
    grouped: Dict[int, List[RedactionElement]] = OrderedDict()
    for element in sorted(elements, key=lambda e: e.page_index):
        grouped.setdefault(element.page_index, []).append(element)
    return grouped


class PdfRedactionRenderer:
    """Applies redactions to a PDF with PyMuPDF.

    Rectangles become redaction annotations that are applied immediately, so
    text and image pixels underneath are removed from the file rather than
    covered by a removable overlay.
    """

    FONT_SIZE = 8

    def __init__(self, color: Color = BLACK, padding: float = DEFAULT_PADDING):
        self.color = tuple(color)
        self.padding = padding

    def render(
        self,
        data: bytes,
        elements: List[RedactionElement],
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        try:
            document = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise RenderError(f"Failed to open PDF for redaction: {e}") from e

        try:
            grouped = group_by_page(elements)
            total = len(grouped)
            applied = 0

            for position, (page_index, page_elements) in enumerate(grouped.items()):
                if page_index < 0 or page_index >= document.page_count:
                    logger.warning(
                        "Skipping redactions for missing page",
                        extra={"page_index": page_index, "page_count": document.page_count},
                    )
                    continue

                if on_progress:
                    on_progress(
                        f"Applying redactions to page {page_index + 1}...", position, total
                    )
                page = document.load_page(page_index)
                applied += self._render_page(page, page_elements)

            if on_progress:
                on_progress("Finalizing redacted document...", total, total)

            logger.info(
                "PDF redactions applied",
                extra={"element_count": len(elements), "mark_count": applied},
            )
            return document.tobytes(garbage=4, deflate=True)
        except RenderError:
            raise
        except Exception as e:
            logger.error("PDF redaction failed", exc_info=True)
            raise RenderError(f"Failed to apply redactions: {e}") from e
        finally:
            document.close()

    def _render_page(self, page: "fitz.Page", elements: List[RedactionElement]) -> int:
        # Element geometry is relative to the page as displayed (page.rect);
        # annotations and drawings take unrotated page coordinates.
        dims = PageDimensions(width=page.rect.width, height=page.rect.height)
        derotate = page.derotation_matrix
        bounds = page.rect * derotate
        grid = PlaceholderGrid(dims)
        labels: List[Tuple[AbsoluteRect, str]] = []
        marks = 0

        for element in elements:
            if element.has_geometry:
                rects = element_rects(element, dims, self.padding)
            else:
                slot = grid.next_slot()
                rects = [slot.cell]
                labels.append((slot.label, placeholder_label(element)))

            for rect in rects:
                area = (fitz.Rect(*rect.to_top_left(dims.height)) * derotate).intersect(bounds)
                if area.is_empty:
                    continue
                page.add_redact_annot(area, fill=self.color)
                marks += 1

        if marks:
            page.apply_redactions(images=fitz.PDF_REDACT_IMAGE_PIXELS)

        for rect, text in labels:
            x0, y0, x1, y1 = rect.to_top_left(dims.height)
            page.draw_rect(
                fitz.Rect(x0, y0, x1, y1) * derotate, color=None, fill=LABEL_FILL, width=0
            )
            page.insert_text(
                fitz.Point(x0 + 5, y1 - 3) * derotate,
                text,
                fontsize=self.FONT_SIZE,
                fontname="helv",
                color=LABEL_TEXT,
                rotate=page.rotation,
            )

        return marks


def _to_rgb255(color: Color) -> Tuple[int, int, int]:
    return tuple(int(round(c * 255)) for c in color)


class ImageRedactionRenderer:
    """Applies redactions to raster images with Pillow."""

    def __init__(self, color: Color = BLACK, padding: float = DEFAULT_PADDING):
        self.color = tuple(color)
        self.padding = padding

    def render(
        self,
        data: bytes,
        content_type: str,
        elements: List[RedactionElement],
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        image_format = ContentType.PIL_FORMATS.get(content_type)
        if image_format is None:
            raise ValidationError(f"Unsupported image type: {content_type}")

        try:
            with Image.open(io.BytesIO(data)) as source:
                frames = [frame.convert("RGB") for frame in ImageSequence.Iterator(source)]
        except OSError as e:
            raise RenderError(f"Failed to open image for redaction: {e}") from e

        grouped = group_by_page(elements)
        total = len(grouped)

        try:
            for position, (page_index, page_elements) in enumerate(grouped.items()):
                if page_index < 0 or page_index >= len(frames):
                    logger.warning(
                        "Skipping redactions for missing page",
                        extra={"page_index": page_index, "page_count": len(frames)},
                    )
                    continue
                if on_progress:
                    on_progress(
                        f"Applying redactions to page {page_index + 1}...", position, total
                    )
                self._render_frame(frames[page_index], page_elements)
        except Exception as e:
            logger.error("Image redaction failed", exc_info=True)
            raise RenderError(f"Failed to apply redactions: {e}") from e

        if on_progress:
            on_progress("Finalizing redacted document...", total, total)

        buffer = io.BytesIO()
        try:
            if len(frames) > 1 and image_format == "TIFF":
                frames[0].save(
                    buffer, format=image_format, save_all=True, append_images=frames[1:]
                )
            else:
                frames[0].save(buffer, format=image_format)
        except OSError as e:
            raise RenderError(f"Failed to encode redacted image: {e}") from e

        logger.info(
            "Image redactions applied",
            extra={"element_count": len(elements), "frame_count": len(frames)},
        )
        return buffer.getvalue()

    def _render_frame(self, frame: Image.Image, elements: List[RedactionElement]) -> None:
        dims = PageDimensions(width=frame.width, height=frame.height)
        grid = PlaceholderGrid(dims)
        draw = ImageDraw.Draw(frame)
        fill = _to_rgb255(self.color)

        for element in elements:
            label: Optional[Tuple[AbsoluteRect, str]] = None
            if element.has_geometry:
                rects = element_rects(element, dims, self.padding)
            else:
                slot = grid.next_slot()
                rects = [slot.cell]
                label = (slot.label, placeholder_label(element))

            for rect in rects:
                box = self._pixel_box(rect, dims)
                if box is not None:
                    draw.rectangle(box, fill=fill)

            if label is not None:
                box = self._pixel_box(label[0], dims)
                if box is not None:
                    draw.rectangle(box, fill=_to_rgb255(LABEL_FILL))
                    draw.text((box[0] + 5, box[1]), label[1], fill=_to_rgb255(LABEL_TEXT))

    @staticmethod
    def _pixel_box(
        rect: AbsoluteRect, dims: PageDimensions
    ) -> Optional[Tuple[int, int, int, int]]:
        x0, y0, x1, y1 = rect.to_top_left(dims.height)
        x0 = max(0, math.floor(x0))
        y0 = max(0, math.floor(y0))
        x1 = min(int(dims.width) - 1, math.ceil(x1))
        y1 = min(int(dims.height) - 1, math.ceil(y1))
        if x1 < x0 or y1 < y0:
            return None
        return (x0, y0, x1, y1)


def apply_redactions(
    data: bytes,
    content_type: str,
    elements: List[RedactionElement],
    color: Color = BLACK,
    padding: float = DEFAULT_PADDING,
    on_progress: Optional[ProgressCallback] = None,
) -> bytes:
    """Redacts ``elements`` in a document, keeping its container format.

    Args:
        data: Source document bytes
        content_type: One of ContentType.SUPPORTED
        elements: Geometry-resolved redaction elements
        color: RGB fill with components in [0, 1]
        padding: Extra coverage in page units
        on_progress: Optional progress observer

    Returns:
        Redacted document bytes
    """
    if content_type == ContentType.PDF:
        return PdfRedactionRenderer(color, padding).render(data, elements, on_progress)
    return ImageRedactionRenderer(color, padding).render(
        data, content_type, elements, on_progress
    )
