# card_redaction/core/domain.py

"""Domain models for detection, location and redaction results."""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from card_redaction.core.definitions import ElementKind

ProgressCallback = Callable[[str, int, int], None]


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass(frozen=True)
class BoundingBox:
    """Normalized rectangle, origin at the page's top-left corner.

    Attributes:
        left: Left offset as a fraction of page width
        top: Top offset as a fraction of page height
        width: Width as a fraction of page width
        height: Height as a fraction of page height
    """

    left: float
    top: float
    width: float
    height: float

    @classmethod
    def from_mapping(cls, box: Mapping[str, Any]) -> "BoundingBox":
        """Builds a box from either the Left/Top/Width/Height form or the
        x/y/width/height form. Components are clamped into [0, 1].

        Raises:
            ValueError: If the mapping matches neither form.
        """
        if all(k in box for k in ("Left", "Top", "Width", "Height")):
            values = (box["Left"], box["Top"], box["Width"], box["Height"])
        elif all(k in box for k in ("x", "y", "width", "height")):
            values = (box["x"], box["y"], box["width"], box["height"])
        else:
            raise ValueError(f"Unrecognized bounding box shape: {sorted(box)}")

        left, top, width, height = (_clamp(v) for v in values)
        return cls(left=left, top=top, width=width, height=height)

    @classmethod
    def union(cls, boxes: List["BoundingBox"]) -> Optional["BoundingBox"]:
        """Returns the smallest box covering all given boxes."""
        if not boxes:
            return None
        left = min(b.left for b in boxes)
        top = min(b.top for b in boxes)
        right = max(b.left + b.width for b in boxes)
        bottom = max(b.top + b.height for b in boxes)
        return cls(left=left, top=top, width=right - left, height=bottom - top)

    def to_dict(self) -> Dict[str, float]:
        return {
            "Left": self.left,
            "Top": self.top,
            "Width": self.width,
            "Height": self.height,
        }


@dataclass(frozen=True)
class TextBlock:
    """A unit of recognized text returned by the analysis service.

    Attributes:
        id: Opaque identifier
        text: Recognized text
        kind: BlockKind.WORD, BlockKind.LINE or BlockKind.SYNTHETIC
        confidence: Recognition confidence (0 to 100)
        bounding_box: Normalized geometry, None when the service gave none
        page: 1-based page number within the analyzed unit
    """

    id: str
    text: str
    kind: str
    confidence: float
    bounding_box: Optional[BoundingBox] = None
    page: int = 1

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"Block page must be >= 1, got {self.page}")

    def with_bounding_box(self, box: BoundingBox) -> "TextBlock":
        return replace(self, bounding_box=box)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "kind": self.kind,
            "confidence": self.confidence,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "page": self.page,
        }


@dataclass(frozen=True)
class SensitiveMatch:
    """A detected card-like number, normalized for block location.

    Attributes:
        raw_matched_string: Literal substring found in the page text
        normalized_digits: Digits only, 15 to 19 characters
        digit_groups: Ordered chunks; the last chunk is the tail
        tail_digits: Last 4 digits, left visible by policy
        canonical_label: Masked display form, e.g. '**** **** **** 1234'
    """

    raw_matched_string: str
    normalized_digits: str
    digit_groups: Tuple[str, ...]
    tail_digits: str
    canonical_label: str

    @property
    def leading_groups(self) -> Tuple[str, ...]:
        """All digit groups except the tail."""
        return self.digit_groups[:-1]


@dataclass
class RedactionElement:
    """A geometry-attached unit consumed by the renderer.

    When ``word_level_blocks`` is non-empty the renderer redacts each block
    separately instead of the coarse ``bounding_box``.
    """

    id: str
    text: str
    confidence: float
    page_index: int
    bounding_box: Optional[BoundingBox] = None
    word_level_blocks: List[TextBlock] = field(default_factory=list)
    kind: str = ElementKind.LOCATED
    label: str = ""

    @property
    def is_synthetic(self) -> bool:
        return self.kind == ElementKind.SYNTHETIC

    @property
    def has_geometry(self) -> bool:
        """True when the element can be drawn at a real page position."""
        if self.is_synthetic:
            return False
        if any(b.bounding_box is not None for b in self.word_level_blocks):
            return True
        return self.bounding_box is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "label": self.label,
            "kind": self.kind,
            "confidence": self.confidence,
            "pageIndex": self.page_index,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "wordLevelBlocks": [b.to_dict() for b in self.word_level_blocks],
        }


@dataclass(frozen=True)
class PageDimensions:
    """Width and height of a page in the target coordinate space."""

    width: float
    height: float


@dataclass(frozen=True)
class AbsoluteRect:
    """Rectangle in page units with the origin at the bottom-left corner."""

    x: float
    y: float
    width: float
    height: float

    def to_top_left(self, page_height: float) -> Tuple[float, float, float, float]:
        """Returns (x0, y0, x1, y1) with the origin moved to the top-left corner."""
        y0 = page_height - (self.y + self.height)
        return (self.x, y0, self.x + self.width, y0 + self.height)


@dataclass
class PageImage:
    """A single renderable page produced by the splitter."""

    index: int
    data: bytes
    width: int
    height: int
    content_type: str = "image/png"


@dataclass
class PageAnalysis:
    """Detection output for one successfully processed page."""

    page_index: int
    text: str
    elements: List[RedactionElement] = field(default_factory=list)
    matches: List[SensitiveMatch] = field(default_factory=list)


@dataclass
class PageOutcome:
    """Manifest entry recording whether a page was processed."""

    page_index: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"pageIndex": self.page_index, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ProcessingResult:
    """Result object returned by the document processing service.

    Attributes:
        success: False only for document-level failures
        extracted_text: Aggregated page text, one '[Page N]' block per page
        extracted_fields: Redaction elements from all successful pages
        pages: Per-page success/failure manifest
        error: Document-level error message
        document_type: Caller-supplied bookkeeping label
        metadata: Additional processing information
    """

    success: bool
    extracted_text: str = ""
    extracted_fields: List[RedactionElement] = field(default_factory=list)
    pages: List[PageOutcome] = field(default_factory=list)
    error: Optional[str] = None
    document_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed_pages(self) -> List[PageOutcome]:
        return [p for p in self.pages if not p.success]

    @property
    def is_partial(self) -> bool:
        return self.success and bool(self.failed_pages)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "extractedText": self.extracted_text,
            "extractedFields": [e.to_dict() for e in self.extracted_fields],
            "pages": [p.to_dict() for p in self.pages],
            "documentType": self.document_type,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RedactionOutcome:
    """Processing result plus the redacted document, when one was produced."""

    result: ProcessingResult
    redacted_bytes: Optional[bytes] = None
    content_type: Optional[str] = None
