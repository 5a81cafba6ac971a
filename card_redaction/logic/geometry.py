# card_redaction/logic/geometry.py

"""Conversion of normalized detection boxes into page coordinates."""

import logging
from typing import Any, Mapping, Union

from card_redaction.core.domain import AbsoluteRect, BoundingBox, PageDimensions

logger = logging.getLogger(__name__)

DEFAULT_PADDING = 2.0

BoxLike = Union[BoundingBox, Mapping[str, Any]]


def to_bounding_box(box: BoxLike) -> BoundingBox:
    """Normalizes either legacy box shape into a BoundingBox.

    Accepts a BoundingBox unchanged, or a mapping using the
    Left/Top/Width/Height or x/y/width/height field names.
    """
    if isinstance(box, BoundingBox):
        return box
    return BoundingBox.from_mapping(box)


def map_to_page(
    box: BoxLike, page: PageDimensions, padding: float = DEFAULT_PADDING
) -> AbsoluteRect:
    """Maps a normalized top-left box into bottom-left page coordinates.

    The vertical axis is flipped so that ``y`` is the distance from the bottom
    edge of the page to the bottom edge of the box. Padding moves the corner
    by ``padding`` (never below zero) and grows both sides by twice the padding.

    Args:
        box: Normalized box in either accepted shape
        page: Target page dimensions
        padding: Extra coverage in page units

    Returns:
        AbsoluteRect in page units
    """
    rect = to_bounding_box(box)

    x = rect.left * page.width
    y = page.height - (rect.top * page.height) - (rect.height * page.height)
    width = rect.width * page.width
    height = rect.height * page.height

    if padding:
        x = max(0.0, x - padding)
        y = max(0.0, y - padding)
        width += padding * 2
        height += padding * 2

    return AbsoluteRect(x=x, y=y, width=width, height=height)


def unmap_from_page(rect: AbsoluteRect, page: PageDimensions) -> BoundingBox:
    """Inverse of an unpadded ``map_to_page``."""
    return BoundingBox(
        left=rect.x / page.width,
        top=(page.height - rect.y - rect.height) / page.height,
        width=rect.width / page.width,
        height=rect.height / page.height,
    )
