# card_redaction/logic/ordering.py

"""Deterministic reading order for located text blocks."""

from functools import cmp_to_key
from typing import List

from card_redaction.core.domain import TextBlock

DEFAULT_ROW_TOLERANCE = 0.01


def _compare(a: TextBlock, b: TextBlock, tolerance: float) -> float:
    if a.page != b.page:
        return a.page - b.page

    a_box, b_box = a.bounding_box, b.bounding_box
    if a_box is None or b_box is None:
        # Blocks without geometry go last; two of them keep their order
        if a_box is None and b_box is None:
            return 0
        return 1 if a_box is None else -1

    y_diff = a_box.top - b_box.top
    if abs(y_diff) >= tolerance:
        return y_diff

    return a_box.left - b_box.left


def sort_reading_order(
    blocks: List[TextBlock], tolerance: float = DEFAULT_ROW_TOLERANCE
) -> List[TextBlock]:
    """Sorts blocks by page, then line band, then horizontal position.

    Tops closer than ``tolerance`` are treated as the same line. The sort is
    stable, so equal keys keep their incoming order.
    """
    return sorted(blocks, key=cmp_to_key(lambda a, b: _compare(a, b, tolerance)))
