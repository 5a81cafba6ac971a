# card_redaction/logic/visibility.py

"""Decides which located blocks must be hidden and which may stay visible."""

from typing import List, Tuple

from card_redaction.core.domain import SensitiveMatch, TextBlock


def is_tail_only(block: TextBlock, match: SensitiveMatch) -> bool:
    """True when the block shows the tail digits and no other digit group."""
    if match.tail_digits not in block.text:
        return False
    return not any(group in block.text for group in match.leading_groups)


def classify_blocks(
    blocks: List[TextBlock], match: SensitiveMatch
) -> Tuple[List[TextBlock], List[TextBlock]]:
    """Partitions ordered blocks into (to_redact, visible), preserving order."""
    to_redact: List[TextBlock] = []
    visible: List[TextBlock] = []

    for block in blocks:
        if is_tail_only(block, match):
            visible.append(block)
        else:
            to_redact.append(block)

    return to_redact, visible
