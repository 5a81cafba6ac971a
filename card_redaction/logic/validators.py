# card_redaction/logic/validators.py

"""Digit normalization and grouping rules for card-like numbers."""

import math
import re
import logging
from typing import List

logger = logging.getLogger(__name__)


class ValidationLogic:
    """Utility methods for card number normalization."""

    # Pre-compiled regex patterns for performance
    NON_DIGIT = re.compile(r"[^0-9]")
    SEPARATOR = re.compile(r"[\s-]")

    MIN_DIGITS = 15
    MAX_DIGITS = 19
    STANDARD_LENGTH = 16
    TAIL_LENGTH = 4

    @staticmethod
    def digits_only(text: str) -> str:
        """Strips every non-digit character.

        Args:
            text: Input string

        Returns:
            The digits of ``text`` in order
        """
        return ValidationLogic.NON_DIGIT.sub("", text)

    @staticmethod
    def is_plausible_length(
        digits: str, min_digits: int = MIN_DIGITS, max_digits: int = MAX_DIGITS
    ) -> bool:
        """Returns True when ``digits`` has a plausible payment-card length."""
        return min_digits <= len(digits) <= max_digits

    @staticmethod
    def has_separator(text: str) -> bool:
        return bool(ValidationLogic.SEPARATOR.search(text))

    @staticmethod
    def format_grouped(digits: str, size: int = 4) -> str:
        """Formats digits as space-separated groups, e.g. '4111 1111 1111 1111'."""
        return " ".join(digits[i : i + size] for i in range(0, len(digits), size))


def extract_card_groups(
    card_number: str,
    min_digits: int = ValidationLogic.MIN_DIGITS,
    max_digits: int = ValidationLogic.MAX_DIGITS,
    tail_length: int = ValidationLogic.TAIL_LENGTH,
) -> List[str]:
    """Splits a card number into ordered digit groups.

    A 16-digit number becomes four groups of four. Other plausible lengths
    keep the last ``tail_length`` digits as the final group and divide the
    remaining digits into three ceiling-sized chunks, left to right.

    Args:
        card_number: Card number with or without separators
        min_digits: Shortest accepted digit count
        max_digits: Longest accepted digit count
        tail_length: Size of the trailing group

    Returns:
        List of groups, empty when the digit count is implausible
    """
    digits = ValidationLogic.digits_only(card_number)

    if not ValidationLogic.is_plausible_length(digits, min_digits, max_digits):
        return []

    if len(digits) == ValidationLogic.STANDARD_LENGTH:
        return [digits[i : i + 4] for i in range(0, 16, 4)]

    tail = digits[-tail_length:]
    remaining = digits[:-tail_length]
    group_size = math.ceil(len(remaining) / 3)

    groups = [
        remaining[i : i + group_size] for i in range(0, len(remaining), group_size)
    ]
    groups.append(tail)
    return groups
