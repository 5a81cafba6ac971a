# card_redaction/engine/matcher.py

"""Detection of card-like numbers in recognized page text."""

import logging
from typing import Dict, List, Optional

from card_redaction.core.definitions import BlockKind
from card_redaction.core.domain import SensitiveMatch, TextBlock
from card_redaction.core.loader import PatternLoader
from card_redaction.logic.validators import ValidationLogic, extract_card_groups

logger = logging.getLogger(__name__)


def page_text(blocks: List[TextBlock]) -> str:
    """Joins LINE block texts with single spaces, in the order received."""
    return " ".join(b.text for b in blocks if b.kind == BlockKind.LINE)


class PatternMatcher:
    """Finds card numbers using the tolerant pattern family from patterns.yaml.

    Every pattern is applied. Literal matches are collected in first-seen
    order, implausible digit lengths are dropped and the survivors are
    normalized into SensitiveMatch objects, one per distinct digit string.
    """

    def __init__(self, loader: Optional[PatternLoader] = None) -> None:
        self._loader = loader or PatternLoader.get_instance()
        self._patterns = self._loader.get_card_patterns()
        self._consecutive = self._loader.get_consecutive_digits_pattern()
        self.min_digits = int(self._loader.get_card_setting("min_digits", 15))
        self.max_digits = int(self._loader.get_card_setting("max_digits", 19))
        self.tail_length = int(self._loader.get_card_setting("tail_length", 4))
        self.mask_prefix = str(
            self._loader.get_card_setting("mask_prefix", "**** **** **** ")
        )

    def collect_candidates(self, text: str) -> List[str]:
        """Returns every distinct literal substring matched by any pattern."""
        # dict keeps insertion order, so results are deterministic
        candidates: Dict[str, None] = {}

        for pattern in self._patterns:
            for found in pattern.finditer(text):
                literal = found.group(0)
                candidates[literal] = None

                digits = ValidationLogic.digits_only(literal)
                if (
                    len(digits) == ValidationLogic.STANDARD_LENGTH
                    and not ValidationLogic.has_separator(literal)
                ):
                    candidates[ValidationLogic.format_grouped(digits)] = None

        for found in self._consecutive.finditer(text):
            candidates[ValidationLogic.format_grouped(found.group(0))] = None

        return list(candidates)

    def normalize(self, literal: str) -> Optional[SensitiveMatch]:
        """Builds a SensitiveMatch, or None when the digit count is implausible."""
        digits = ValidationLogic.digits_only(literal)

        if not ValidationLogic.is_plausible_length(
            digits, self.min_digits, self.max_digits
        ):
            return None

        groups = extract_card_groups(
            literal, self.min_digits, self.max_digits, self.tail_length
        )
        tail = digits[-self.tail_length :]

        return SensitiveMatch(
            raw_matched_string=literal,
            normalized_digits=digits,
            digit_groups=tuple(groups),
            tail_digits=tail,
            canonical_label=f"{self.mask_prefix}{tail}",
        )

    def find_matches(self, text: str) -> List[SensitiveMatch]:
        """Detects card numbers in page text.

        Args:
            text: Aggregated page text

        Returns:
            SensitiveMatch list, one entry per distinct digit string
        """
        if not text:
            return []

        matches: Dict[str, SensitiveMatch] = {}
        candidates = self.collect_candidates(text)

        for literal in candidates:
            match = self.normalize(literal)
            if match is None:
                continue
            # Spaced and unspaced renderings of one number collapse here
            if match.normalized_digits not in matches:
                matches[match.normalized_digits] = match

        logger.debug(
            "Card pattern scan finished",
            extra={
                "candidate_count": len(candidates),
                "match_count": len(matches),
                "labels": [m.canonical_label for m in matches.values()],
            },
        )

        return list(matches.values())
