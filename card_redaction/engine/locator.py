# card_redaction/engine/locator.py

"""Tiered strategies that re-associate a detected number with OCR blocks."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from card_redaction.core.definitions import BlockKind
from card_redaction.core.domain import BoundingBox, SensitiveMatch, TextBlock
from card_redaction.core.loader import PatternLoader
from card_redaction.logic.validators import ValidationLogic

logger = logging.getLogger(__name__)


class LocatorStrategy(ABC):
    """Base class for one tier of the block location fallback chain."""

    name: str = "strategy"

    @abstractmethod
    def locate(
        self, match: SensitiveMatch, blocks: Sequence[TextBlock]
    ) -> Optional[List[TextBlock]]:
        """Returns a non-empty list of blocks, or None when nothing matched.

        Args:
            match: Normalized card number
            blocks: All WORD and LINE blocks of the page

        Returns:
            Blocks carrying the number, or None
        """
        pass


class ExactContainmentStrategy(LocatorStrategy):
    """LINE blocks containing the literal match or its full digit string."""

    name = "exact"

    def locate(self, match, blocks):
        found = [
            b
            for b in blocks
            if b.kind == BlockKind.LINE
            and (
                match.raw_matched_string in b.text
                or match.normalized_digits in ValidationLogic.digits_only(b.text)
            )
        ]
        return found or None


class ChunkContainmentStrategy(LocatorStrategy):
    """WORD blocks containing any fixed-size window of the digit string."""

    name = "chunk"

    def __init__(self, window: int = 8):
        self.window = window

    def locate(self, match, blocks):
        digits = match.normalized_digits
        chunks = [
            digits[i : i + self.window]
            for i in range(0, len(digits) - self.window + 1)
        ]
        words = [b for b in blocks if b.kind == BlockKind.WORD]

        found: List[TextBlock] = []
        for chunk in chunks:
            found.extend(
                b for b in words if chunk in ValidationLogic.digits_only(b.text)
            )
        return found or None


class GroupContainmentStrategy(LocatorStrategy):
    """WORD blocks containing at least ``min_matches`` distinct digit groups.

    With the default of 1 an unrelated block that shares a single four-digit
    group is accepted too.
    """

    name = "group"

    def __init__(self, min_matches: int = 1):
        self.min_matches = max(1, min_matches)

    def locate(self, match, blocks):
        groups = [g for g in dict.fromkeys(match.digit_groups) if g]
        found = []
        for block in blocks:
            if block.kind != BlockKind.WORD:
                continue
            digits = ValidationLogic.digits_only(block.text)
            hits = sum(1 for g in groups if g in digits)
            if hits >= self.min_matches:
                found.append(block)
        return found or None


class SyntheticPlaceholderStrategy(LocatorStrategy):
    """Fabricates one placeholder block when no real block was found."""

    name = "synthetic"

    def __init__(self, box: BoundingBox, confidence: float = 100.0):
        self.box = box
        self.confidence = confidence

    def locate(self, match, blocks):
        return [
            TextBlock(
                id=f"synthetic-{uuid.uuid4().hex}",
                text=match.raw_matched_string,
                kind=BlockKind.SYNTHETIC,
                confidence=self.confidence,
                bounding_box=self.box,
                page=1,
            )
        ]


class BlockLocator:
    """Runs location strategies in order; the first non-empty result wins."""

    def __init__(
        self,
        strategies: Optional[List[LocatorStrategy]] = None,
        placeholder_box: Optional[BoundingBox] = None,
        min_group_matches: int = 1,
    ) -> None:
        loader = PatternLoader.get_instance()
        self.placeholder_box = placeholder_box or loader.get_placeholder_box()

        if strategies is None:
            strategies = [
                ExactContainmentStrategy(),
                ChunkContainmentStrategy(
                    window=int(loader.get_card_setting("chunk_window", 8))
                ),
                GroupContainmentStrategy(min_matches=min_group_matches),
                SyntheticPlaceholderStrategy(
                    self.placeholder_box, loader.get_placeholder_confidence()
                ),
            ]
        self.strategies = strategies

    def locate(
        self, match: SensitiveMatch, blocks: Sequence[TextBlock]
    ) -> List[TextBlock]:
        """Finds the blocks carrying ``match``.

        Results are deduplicated by block id (first occurrence wins) and any
        block without geometry receives the placeholder rectangle.

        Returns:
            Located blocks, empty only if every strategy declined
        """
        for strategy in self.strategies:
            found = strategy.locate(match, blocks)
            if not found:
                continue

            unique: Dict[str, TextBlock] = {}
            for block in found:
                unique.setdefault(block.id, block)

            located = [
                b if b.bounding_box is not None else b.with_bounding_box(self.placeholder_box)
                for b in unique.values()
            ]

            logger.debug(
                "Located card blocks",
                extra={
                    "strategy": strategy.name,
                    "label": match.canonical_label,
                    "block_count": len(located),
                },
            )
            return located

        logger.warning(
            "No location strategy produced blocks",
            extra={"label": match.canonical_label},
        )
        return []
