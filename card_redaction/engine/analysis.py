# card_redaction/engine/analysis.py

"""Adapters for the external document analysis service."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from card_redaction.core.definitions import BlockKind
from card_redaction.core.domain import BoundingBox, TextBlock
from card_redaction.core.exceptions import AnalysisError, InitializationError

logger = logging.getLogger(__name__)

_KEPT_KINDS = (BlockKind.WORD, BlockKind.LINE)


class DocumentAnalyzer(ABC):
    """Interface of the service that turns a page image into text blocks."""

    @abstractmethod
    def analyze(self, page_image: bytes) -> List[TextBlock]:
        """Analyzes one page image.

        Args:
            page_image: Encoded image bytes (PNG or JPEG)

        Returns:
            WORD and LINE blocks for the page

        Raises:
            AnalysisError: If the service call fails or returns garbage
        """
        pass


def _parse_geometry(block: Dict[str, Any]) -> Optional[BoundingBox]:
    box = (block.get("Geometry") or {}).get("BoundingBox")
    if not box:
        return None
    try:
        return BoundingBox.from_mapping(box)
    except (TypeError, ValueError):
        logger.debug("Ignoring unusable block geometry", extra={"block_id": block.get("Id")})
        return None


def parse_textract_blocks(response: Dict[str, Any]) -> List[TextBlock]:
    """Converts an AnalyzeDocument response into TextBlocks.

    Only WORD and LINE blocks are kept. Missing ids are generated, missing
    page numbers default to 1 and geometry is clamped into [0, 1].

    Raises:
        AnalysisError: If the response has no Blocks list.
    """
    raw_blocks = response.get("Blocks") if isinstance(response, dict) else None
    if not isinstance(raw_blocks, list):
        raise AnalysisError("Malformed analysis response: missing 'Blocks' list")

    blocks: List[TextBlock] = []
    for raw in raw_blocks:
        kind = raw.get("BlockType")
        if kind not in _KEPT_KINDS:
            continue

        blocks.append(
            TextBlock(
                id=raw.get("Id") or uuid.uuid4().hex,
                text=raw.get("Text") or "",
                kind=kind,
                confidence=float(raw.get("Confidence") or 0.0),
                bounding_box=_parse_geometry(raw),
                page=max(1, int(raw.get("Page") or 1)),
            )
        )

    return blocks


class TextractAnalyzer(DocumentAnalyzer):
    """DocumentAnalyzer backed by AWS Textract AnalyzeDocument."""

    def __init__(
        self,
        client: Any = None,
        feature_types: Sequence[str] = ("FORMS", "TABLES"),
        region_name: str = "us-east-1",
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize the analyzer.

        Args:
            client: Pre-built Textract client; one is created when omitted
            feature_types: Textract FeatureTypes for each call
            region_name: AWS region for a newly created client
            aws_access_key_id: Optional explicit credentials
            aws_secret_access_key: Optional explicit credentials
            timeout_seconds: Connect/read timeout for a newly created client

        Raises:
            InitializationError: If the client cannot be created.
        """
        self.feature_types = list(feature_types)

        if client is not None:
            self._client = client
            return

        try:
            config = Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 2, "mode": "standard"},
            )
            self._client = boto3.client(
                "textract",
                region_name=region_name,
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
                config=config,
            )
            logger.info("Textract client created", extra={"region": region_name})
        except (BotoCoreError, ValueError) as e:
            logger.error("Failed to create Textract client", exc_info=True)
            raise InitializationError(f"Could not create Textract client: {e}") from e

    def analyze(self, page_image: bytes) -> List[TextBlock]:
        if not page_image:
            raise AnalysisError("Empty page image")

        try:
            response = self._client.analyze_document(
                Document={"Bytes": page_image},
                FeatureTypes=self.feature_types,
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            message = error.get("Message") or str(e)
            raise AnalysisError(
                f"Textract rejected page ({error.get('Code', 'Unknown')}): {message}"
            ) from e
        except BotoCoreError as e:
            raise AnalysisError(f"Textract call failed: {e}") from e

        blocks = parse_textract_blocks(response)
        logger.info(
            "Textract analysis complete",
            extra={
                "word_count": sum(1 for b in blocks if b.kind == BlockKind.WORD),
                "line_count": sum(1 for b in blocks if b.kind == BlockKind.LINE),
            },
        )
        return blocks
