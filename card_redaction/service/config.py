# card_redaction/service/config.py

"""Application configuration using Pydantic Settings.

Manages environment variables, defaults, and validation rules.
"""

from typing import List, Optional, Tuple
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from card_redaction.core.definitions import TextractFeature


class Settings(BaseSettings):
    """Global application settings.

    Loads values from environment variables (prefix 'CARD_REDACTION_') or .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CARD_REDACTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Analysis service
    aws_region: str = Field(default="us-east-1", description="AWS region for Textract.")
    aws_access_key_id: Optional[str] = Field(
        default=None, description="Explicit AWS access key; falls back to the default chain."
    )
    aws_secret_access_key: Optional[SecretStr] = Field(
        default=None, description="Explicit AWS secret key."
    )
    textract_feature_types: List[str] = Field(
        default_factory=lambda: [TextractFeature.FORMS, TextractFeature.TABLES],
        description="FeatureTypes passed to AnalyzeDocument.",
    )

    # Pipeline
    raster_scale: float = Field(
        default=2.0, ge=2.0, description="Oversampling scale for PDF page rendering."
    )
    page_timeout_seconds: float = Field(
        default=60.0, gt=0.0, description="Upper bound for one page analysis call."
    )
    row_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Normalized vertical distance under which blocks share a line.",
    )
    min_group_matches: int = Field(
        default=1,
        ge=1,
        description="Distinct digit groups a WORD block needs for group containment.",
    )

    # Rendering
    redaction_padding: float = Field(
        default=2.0, ge=0.0, description="Extra coverage around each mark, in page units."
    )
    redaction_color: Tuple[float, float, float] = Field(
        default=(0.0, 0.0, 0.0), description="RGB fill colour, components in [0, 1]."
    )

    log_level: str = Field(default="INFO", description="Root logging level.")
    log_json: bool = Field(default=True, description="Emit JSON log lines instead of plain text.")

    @field_validator("textract_feature_types")
    @classmethod
    def validate_feature_types(cls, v: List[str]) -> List[str]:
        """Ensure every feature type is known to Textract."""
        normalized = [f.strip().upper() for f in v]
        unknown = [f for f in normalized if f not in TextractFeature.ALL]
        if unknown:
            raise ValueError(f"Unknown Textract feature types: {unknown}")
        if not normalized:
            raise ValueError("At least one Textract feature type is required")
        return normalized

    @field_validator("redaction_color")
    @classmethod
    def validate_color(cls, v: Tuple[float, float, float]) -> Tuple[float, float, float]:
        """Ensure colour components lie in [0, 1]."""
        if any(c < 0.0 or c > 1.0 for c in v):
            raise ValueError("Colour components must be between 0 and 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


# Singleton settings instance
settings = Settings()
