# card_redaction/core/loader.py

"""Configuration and pattern loader for the card detection stages."""

import re
import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Pattern

from card_redaction.core.domain import BoundingBox
from card_redaction.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class PatternLoader:
    """Singleton loader for card patterns and placeholder geometry.

    Loads configuration once from patterns.yaml and caches it for the
    application lifecycle.
    """

    _instance: Optional["PatternLoader"] = None
    _config: Dict[str, Any] = {}
    _loaded: bool = False
    _compiled: List[Pattern] = []

    def __new__(cls) -> "PatternLoader":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not PatternLoader._loaded:
            self._load_config()

    def _load_config(self, config_path: Optional[Path] = None) -> None:
        """Loads patterns.yaml from the module directory.

        Raises:
            ConfigurationError: If file is missing, invalid, or empty.
        """
        try:
            config_path = config_path or Path(__file__).parent / "patterns.yaml"

            if not config_path.exists():
                error_msg = f"Configuration file not found: {config_path}"
                logger.error(error_msg)
                raise ConfigurationError(error_msg)

            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)

            if not config:
                raise ConfigurationError("Configuration file is empty or invalid")

            self._validate_config(config)

            # Compile once; ASCII keeps \d in step with digit stripping
            compiled = [
                re.compile(p["regex"], re.ASCII)
                for p in config["patterns"]["card_formats"]
            ]

            PatternLoader._config = config
            PatternLoader._compiled = compiled
            PatternLoader._loaded = True
            logger.info(
                "Configuration loaded successfully",
                extra={
                    "config_path": str(config_path),
                    "pattern_count": len(compiled),
                },
            )

        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error: {e}", exc_info=True)
            raise ConfigurationError(f"Failed to parse patterns.yaml: {e}") from e
        except re.error as e:
            logger.error(f"Invalid card pattern: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid regex in patterns.yaml: {e}") from e
        except Exception as e:
            if isinstance(e, ConfigurationError):
                raise
            logger.error(f"Configuration loading failed: {e}", exc_info=True)
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

    @staticmethod
    def _validate_config(config: Dict[str, Any]) -> None:
        """Validates required configuration sections exist.

        Raises:
            ConfigurationError: If required sections are missing.
        """
        required_sections = ["patterns", "card_number", "placeholder"]
        missing = [s for s in required_sections if s not in config]

        if missing:
            error_msg = f"Missing required configuration sections: {missing}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

        if not config["patterns"].get("card_formats"):
            raise ConfigurationError("No card_formats defined under 'patterns'")

    @classmethod
    def get_instance(cls) -> "PatternLoader":
        """Returns the singleton instance of PatternLoader."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reload(cls, config_path: Optional[Path] = None) -> "PatternLoader":
        """Discards cached configuration and loads it again."""
        cls._loaded = False
        instance = cls.__new__(cls)
        instance._load_config(config_path)
        return instance

    def get_card_patterns(self) -> List[Pattern]:
        """Returns the compiled card-format patterns in configured order."""
        return list(self._compiled)

    def get_consecutive_digits_pattern(self) -> Pattern:
        regex = self._config["patterns"].get("consecutive_digits", r"\d{16}")
        return re.compile(regex, re.ASCII)

    def get_card_setting(self, key: str, default: Any = None) -> Any:
        """Retrieves a value from the card_number section."""
        return self._config.get("card_number", {}).get(key, default)

    def get_placeholder_box(self) -> BoundingBox:
        """Returns the default rectangle used for unlocated blocks."""
        box = self._config.get("placeholder", {}).get("box", {})
        return BoundingBox(
            left=float(box.get("left", 0.1)),
            top=float(box.get("top", 0.1)),
            width=float(box.get("width", 0.3)),
            height=float(box.get("height", 0.03)),
        )

    def get_placeholder_confidence(self) -> float:
        return float(self._config.get("placeholder", {}).get("confidence", 100))
