"""
Configuration management for the scanning pipeline.
Loads and validates JSON configuration files, with environment overrides.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytesseract
from dotenv import load_dotenv

from bingo_scanner.ocr_engines import SUPPORTED_ENGINES
from bingo_scanner.preprocessor import DEFAULT_CHAIN
from bingo_scanner.scan_types import DetectionOptions, GridSize, NumberRange, ScannerOptions
from bingo_scanner.utils import load_json


DEFAULT_CONFIG_PATH = Path(__file__).parent / 'configs' / 'default.json'

# Environment variables that override config values
ENV_ENGINE = 'BINGO_OCR_ENGINE'
ENV_LANGUAGE = 'BINGO_OCR_LANGUAGE'
ENV_TESSERACT_CMD = 'TESSERACT_CMD'


class ConfigManager:
    """Manages configuration loading and validation."""

    REQUIRED_FIELDS = ['primary_engine', 'scanner', 'detection', 'engines', 'output_paths']
    REQUIRED_OUTPUT_PATHS = ['results', 'annotated', 'cells', 'logs']

    def __init__(self, config_path: Optional[str] = None, logger: Optional[logging.Logger] = None):
        """
        Initialize config manager and load configuration.

        Args:
            config_path: Path to JSON pipeline config file (default: packaged default.json)
            logger: Logger instance

        Raises:
            IOError: If config file cannot be loaded
            ValueError: If config validation fails
        """
        self.logger = logger
        self.config_path = str(config_path or DEFAULT_CONFIG_PATH)

        # Pick up overrides from a local .env file, without clobbering the real environment
        load_dotenv(override=False)

        self.config = self._load_and_validate_config(self.config_path)
        self._apply_env_overrides()

    def _load_and_validate_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load and validate configuration from JSON file.

        Raises:
            IOError: If config file cannot be loaded
            ValueError: If config validation fails
        """
        try:
            config = load_json(config_path, self.logger)
        except IOError as e:
            raise IOError(f"Failed to load config from {config_path}: {e}")

        missing_fields = [f for f in self.REQUIRED_FIELDS if f not in config]
        if missing_fields:
            raise ValueError(f"Missing required config fields: {missing_fields}")

        missing_paths = [p for p in self.REQUIRED_OUTPUT_PATHS if p not in config['output_paths']]
        if missing_paths:
            raise ValueError(f"Missing required output paths: {missing_paths}")

        if config['primary_engine'] not in SUPPORTED_ENGINES:
            raise ValueError(
                f"primary_engine must be one of {SUPPORTED_ENGINES}, got {config['primary_engine']!r}"
            )

        if not isinstance(config['engines'], dict):
            raise ValueError("engines must be a dictionary")

        chain = config.get('preprocessing_chain')
        if chain is not None:
            if not isinstance(chain, list) or not all(isinstance(m, dict) and 'method' in m for m in chain):
                raise ValueError("preprocessing_chain must be a list of {'method': ...} dicts")

        if self.logger:
            self.logger.info(f"Successfully loaded and validated config from {config_path}")

        return config

    def _apply_env_overrides(self) -> None:
        engine = os.environ.get(ENV_ENGINE)
        if engine:
            if engine not in SUPPORTED_ENGINES:
                raise ValueError(f"{ENV_ENGINE} must be one of {SUPPORTED_ENGINES}, got {engine!r}")
            self.config['primary_engine'] = engine

        language = os.environ.get(ENV_LANGUAGE)
        if language:
            self.config['scanner']['language'] = language

        tesseract_cmd = os.environ.get(ENV_TESSERACT_CMD)
        if tesseract_cmd:
            self.config['engines'].setdefault('tesseract', {})['tesseract_cmd'] = tesseract_cmd
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

        if self.logger and (engine or language or tesseract_cmd):
            self.logger.info("Applied environment overrides to config")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self.config.get(key, default)

    def get_nested(self, keys: List[str], default: Any = None) -> Any:
        """
        Get nested configuration value.

        Args:
            keys: List of keys to traverse (e.g., ['output_paths', 'results'])
            default: Default value if key path not found

        Returns:
            Configuration value
        """
        value = self.config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default
        return value

    def get_primary_engine(self) -> str:
        """Get the primary OCR engine name."""
        return self.config.get('primary_engine', 'tesseract')

    def get_engine_config(self, engine_name: str) -> Dict[str, Any]:
        """
        Get configuration parameters for a specific OCR engine.

        Args:
            engine_name: Name of the OCR engine (e.g., 'paddleocr', 'tesseract', 'easyocr')

        Returns:
            Engine-specific configuration dictionary
        """
        return self.config.get('engines', {}).get(engine_name, {})

    def get_scanner_options(self) -> ScannerOptions:
        """
        Build ScannerOptions from the 'scanner' section.

        Raises:
            ValueError: If grid_size or number_range are malformed
        """
        section = self.config.get('scanner', {})
        defaults = ScannerOptions()

        try:
            grid_size = GridSize(*section['grid_size']) if 'grid_size' in section else defaults.grid_size
            number_range = (
                NumberRange(*section['number_range']) if 'number_range' in section else defaults.number_range
            )
        except TypeError as e:
            raise ValueError(f"Invalid scanner config: {e}")

        return ScannerOptions(
            language=section.get('language', defaults.language),
            confidence_threshold=section.get('confidence_threshold', defaults.confidence_threshold),
            grid_size=grid_size,
            has_free_space=section.get('has_free_space', defaults.has_free_space),
            number_range=number_range,
            preprocess=section.get('preprocess', defaults.preprocess),
            engine=self.get_primary_engine(),
        )

    def get_detection_options(self) -> DetectionOptions:
        """Build DetectionOptions from the 'detection' section."""
        section = self.config.get('detection', {})
        defaults = DetectionOptions()
        card_layout = section.get('card_layout')

        return DetectionOptions(
            card_layout=GridSize(*card_layout) if card_layout else None,
            expected_cards=section.get('expected_cards'),
            min_card_area_percent=section.get('min_card_area_percent', defaults.min_card_area_percent),
            max_card_area_percent=section.get('max_card_area_percent', defaults.max_card_area_percent),
        )

    def get_preprocessing_chain(self) -> List[Dict[str, Any]]:
        """Get the whole-card preprocessing chain (default: DEFAULT_CHAIN)."""
        return self.config.get('preprocessing_chain') or DEFAULT_CHAIN

    def get_output_paths(self) -> Dict[str, str]:
        """Get output paths."""
        return self.config.get('output_paths', {})
