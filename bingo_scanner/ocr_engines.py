"""
OCR engine wrappers supporting multiple OCR libraries.
Handles tesseract, easyocr and paddleocr behind one lifecycle interface.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

import cv2
import numpy as np
import pytesseract

from bingo_scanner.scan_types import OCRText


# Tesseract language tags -> two-letter codes used by easyocr and paddleocr
LANGUAGE_CODES = {
    'eng': 'en',
    'spa': 'es',
    'fra': 'fr',
    'deu': 'de',
    'por': 'pt',
    'ita': 'it',
}


class OCREngine(ABC):
    """
    Stateful OCR engine: initialize once, recognize many cells, terminate.

    Implementations are driven by one caller at a time; recognize() must not
    be called concurrently on the same instance.
    """

    def __init__(
        self,
        engine_config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            engine_config: Engine-specific configuration parameters
            logger: Logger instance
        """
        self.engine_config = engine_config or {}
        self.logger = logger
        self.language: Optional[str] = None
        self.parameters: Dict[str, Any] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine identifier (e.g. 'tesseract')."""

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """Whether the engine is loaded and ready to recognize."""

    @abstractmethod
    def initialize(self, language: str) -> None:
        """
        Load the engine for a language.

        Raises:
            RuntimeError: If the engine cannot be started
        """

    def set_parameters(self, **parameters: Any) -> None:
        """
        Configure recognition parameters.

        Recognized keys: char_whitelist (str), page_segmentation_mode (int).
        Engines ignore keys they have no equivalent for.
        """
        self.parameters.update(parameters)

    @abstractmethod
    def recognize(self, image: np.ndarray) -> OCRText:
        """
        Recognize the text in a single cell image.

        Returns:
            OCRText with confidence on a 0-100 scale; empty text and 0 confidence
            when nothing is recognized

        Raises:
            RuntimeError: If called before initialize() or if OCR fails
        """

    @abstractmethod
    def terminate(self) -> None:
        """Release engine resources. Safe to call when not initialized."""

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise RuntimeError(f"{self.name} engine used before initialize()")


class TesseractEngine(OCREngine):
    """Tesseract via pytesseract. Tesseract runs as a subprocess per call."""

    def __init__(self, engine_config=None, logger=None):
        super().__init__(engine_config, logger)
        self._ready = False

    @property
    def name(self) -> str:
        return 'tesseract'

    @property
    def is_initialized(self) -> bool:
        return self._ready

    def initialize(self, language: str) -> None:
        tesseract_cmd = self.engine_config.get('tesseract_cmd')
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

        try:
            version = pytesseract.get_tesseract_version()
        except Exception as e:
            raise RuntimeError(f"Failed to initialize tesseract: {e}") from e

        self.language = language
        self._ready = True
        if self.logger:
            self.logger.info(f"Initialized tesseract {version} (lang={language})")

    def _build_config(self) -> str:
        psm = self.parameters.get('page_segmentation_mode', self.engine_config.get('psm', 6))
        options = [f"--psm {psm}"]
        whitelist = self.parameters.get('char_whitelist')
        if whitelist:
            options.append(f"-c tessedit_char_whitelist={whitelist}")
        return ' '.join(options)

    def recognize(self, image: np.ndarray) -> OCRText:
        self._require_initialized()
        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.language,
                config=self._build_config(),
                output_type=pytesseract.Output.DICT
            )
        except Exception as e:
            raise RuntimeError(f"Tesseract extraction failed: {e}") from e

        words: List[str] = []
        confidences: List[float] = []
        for text, conf in zip(data['text'], data['conf']):
            text = str(text).strip()
            # Tesseract reports -1 for layout rows that hold no text
            if not text or float(conf) < 0:
                continue
            words.append(text)
            confidences.append(float(conf))

        if not words:
            return OCRText('', 0.0)
        return OCRText(' '.join(words), sum(confidences) / len(confidences))

    def terminate(self) -> None:
        self._ready = False


class EasyOCREngine(OCREngine):
    """EasyOCR reader. Loads detection and recognition models on initialize."""

    def __init__(self, engine_config=None, logger=None):
        super().__init__(engine_config, logger)
        self.reader = None

    @property
    def name(self) -> str:
        return 'easyocr'

    @property
    def is_initialized(self) -> bool:
        return self.reader is not None

    def initialize(self, language: str) -> None:
        try:
            import easyocr
            languages = self.engine_config.get('languages') or [LANGUAGE_CODES.get(language, language)]
            self.reader = easyocr.Reader(
                languages,
                gpu=self.engine_config.get('gpu', False),
                verbose=False
            )
        except Exception as e:
            raise RuntimeError(f"Failed to initialize easyocr: {e}") from e

        self.language = language
        if self.logger:
            self.logger.info(f"Initialized easyocr (lang={language})")

    def recognize(self, image: np.ndarray) -> OCRText:
        self._require_initialized()
        try:
            result = self.reader.readtext(
                image,
                allowlist=self.parameters.get('char_whitelist'),
                detail=1
            )
        except Exception as e:
            raise RuntimeError(f"EasyOCR extraction failed: {e}") from e

        if not result:
            return OCRText('', 0.0)

        texts = [text for _, text, _ in result]
        confidences = [float(confidence) for _, _, confidence in result]
        return OCRText(' '.join(texts), 100.0 * sum(confidences) / len(confidences))

    def terminate(self) -> None:
        self.reader = None


class PaddleOCREngine(OCREngine):
    """PaddleOCR pipeline. Expects 3-channel input, so grayscale cells are expanded."""

    def __init__(self, engine_config=None, logger=None):
        super().__init__(engine_config, logger)
        self.engine = None

    @property
    def name(self) -> str:
        return 'paddleocr'

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def initialize(self, language: str) -> None:
        try:
            from paddleocr import PaddleOCR
            self.engine = PaddleOCR(
                use_angle_cls=self.engine_config.get('use_angle_cls', False),
                lang=self.engine_config.get('lang', LANGUAGE_CODES.get(language, language))
            )
        except Exception as e:
            raise RuntimeError(f"Failed to initialize paddleocr: {e}") from e

        self.language = language
        if self.logger:
            self.logger.info(f"Initialized paddleocr (lang={language})")

    def recognize(self, image: np.ndarray) -> OCRText:
        self._require_initialized()
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)

        try:
            result = self.engine.ocr(image)
        except Exception as e:
            raise RuntimeError(f"PaddleOCR extraction failed: {e}") from e

        if not result or not result[0]:
            return OCRText('', 0.0)

        texts = [line[1][0] for line in result[0]]
        confidences = [float(line[1][1]) for line in result[0]]
        return OCRText(' '.join(texts), 100.0 * sum(confidences) / len(confidences))

    def terminate(self) -> None:
        self.engine = None


ENGINE_CLASSES: Dict[str, Type[OCREngine]] = {
    'tesseract': TesseractEngine,
    'easyocr': EasyOCREngine,
    'paddleocr': PaddleOCREngine,
}

SUPPORTED_ENGINES = list(ENGINE_CLASSES)


def create_engine(
    engine_name: str,
    engine_config: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None
) -> OCREngine:
    """
    Create an (uninitialized) OCR engine by name.

    Raises:
        ValueError: If engine is not supported
    """
    if engine_name not in ENGINE_CLASSES:
        raise ValueError(f"Unsupported engine: {engine_name}. Must be one of {SUPPORTED_ENGINES}")

    if logger:
        logger.info(f"Creating {engine_name} OCR engine")

    return ENGINE_CLASSES[engine_name](engine_config=engine_config, logger=logger)
