"""
Main bingo card scanner orchestrating the full pipeline.
Coordinates card detection, preprocessing, OCR and parsing, and owns the OCR engine lifecycle.
"""

import asyncio
import dataclasses
import functools
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from bingo_scanner.card_detector import detect_cards
from bingo_scanner.image_io import load_image
from bingo_scanner.ocr_engines import OCREngine, create_engine
from bingo_scanner.parser import (
    cells_to_grid,
    create_cell_result,
    grid_to_array,
    validate_number_for_column,
)
from bingo_scanner.preprocessor import extract_all_cells, preprocess_image
from bingo_scanner.scan_types import (
    BINGO_COLUMNS,
    DEFAULT_OPTIONS,
    CellImage,
    CellResult,
    DetectionOptions,
    ImageInput,
    MultiCardScanResult,
    OCRText,
    RawImage,
    ScannerOptions,
    ScanResult,
)


# Recognition parameters forwarded to the engine on initialize
DIGIT_WHITELIST = '0123456789'
PSM_SINGLE_BLOCK = 6


class BingoScanner:
    """
    Scans bingo card images and extracts their numbers.

    The OCR engine is started lazily. A scan() on an uninitialized scanner
    starts and stops the engine around that one scan; call initialize() first
    to reuse one engine across many scans, and terminate() when done.
    """

    def __init__(
        self,
        options: Optional[ScannerOptions] = None,
        engine: Optional[OCREngine] = None,
        engine_config: Optional[Dict[str, Any]] = None,
        preprocessing_chain: Optional[List[Dict[str, Any]]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the scanner.

        Args:
            options: Scanner options (default: DEFAULT_OPTIONS)
            engine: OCR engine to drive; created from options.engine if omitted
            engine_config: Engine-specific configuration used when creating the engine
            preprocessing_chain: Whole-card preprocessing methods (default: DEFAULT_CHAIN)
            logger: Logger instance

        Raises:
            ValueError: If options.engine is not a supported engine
        """
        self.options = options or DEFAULT_OPTIONS
        self.logger = logger
        self.preprocessing_chain = preprocessing_chain
        self.engine = engine if engine is not None else create_engine(
            self.options.engine, engine_config, logger
        )
        self._ready = False
        self._lifecycle_lock = asyncio.Lock()
        self._engine_lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def _run_blocking(self, func: Callable, *args):
        """Run a blocking call (OCR or image work) in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def initialize(self) -> None:
        """
        Start the OCR engine. Does nothing if it is already running.

        Raises:
            RuntimeError: If the engine fails to start
        """
        async with self._lifecycle_lock:
            if self._ready:
                return

            if self.logger:
                self.logger.info(f"Starting {self.engine.name} engine (lang={self.options.language})")

            await self._run_blocking(self.engine.initialize, self.options.language)
            self.engine.set_parameters(
                char_whitelist=DIGIT_WHITELIST,
                page_segmentation_mode=PSM_SINGLE_BLOCK
            )
            self._ready = True

    async def terminate(self) -> None:
        """Stop the OCR engine. Safe to call when it is not running."""
        async with self._lifecycle_lock:
            if not self._ready:
                return

            try:
                await self._run_blocking(self.engine.terminate)
            finally:
                self._ready = False

            if self.logger:
                self.logger.info(f"Stopped {self.engine.name} engine")

    async def _recognize(self, cell_image: RawImage) -> OCRText:
        # One OCR call in flight per engine
        async with self._engine_lock:
            return await self._run_blocking(self.engine.recognize, cell_image)

    async def scan(self, image: ImageInput) -> ScanResult:
        """
        Scan a single card image and extract all numbers.

        Args:
            image: Card image (bytes, path or decoded array)

        Returns:
            ScanResult with numbers, grid, per-cell details and confidence

        Raises:
            InvalidImageError: If the image cannot be decoded
            RuntimeError: If the OCR engine fails
        """
        start_time = time.perf_counter()
        owns_engine = not self._ready

        try:
            await self.initialize()

            cells = await self._run_blocking(self._prepare_cells, image)

            cell_results = []
            for cell in cells:
                ocr_text = await self._recognize(cell.image)
                cell_result = create_cell_result(
                    ocr_text.text, ocr_text.confidence, cell.row, cell.col, self.options
                )
                cell_results.append(self._review_cell(cell_result))

            result = self._build_scan_result(cell_results, start_time)

            if self.logger:
                self.logger.info(
                    f"Scan complete: {len(cell_results) - len(result.unreadable_cells)}/"
                    f"{len(cell_results)} cells read, confidence {result.confidence:.1f}, "
                    f"{result.processing_time:.0f}ms"
                )

            return result

        except Exception as e:
            if self.logger:
                self.logger.error(f"Scan failed: {e}")
            raise

        finally:
            if owns_engine:
                await self.terminate()

    def _prepare_cells(self, image: ImageInput) -> List[CellImage]:
        """Decode, preprocess and crop a card into cells."""
        card_image = load_image(image)
        if self.options.preprocess:
            card_image = preprocess_image(card_image, self.preprocessing_chain, logger=self.logger)
        return extract_all_cells(card_image, self.options.grid_size, logger=self.logger)

    def _review_cell(self, cell: CellResult) -> CellResult:
        """Drop low-confidence numbers and log numbers outside their B-I-N-G-O column."""
        if cell.is_free_space or cell.number is None:
            if self.logger and not cell.is_free_space:
                self.logger.debug(f"Cell ({cell.position.row}, {cell.position.col}): unreadable '{cell.raw_text.strip()}'")
            return cell

        row, col = cell.position.row, cell.position.col

        if cell.confidence < self.options.confidence_threshold:
            if self.logger:
                self.logger.debug(
                    f"Cell ({row}, {col}): discarding {cell.number}, confidence "
                    f"{cell.confidence:.1f} below {self.options.confidence_threshold}"
                )
            return dataclasses.replace(cell, number=None)

        if self.options.grid_size.cols == len(BINGO_COLUMNS) and not validate_number_for_column(cell.number, col):
            if self.logger:
                self.logger.warning(
                    f"Cell ({row}, {col}): {cell.number} is outside column {BINGO_COLUMNS[col]} range"
                )

        return cell

    def _build_scan_result(self, cell_results: List[CellResult], start_time: float) -> ScanResult:
        grid = cells_to_grid(cell_results, self.options.grid_size)
        unreadable = [
            cell.position for cell in cell_results
            if cell.number is None and not cell.is_free_space
        ]
        confidence = (
            sum(cell.confidence for cell in cell_results) / len(cell_results)
            if cell_results else 0.0
        )

        return ScanResult(
            numbers=grid_to_array(grid),
            grid=grid,
            cells=cell_results,
            confidence=confidence,
            is_complete=not unreadable,
            unreadable_cells=unreadable,
            processing_time=(time.perf_counter() - start_time) * 1000,
        )

    async def scan_multiple(self, images: Iterable[ImageInput]) -> List[ScanResult]:
        """
        Scan several card images with a single engine instance.

        If the scanner was not initialized by the caller, the engine is started
        once for the whole batch and stopped at the end.
        """
        images = list(images)
        owns_engine = not self._ready

        await self.initialize()
        try:
            results = []
            for i, image in enumerate(images, 1):
                if self.logger:
                    self.logger.info(f"[{i}/{len(images)}] Scanning card")
                results.append(await self.scan(image))
            return results
        finally:
            if owns_engine:
                await self.terminate()

    async def scan_multiple_from_image(
        self,
        image: ImageInput,
        detection_options: Optional[DetectionOptions] = None
    ) -> MultiCardScanResult:
        """
        Detect every card in a photograph and scan each one.

        Args:
            image: Photograph containing one or more cards
            detection_options: Layout hints and area constraints

        Returns:
            MultiCardScanResult with one number array per card

        Raises:
            InvalidImageError: If the image cannot be decoded
            LayoutConstraintError: If an explicit or expected-count layout is rejected
        """
        start_time = time.perf_counter()

        detected_cards = await self._run_blocking(detect_cards, image, detection_options, self.logger)
        card_results = await self.scan_multiple([card.image for card in detected_cards])

        confidence = (
            sum(result.confidence for result in card_results) / len(card_results)
            if card_results else 0.0
        )

        return MultiCardScanResult(
            card_count=len(detected_cards),
            cards=[result.numbers for result in card_results],
            card_results=card_results,
            detected_cards=detected_cards,
            confidence=confidence,
            processing_time=(time.perf_counter() - start_time) * 1000,
        )


async def scan_bingo_card(
    image: ImageInput,
    options: Optional[ScannerOptions] = None,
    engine: Optional[OCREngine] = None
) -> List[Optional[int]]:
    """
    Scan a card and return its numbers in reading order (None = FREE or unreadable).

    Example:
        numbers = asyncio.run(scan_bingo_card('card.png'))
    """
    result = await scan_bingo_card_detailed(image, options, engine)
    return result.numbers


async def scan_bingo_card_detailed(
    image: ImageInput,
    options: Optional[ScannerOptions] = None,
    engine: Optional[OCREngine] = None
) -> ScanResult:
    """Scan a card and return the full ScanResult."""
    return await BingoScanner(options, engine=engine).scan(image)


async def scan_multiple_bingo_cards(
    image: ImageInput,
    detection_options: Optional[DetectionOptions] = None,
    options: Optional[ScannerOptions] = None,
    engine: Optional[OCREngine] = None
) -> List[List[Optional[int]]]:
    """
    Scan every card in a photograph and return one number array per card.

    Example:
        cards = asyncio.run(scan_multiple_bingo_cards(
            'cards.png', DetectionOptions(card_layout=GridSize(2, 3))
        ))
    """
    result = await scan_multiple_bingo_cards_detailed(image, detection_options, options, engine)
    return result.cards


async def scan_multiple_bingo_cards_detailed(
    image: ImageInput,
    detection_options: Optional[DetectionOptions] = None,
    options: Optional[ScannerOptions] = None,
    engine: Optional[OCREngine] = None
) -> MultiCardScanResult:
    """Scan every card in a photograph and return the full MultiCardScanResult."""
    return await BingoScanner(options, engine=engine).scan_multiple_from_image(image, detection_options)
