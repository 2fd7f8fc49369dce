"""
Bingo Card Scanner OCR Pipeline
"""

from bingo_scanner.card_detector import (
    annotate_cards,
    calculate_optimal_layout,
    detect_cards,
    extract_card_region,
    find_separators,
    split_image,
)
from bingo_scanner.config_manager import ConfigManager
from bingo_scanner.exceptions import (
    BingoScannerError,
    InvalidImageError,
    InvalidRegionError,
    LayoutConstraintError,
)
from bingo_scanner.image_io import load_image, save_image
from bingo_scanner.ocr_engines import OCREngine, create_engine
from bingo_scanner.parser import (
    clean_ocr_text,
    create_cell_result,
    extract_number,
    is_free_space,
    parse_grid,
    validate_number_for_column,
)
from bingo_scanner.preprocessor import (
    PreprocessingPipeline,
    extract_all_cells,
    extract_cell,
    get_image_dimensions,
    preprocess_image,
    resize_image,
)
from bingo_scanner.scan_types import (
    DEFAULT_DETECTION_OPTIONS,
    DEFAULT_OPTIONS,
    STANDARD_BINGO_RANGES,
    Bounds,
    CellResult,
    DetectedCard,
    DetectionOptions,
    GridSize,
    MultiCardScanResult,
    NumberRange,
    ScannerOptions,
    ScanResult,
)
from bingo_scanner.scanner import (
    BingoScanner,
    scan_bingo_card,
    scan_bingo_card_detailed,
    scan_multiple_bingo_cards,
    scan_multiple_bingo_cards_detailed,
)
from bingo_scanner.utils import setup_logger, save_cells_csv, save_scan_result, load_json

__all__ = [
    'BingoScanner',
    'scan_bingo_card',
    'scan_bingo_card_detailed',
    'scan_multiple_bingo_cards',
    'scan_multiple_bingo_cards_detailed',
    'ConfigManager',
    'PreprocessingPipeline',
    'OCREngine',
    'create_engine',
    'detect_cards',
    'calculate_optimal_layout',
    'split_image',
    'extract_card_region',
    'find_separators',
    'annotate_cards',
    'preprocess_image',
    'extract_cell',
    'extract_all_cells',
    'get_image_dimensions',
    'resize_image',
    'clean_ocr_text',
    'is_free_space',
    'extract_number',
    'validate_number_for_column',
    'create_cell_result',
    'parse_grid',
    'load_image',
    'save_image',
    'Bounds',
    'GridSize',
    'NumberRange',
    'CellResult',
    'DetectedCard',
    'ScanResult',
    'MultiCardScanResult',
    'ScannerOptions',
    'DetectionOptions',
    'DEFAULT_OPTIONS',
    'DEFAULT_DETECTION_OPTIONS',
    'STANDARD_BINGO_RANGES',
    'BingoScannerError',
    'InvalidImageError',
    'InvalidRegionError',
    'LayoutConstraintError',
    'setup_logger',
    'save_cells_csv',
    'save_scan_result',
    'load_json',
]
