"""
OCR text parsing for bingo cards.
Cleans noisy OCR output, validates numbers against bingo rules, and assembles grids.
"""

import re
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from bingo_scanner.scan_types import (
    BINGO_COLUMNS,
    DEFAULT_NUMBER_RANGE,
    DEFAULT_OPTIONS,
    STANDARD_BINGO_RANGES,
    CellPosition,
    CellResult,
    Grid,
    GridSize,
    NumberRange,
    ScannerOptions,
)


# Single-character OCR confusions, applied in order before non-digits are stripped
OCR_CORRECTIONS: Tuple[Tuple[str, str], ...] = (
    ('O', '0'),
    ('I', '1'),
    ('l', '1'),
    ('S', '5'),
    ('Z', '2'),
)

# Patterns that mark a FREE space
FREE_SPACE_PATTERNS = (
    re.compile(r'free', re.IGNORECASE),
    re.compile(r'\*+'),
    re.compile(r'star', re.IGNORECASE),
    re.compile(r'centro', re.IGNORECASE),
    re.compile(r'libre', re.IGNORECASE),
    re.compile(r'gratis', re.IGNORECASE),
)

_NON_DIGITS = re.compile(r'[^0-9]')


def _first_two_digits(digits: str) -> str:
    return digits[:2]


def _last_two_digits(digits: str) -> str:
    return digits[-2:]


# Tried in order when the full number is out of range; first in-range candidate wins
RECOVERY_STRATEGIES: Tuple[Callable[[str], str], ...] = (
    _first_two_digits,
    _last_two_digits,
)


def clean_ocr_text(text: str) -> str:
    """
    Apply OCR confusion corrections, then drop every non-digit character.

    e.g. '1O' -> '10', ' 4-2 ' -> '42'
    """
    cleaned = text
    for wrong, correct in OCR_CORRECTIONS:
        cleaned = cleaned.replace(wrong, correct)
    return _NON_DIGITS.sub('', cleaned)


def is_free_space(text: str) -> bool:
    """
    Check whether OCR text marks a FREE space.

    True for FREE/star markers (including Spanish centro, libre, gratis), and
    for empty text or a lone non-digit character, which carry no number.
    """
    trimmed = text.strip()

    if any(pattern.search(trimmed) for pattern in FREE_SPACE_PATTERNS):
        return True

    if not trimmed:
        return True

    return len(trimmed) == 1 and not trimmed.isdigit()


def extract_number(
    text: str,
    number_range: NumberRange = DEFAULT_NUMBER_RANGE
) -> Optional[int]:
    """
    Extract a card number from raw OCR text.

    Args:
        text: Raw OCR text
        number_range: Inclusive range of valid numbers (default: 1-75)

    Returns:
        The number, or None for free spaces and unreadable text. Out-of-range
        values are recovered from their first or last two digits when possible.
    """
    if is_free_space(text):
        return None

    digits = clean_ocr_text(text)
    if not digits:
        return None

    # Runs longer than the largest valid number can only be recovered from two digits
    if len(digits) <= len(str(number_range.max)):
        number = int(digits)
        if number in number_range:
            return number

    for strategy in RECOVERY_STRATEGIES:
        candidate = strategy(digits)
        if candidate and int(candidate) in number_range:
            return int(candidate)

    return None


def validate_number_for_column(
    number: int,
    col_index: int,
    ranges: Mapping[str, NumberRange] = STANDARD_BINGO_RANGES
) -> bool:
    """
    Check a number against its B-I-N-G-O column range.

    Columns outside the B-I-N-G-O table (non 5-column cards) are unconstrained.
    """
    if not 0 <= col_index < len(BINGO_COLUMNS):
        return True

    column_range = ranges.get(BINGO_COLUMNS[col_index])
    if column_range is None:
        return True

    return number in column_range


def create_cell_result(
    raw_text: str,
    confidence: float,
    row: int,
    col: int,
    options: ScannerOptions = DEFAULT_OPTIONS
) -> CellResult:
    """
    Build a CellResult from OCR output.

    The centre cell of a card with a free space is always FREE, whatever the
    OCR engine read there.
    """
    is_center_cell = options.has_free_space and (row, col) == options.grid_size.center

    if is_center_cell or is_free_space(raw_text):
        return CellResult(
            number=None,
            is_free_space=True,
            confidence=confidence,
            raw_text=raw_text,
            position=CellPosition(row, col),
        )

    return CellResult(
        number=extract_number(raw_text, options.number_range),
        is_free_space=False,
        confidence=confidence,
        raw_text=raw_text,
        position=CellPosition(row, col),
    )


def parse_grid(
    ocr_results: Iterable[Tuple[str, float, int, int]],
    options: ScannerOptions = DEFAULT_OPTIONS
) -> List[CellResult]:
    """Turn (text, confidence, row, col) tuples into CellResults."""
    return [
        create_cell_result(text, confidence, row, col, options)
        for text, confidence, row, col in ocr_results
    ]


def cells_to_grid(cells: Sequence[CellResult], grid_size: GridSize) -> Grid:
    """
    Arrange cell numbers into a rows x cols grid.

    Cells positioned outside the grid are ignored.
    """
    grid: Grid = [[None] * grid_size.cols for _ in range(grid_size.rows)]

    for cell in cells:
        row, col = cell.position.row, cell.position.col
        if 0 <= row < grid_size.rows and 0 <= col < grid_size.cols:
            grid[row][col] = cell.number

    return grid


def grid_to_array(grid: Grid) -> List[Optional[int]]:
    """Flatten a grid in reading order, keeping None entries."""
    return [number for row in grid for number in row]
