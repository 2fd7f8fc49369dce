"""
Data structures shared across the scanning pipeline.
All entities are immutable value types.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from bingo_scanner.exceptions import InvalidRegionError


# Decoded pixel buffer, (h, w) or (h, w, c) in BGR channel order
RawImage = np.ndarray

# Anything the pipeline accepts as a photograph
ImageInput = Union[bytes, bytearray, str, Path, np.ndarray]

Grid = List[List[Optional[int]]]


@dataclass(frozen=True)
class Bounds:
    """Integer pixel rectangle inside an image."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def validate_within(self, image_width: int, image_height: int) -> None:
        """
        Check that the rectangle is non-empty and lies inside the image.

        Raises:
            InvalidRegionError: If the rectangle is empty or exceeds the image
        """
        if self.width <= 0 or self.height <= 0:
            raise InvalidRegionError(f"Region {self} has non-positive size")
        if self.x < 0 or self.y < 0:
            raise InvalidRegionError(f"Region {self} has a negative origin")
        if self.x + self.width > image_width or self.y + self.height > image_height:
            raise InvalidRegionError(
                f"Region {self} exceeds image dimensions {image_width}x{image_height}"
            )

    def to_dict(self) -> Dict[str, int]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class GridSize:
    """Rows and columns of a grid (cards in a photo, or cells in a card)."""
    rows: int
    cols: int

    def __post_init__(self):
        if self.rows <= 0 or self.cols <= 0:
            raise ValueError(f"Grid size must be positive, got {self.rows}x{self.cols}")

    @property
    def center(self) -> Tuple[int, int]:
        """(row, col) of the centre cell."""
        return self.rows // 2, self.cols // 2

    @classmethod
    def parse(cls, value: str) -> 'GridSize':
        """Parse a 'RxC' string such as '2x3'."""
        try:
            rows, cols = value.lower().split('x')
            return cls(int(rows), int(cols))
        except (AttributeError, ValueError) as e:
            raise ValueError(f"Invalid grid size '{value}', expected ROWSxCOLS: {e}")


@dataclass(frozen=True)
class NumberRange:
    """Inclusive range of valid card numbers."""
    min: int
    max: int

    def __contains__(self, number: int) -> bool:
        return self.min <= number <= self.max


@dataclass(frozen=True)
class CellPosition:
    row: int
    col: int

    def to_dict(self) -> Dict[str, int]:
        return {'row': self.row, 'col': self.col}


@dataclass(frozen=True)
class CellImage:
    """A cropped cell and the grid position it was cut from."""
    image: RawImage
    row: int
    col: int


@dataclass(frozen=True)
class OCRText:
    """Text recognized by an OCR engine with its 0-100 confidence."""
    text: str
    confidence: float


@dataclass(frozen=True)
class DetectedCard:
    """A card region located inside a photograph."""
    bounds: Bounds
    index: int  # 0-based reading order
    image: RawImage = field(repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {'bounds': self.bounds.to_dict(), 'index': self.index}


@dataclass(frozen=True)
class CellResult:
    """Parsed OCR result for one cell."""
    number: Optional[int]
    is_free_space: bool
    confidence: float
    raw_text: str
    position: CellPosition

    def to_dict(self) -> Dict[str, Any]:
        return {
            'number': self.number,
            'is_free_space': self.is_free_space,
            'confidence': self.confidence,
            'raw_text': self.raw_text,
            'position': self.position.to_dict(),
        }


@dataclass(frozen=True)
class ScanResult:
    """Result of scanning a single card."""
    numbers: List[Optional[int]]        # row-major
    grid: Grid                          # rows x cols
    cells: List[CellResult]
    confidence: float                   # mean cell confidence, 0-100
    is_complete: bool
    unreadable_cells: List[CellPosition]
    processing_time: float              # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'numbers': list(self.numbers),
            'grid': [list(row) for row in self.grid],
            'cells': [cell.to_dict() for cell in self.cells],
            'confidence': self.confidence,
            'is_complete': self.is_complete,
            'unreadable_cells': [pos.to_dict() for pos in self.unreadable_cells],
            'processing_time': self.processing_time,
        }


@dataclass(frozen=True)
class MultiCardScanResult:
    """Result of scanning every card found in one photograph."""
    card_count: int
    cards: List[List[Optional[int]]]
    card_results: List[ScanResult]
    detected_cards: List[DetectedCard]
    confidence: float                   # mean over cards, 0-100
    processing_time: float              # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'card_count': self.card_count,
            'cards': [list(card) for card in self.cards],
            'card_results': [result.to_dict() for result in self.card_results],
            'detected_cards': [card.to_dict() for card in self.detected_cards],
            'confidence': self.confidence,
            'processing_time': self.processing_time,
        }


DEFAULT_GRID_SIZE = GridSize(5, 5)
DEFAULT_NUMBER_RANGE = NumberRange(1, 75)


@dataclass(frozen=True)
class ScannerOptions:
    """Options for scanning a single card."""
    language: str = 'eng'
    confidence_threshold: float = 60
    grid_size: GridSize = DEFAULT_GRID_SIZE
    has_free_space: bool = True
    number_range: NumberRange = DEFAULT_NUMBER_RANGE
    preprocess: bool = True
    engine: str = 'tesseract'


@dataclass(frozen=True)
class DetectionOptions:
    """Options for locating cards inside a photograph."""
    card_layout: Optional[GridSize] = None
    expected_cards: Optional[int] = None
    min_card_area_percent: float = 0.05
    max_card_area_percent: float = 0.9

    def __post_init__(self):
        if self.expected_cards is not None and self.expected_cards <= 0:
            raise ValueError(f"expected_cards must be positive, got {self.expected_cards}")
        if self.min_card_area_percent > self.max_card_area_percent:
            raise ValueError(
                f"min_card_area_percent ({self.min_card_area_percent}) exceeds "
                f"max_card_area_percent ({self.max_card_area_percent})"
            )


# Standard bingo constants
BINGO_COLUMNS = ('B', 'I', 'N', 'G', 'O')

STANDARD_BINGO_RANGES: Mapping[str, NumberRange] = MappingProxyType({
    'B': NumberRange(1, 15),
    'I': NumberRange(16, 30),
    'N': NumberRange(31, 45),
    'G': NumberRange(46, 60),
    'O': NumberRange(61, 75),
})

DEFAULT_OPTIONS = ScannerOptions()
DEFAULT_DETECTION_OPTIONS = DetectionOptions()
