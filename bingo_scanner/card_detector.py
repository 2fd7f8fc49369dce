"""
Card detection module for bingo card photographs.
Locates card regions in a photo, crops them in reading order, and annotates the result.
"""

import logging
import math
from typing import List, Optional, Sequence

import cv2
import numpy as np

from bingo_scanner.exceptions import LayoutConstraintError
from bingo_scanner.grid import cut_positions, grid_positions
from bingo_scanner.image_io import load_image
from bingo_scanner.preprocessor import PreprocessingPipeline
from bingo_scanner.scan_types import (
    DEFAULT_DETECTION_OPTIONS,
    Bounds,
    DetectedCard,
    DetectionOptions,
    GridSize,
    ImageInput,
    RawImage,
    ScanResult,
)


# Separator detection parameters, as fractions of the profile length
SEPARATOR_WINDOW_RATIO = 0.01
SEPARATOR_MIN_WINDOW = 3
SEPARATOR_STD_FACTOR = 1.5
SEPARATOR_GROUP_GAP_RATIO = 0.05
MIN_REGION_RATIO = 0.15
MAX_REGION_RATIO = 0.85


def detect_cards(
    image: ImageInput,
    options: Optional[DetectionOptions] = None,
    logger: Optional[logging.Logger] = None
) -> List[DetectedCard]:
    """
    Find the bingo cards in a photograph.

    Resolution order: explicit card_layout, then expected_cards, then automatic
    separator detection, then the whole image as a single card.

    Args:
        image: Photograph (bytes, path or decoded array)
        options: Detection options (default: DEFAULT_DETECTION_OPTIONS)
        logger: Logger instance

    Returns:
        Detected cards in reading order

    Raises:
        InvalidImageError: If the image cannot be decoded
        LayoutConstraintError: If an explicit or expected-count layout yields
            cards outside the allowed area range
    """
    options = options or DEFAULT_DETECTION_OPTIONS
    decoded = load_image(image)
    height, width = decoded.shape[:2]

    if options.card_layout is not None:
        layout = options.card_layout
        if logger:
            logger.info(f"Splitting image by explicit layout {layout.rows}x{layout.cols}")
        cards = split_image(decoded, layout.rows, layout.cols)
        _check_area_constraints(cards, width, height, options)
        return cards

    if options.expected_cards is not None:
        layout = calculate_optimal_layout(options.expected_cards, width, height)
        if logger:
            logger.info(
                f"Splitting image into {options.expected_cards} expected cards "
                f"using layout {layout.rows}x{layout.cols}"
            )
        cards = split_image(decoded, layout.rows, layout.cols)
        _check_area_constraints(cards, width, height, options)
        return cards

    cards = _auto_detect_cards(decoded, options, logger)
    if cards:
        if logger:
            logger.info(f"Auto-detected {len(cards)} cards")
        return cards

    if logger:
        logger.info("No card separators found, treating the whole image as one card")
    return [DetectedCard(bounds=Bounds(0, 0, width, height), index=0, image=decoded.copy())]


def calculate_optimal_layout(card_count: int, width: int, height: int) -> GridSize:
    """
    Choose the rows x cols factorisation of card_count whose column/row ratio
    best matches the image aspect ratio.

    Square images prefer near-square layouts (4 -> 2x2); wide images prefer
    more columns than rows. Ties keep the layout with fewer rows.
    """
    if card_count <= 0:
        raise ValueError(f"card_count must be positive, got {card_count}")

    aspect_ratio = width / height
    best_layout = GridSize(1, card_count)
    best_score = math.inf

    for rows in range(1, card_count + 1):
        if card_count % rows:
            continue
        cols = card_count // rows
        score = abs(cols / rows - aspect_ratio)
        if score < best_score:
            best_score = score
            best_layout = GridSize(rows, cols)

    return best_layout


def split_image(image: ImageInput, rows: int, cols: int) -> List[DetectedCard]:
    """
    Partition an image into rows x cols equal rectangles.

    The rectangles tile the image exactly; index follows reading order.
    """
    layout = GridSize(rows, cols)
    decoded = load_image(image)
    height, width = decoded.shape[:2]
    xs = cut_positions(width, layout.cols)
    ys = cut_positions(height, layout.rows)

    cards = []
    for index, row, col in grid_positions(layout.rows, layout.cols):
        bounds = Bounds(
            x=xs[col],
            y=ys[row],
            width=xs[col + 1] - xs[col],
            height=ys[row + 1] - ys[row],
        )
        cards.append(DetectedCard(bounds=bounds, index=index, image=extract_card_region(decoded, bounds)))
    return cards


def extract_card_region(image: ImageInput, bounds: Bounds) -> RawImage:
    """
    Crop a region out of an image.

    Raises:
        InvalidRegionError: If bounds are empty or exceed the image dimensions
    """
    decoded = load_image(image)
    height, width = decoded.shape[:2]
    bounds.validate_within(width, height)
    return decoded[bounds.y:bounds.y + bounds.height, bounds.x:bounds.x + bounds.width].copy()


def _area_fraction(bounds: Bounds, image_width: int, image_height: int) -> float:
    return bounds.area / (image_width * image_height)


def _check_area_constraints(
    cards: Sequence[DetectedCard],
    image_width: int,
    image_height: int,
    options: DetectionOptions
) -> None:
    """Raise LayoutConstraintError for the first card outside the allowed area range."""
    for card in cards:
        fraction = _area_fraction(card.bounds, image_width, image_height)
        if not options.min_card_area_percent <= fraction <= options.max_card_area_percent:
            raise LayoutConstraintError(
                f"Card {card.index} ({card.bounds.width}x{card.bounds.height}) covers "
                f"{fraction:.4f} of the image area, outside the allowed range "
                f"{options.min_card_area_percent}-{options.max_card_area_percent}"
            )


def _auto_detect_cards(
    image: RawImage,
    options: DetectionOptions,
    logger: Optional[logging.Logger] = None
) -> List[DetectedCard]:
    """
    Split an image along detected separator lines.

    Regions outside the allowed area range are treated as noise and skipped.

    Returns:
        Detected cards, or an empty list when no usable separators exist
    """
    height, width = image.shape[:2]
    gray = PreprocessingPipeline.apply_grayscale(image, {})

    horizontal = find_separators(gray, 'horizontal')
    vertical = find_separators(gray, 'vertical')
    if not horizontal and not vertical:
        return []

    if logger:
        logger.debug(f"Separators found: horizontal={horizontal}, vertical={vertical}")

    ys = [0, *horizontal, height]
    xs = [0, *vertical, width]

    cards = []
    for _, row, col in grid_positions(len(ys) - 1, len(xs) - 1):
        bounds = Bounds(
            x=xs[col],
            y=ys[row],
            width=xs[col + 1] - xs[col],
            height=ys[row + 1] - ys[row],
        )
        fraction = _area_fraction(bounds, width, height)
        if not options.min_card_area_percent <= fraction <= options.max_card_area_percent:
            if logger:
                logger.debug(f"Skipping region {bounds} covering {fraction:.4f} of the image")
            continue
        cards.append(DetectedCard(bounds=bounds, index=len(cards), image=extract_card_region(image, bounds)))

    return cards


def find_separators(gray: np.ndarray, direction: str) -> List[int]:
    """
    Find straight separator lines from the mean-intensity profile of a grayscale image.

    A line is a candidate when a small window around it deviates from the
    profile mean by more than 1.5 standard deviations. Nearby candidates are
    merged into their centre and separators that would create regions under
    15% or over 85% of the length are dropped.

    Args:
        gray: Grayscale image
        direction: 'horizontal' (lines across rows) or 'vertical' (lines across columns)

    Returns:
        Ascending pixel positions of separators
    """
    if direction == 'horizontal':
        profile = gray.mean(axis=1)
    elif direction == 'vertical':
        profile = gray.mean(axis=0)
    else:
        raise ValueError(f"Unknown separator direction: {direction}")

    profile = profile.astype(np.float64)
    length = len(profile)
    window = max(SEPARATOR_MIN_WINDOW, int(length * SEPARATOR_WINDOW_RATIO))
    if length <= 2 * window:
        return []

    mean_intensity = profile.mean()
    std = profile.std()
    if std < 1e-6:
        return []

    kernel = np.ones(2 * window + 1) / (2 * window + 1)
    window_means = np.convolve(profile, kernel, mode='valid')
    deviating = np.nonzero(np.abs(window_means - mean_intensity) > SEPARATOR_STD_FACTOR * std)[0]
    candidates = [int(i) + window for i in deviating]

    separators = _group_centers(candidates, length)
    return _filter_separators(separators, length)


def _group_centers(positions: List[int], length: int) -> List[int]:
    """Merge positions closer than 5% of the length and return each group's centre."""
    if not positions:
        return []

    min_gap = length * SEPARATOR_GROUP_GAP_RATIO
    groups = [[positions[0]]]
    for position in positions[1:]:
        if position - groups[-1][-1] < min_gap:
            groups[-1].append(position)
        else:
            groups.append([position])

    return [int(math.floor(sum(group) / len(group) + 0.5)) for group in groups]


def _filter_separators(separators: List[int], length: int) -> List[int]:
    """Keep separators that produce regions between 15% and 85% of the length."""
    if not separators:
        return []

    min_size = length * MIN_REGION_RATIO
    max_size = length * MAX_REGION_RATIO

    kept = []
    last_position = 0
    for separator in separators:
        size = separator - last_position
        if min_size <= size <= max_size:
            kept.append(separator)
            last_position = separator

    # Drop the last separator if it leaves too small a trailing region
    if kept and length - kept[-1] < min_size:
        kept.pop()

    return kept


def annotate_cards(
    image: ImageInput,
    cards: Sequence[DetectedCard],
    results: Optional[Sequence[ScanResult]] = None,
    font_scale: float = 1.0,
    font_thickness: int = 2,
    font_color: tuple = (0, 0, 190)
) -> RawImage:
    """
    Create an annotated copy of the photograph with card bounds and labels.

    Args:
        image: Original photograph
        cards: Detected cards to outline
        results: Optional scan results (same order as cards) for confidence labels
        font_scale: Font scale for labels
        font_thickness: Font thickness for labels
        font_color: BGR color for labels

    Returns:
        Annotated image
    """
    decoded = load_image(image)

    # Convert grayscale to BGR if needed
    if decoded.ndim == 2:
        annotated = cv2.cvtColor(decoded, cv2.COLOR_GRAY2BGR)
    else:
        annotated = decoded.copy()

    # Lighten the image by blending with white for better text visibility
    white_overlay = np.full_like(annotated, 255)
    annotated = cv2.addWeighted(annotated, 0.7, white_overlay, 0.3, 0)

    font = cv2.FONT_HERSHEY_SIMPLEX
    box_color = (0, 0, 255)

    for position, card in enumerate(cards):
        b = card.bounds
        cv2.rectangle(annotated, (b.x, b.y), (b.x + b.width - 1, b.y + b.height - 1), box_color, 2)

        label = f"#{card.index}"
        if results is not None and position < len(results):
            label += f" ({results[position].confidence:.0f}%)"

        text_size = cv2.getTextSize(label, font, font_scale, font_thickness)[0]
        text_x = b.x + max(0, (b.width - text_size[0]) // 2)
        text_y = b.y + text_size[1] + 5
        cv2.putText(annotated, label, (text_x, text_y), font, font_scale, font_color, font_thickness)

    return annotated
