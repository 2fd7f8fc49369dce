"""
Image preprocessing module for the card scanning pipeline.
Handles grayscale normalization, resizing and per-cell cropping before OCR.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from bingo_scanner.exceptions import InvalidRegionError
from bingo_scanner.grid import grid_positions
from bingo_scanner.image_io import load_image
from bingo_scanner.scan_types import Bounds, CellImage, GridSize, ImageInput, RawImage


# Grayscale, stretch contrast, sharpen edges, then boost contrast for clearer digits
DEFAULT_CHAIN: List[Dict[str, Any]] = [
    {'method': 'grayscale'},
    {'method': 'normalize'},
    {'method': 'sharpen', 'parameters': {'sigma': 1.5, 'amount': 1.0}},
    {'method': 'contrast', 'parameters': {'alpha': 1.2, 'beta': -30}},
]

# Fraction of the smaller cell side trimmed from every edge to keep grid lines out of OCR
CELL_PADDING_RATIO = 0.05


class PreprocessingPipeline:
    """Applies a chain of preprocessing methods to an image."""

    # Mapping of method names to their handler functions
    METHOD_HANDLERS = {
        'grayscale': 'apply_grayscale',
        'normalize': 'apply_normalize',
        'sharpen': 'apply_sharpen',
        'contrast': 'apply_contrast',
        'gaussian_blur': 'apply_gaussian_blur',
        'median_blur': 'apply_median_blur',
        'threshold': 'apply_threshold',
        'adaptive_threshold': 'apply_adaptive_threshold',
        'inversion': 'apply_inversion',
        'downscale': 'apply_downscale',
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize preprocessing pipeline.

        Args:
            logger: Logger instance
        """
        self.logger = logger

    def apply_chain(
        self,
        image: np.ndarray,
        methods: List[Dict[str, Any]]
    ) -> Tuple[np.ndarray, List[str]]:
        """
        Apply a chain of preprocessing methods to an image.

        Args:
            image: Input image as numpy array
            methods: List of preprocessing method dicts with 'method' and 'parameters' keys

        Returns:
            Tuple of (processed_image, applied_methods_list)

        Raises:
            ValueError: If method is not recognized
            Exception: If preprocessing fails
        """
        result_image = image.copy()
        applied_methods = []

        try:
            for method_config in methods:
                method_name = method_config.get('method')
                parameters = method_config.get('parameters', {}) or {}

                if method_name not in self.METHOD_HANDLERS:
                    raise ValueError(f"Unknown preprocessing method: {method_name}")

                handler = getattr(self, self.METHOD_HANDLERS[method_name])
                result_image = handler(result_image, parameters)
                applied_methods.append(f"{method_name}({parameters})")

            if self.logger:
                self.logger.debug(f"Applied preprocessing chain with {len(methods)} methods")

            return result_image, applied_methods

        except Exception as e:
            if self.logger:
                self.logger.error(f"Preprocessing failed: {e}")
            raise

    # Preprocessing methods
    @staticmethod
    def apply_grayscale(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Convert image to grayscale."""
        if image.ndim == 3:
            if image.shape[2] == 4:
                return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        return image

    @staticmethod
    def apply_normalize(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Stretch intensities to the full 0-255 range."""
        if image.min() == image.max():
            return image
        return cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)

    @staticmethod
    def apply_sharpen(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Sharpen edges with an unsharp mask."""
        sigma = parameters.get('sigma', 1.5)
        amount = parameters.get('amount', 1.0)
        blurred = cv2.GaussianBlur(image, (0, 0), sigma)
        return cv2.addWeighted(image, 1 + amount, blurred, -amount, 0)

    @staticmethod
    def apply_contrast(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Linear contrast adjustment (alpha * x + beta), clipped to 0-255."""
        alpha = parameters.get('alpha', 1.0)
        beta = parameters.get('beta', 0)
        adjusted = image.astype(np.float32) * alpha + beta
        return np.clip(adjusted, 0, 255).astype(np.uint8)

    @staticmethod
    def apply_gaussian_blur(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Apply Gaussian blur."""
        kernel = tuple(parameters.get('kernel', (5, 5)))
        sigmaX = parameters.get('sigmaX', 0)
        return cv2.GaussianBlur(image, kernel, sigmaX)

    @staticmethod
    def apply_median_blur(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Apply median blur."""
        ksize = parameters.get('ksize', 3)
        if ksize % 2 == 0:
            ksize += 1
        return cv2.medianBlur(image, ksize)

    @staticmethod
    def apply_threshold(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Apply binary threshold."""
        threshold = parameters.get('threshold', 127)
        max_value = parameters.get('max_value', 255)
        _, result = cv2.threshold(image, threshold, max_value, cv2.THRESH_BINARY)
        return result

    @staticmethod
    def apply_adaptive_threshold(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Apply adaptive threshold (expects a grayscale image)."""
        max_value = parameters.get('max_value', 255)
        block_size = parameters.get('block_size', 11)
        C = parameters.get('C', 2)
        # Ensure block_size is odd
        if block_size % 2 == 0:
            block_size += 1
        return cv2.adaptiveThreshold(
            image,
            max_value,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            block_size,
            C
        )

    @staticmethod
    def apply_inversion(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Invert image colors."""
        return cv2.bitwise_not(image)

    @staticmethod
    def apply_downscale(image: np.ndarray, parameters: Dict[str, Any]) -> np.ndarray:
        """Resize to a target width, keeping aspect ratio, with LANCZOS resampling."""
        width = parameters.get('width')
        if width is None:
            raise ValueError("Downscale requires a 'width' parameter")
        return resize_image(image, width)


def preprocess_image(
    image: ImageInput,
    methods: Optional[List[Dict[str, Any]]] = None,
    logger: Optional[logging.Logger] = None
) -> RawImage:
    """
    Prepare a card image for OCR: grayscale plus contrast enhancement.

    Args:
        image: Card image (bytes, path or decoded array)
        methods: Preprocessing chain to apply (default: DEFAULT_CHAIN)
        logger: Logger instance

    Returns:
        Preprocessed grayscale image

    Raises:
        InvalidImageError: If the input cannot be decoded
    """
    decoded = load_image(image)
    processed, _ = PreprocessingPipeline(logger).apply_chain(
        decoded, DEFAULT_CHAIN if methods is None else methods
    )
    return processed


def get_image_dimensions(image: ImageInput) -> Tuple[int, int]:
    """Return (width, height) of an image."""
    decoded = load_image(image)
    height, width = decoded.shape[:2]
    return width, height


def resize_image(image: ImageInput, target_width: int) -> RawImage:
    """
    Scale an image to target_width, preserving aspect ratio.

    Args:
        image: Image to resize
        target_width: Width of the output in pixels

    Returns:
        Resized image, height = round(target_width * height / width)
    """
    if target_width <= 0:
        raise ValueError(f"target_width must be positive, got {target_width}")

    decoded = load_image(image)
    height, width = decoded.shape[:2]
    target_height = max(1, int(round(target_width * height / width)))

    # PIL resamples channels independently so BGR order survives the round trip
    pil_image = Image.fromarray(decoded)
    resized = pil_image.resize((target_width, target_height), Image.LANCZOS)
    return np.array(resized)


def _cell_bounds(
    image_width: int,
    image_height: int,
    row: int,
    col: int,
    grid_size: GridSize
) -> Bounds:
    """Pixel rectangle of a cell, shrunk by interior padding and clamped to the image."""
    cell_width = image_width // grid_size.cols
    cell_height = image_height // grid_size.rows
    if cell_width == 0 or cell_height == 0:
        raise InvalidRegionError(
            f"Image {image_width}x{image_height} is too small for a "
            f"{grid_size.rows}x{grid_size.cols} grid"
        )

    padding = min(cell_width, cell_height) * CELL_PADDING_RATIO
    left = max(0, math.floor(col * cell_width + padding))
    top = max(0, math.floor(row * cell_height + padding))
    width = math.floor(cell_width - padding * 2)
    height = math.floor(cell_height - padding * 2)

    return Bounds(
        x=left,
        y=top,
        width=max(1, min(width, image_width - left)),
        height=max(1, min(height, image_height - top)),
    )


def extract_cell(
    image: ImageInput,
    row: int,
    col: int,
    grid_size: GridSize
) -> RawImage:
    """
    Crop the cell at (row, col) out of a card image.

    Args:
        image: The full card image
        row: Row index (0-based)
        col: Column index (0-based)
        grid_size: Size of the grid

    Returns:
        Cropped cell image

    Raises:
        InvalidImageError: If the input cannot be decoded
        InvalidRegionError: If (row, col) is outside the grid
    """
    decoded = load_image(image)
    if not (0 <= row < grid_size.rows and 0 <= col < grid_size.cols):
        raise InvalidRegionError(
            f"Cell ({row}, {col}) is outside a {grid_size.rows}x{grid_size.cols} grid"
        )

    height, width = decoded.shape[:2]
    bounds = _cell_bounds(width, height, row, col, grid_size)
    return decoded[bounds.y:bounds.y + bounds.height, bounds.x:bounds.x + bounds.width]


def extract_all_cells(
    image: ImageInput,
    grid_size: GridSize,
    enhance: bool = True,
    logger: Optional[logging.Logger] = None
) -> List[CellImage]:
    """
    Crop every cell of a card image in row-major order.

    Args:
        image: The full card image
        grid_size: Size of the grid
        enhance: Run each cell through DEFAULT_CHAIN after cropping
        logger: Logger instance

    Returns:
        rows * cols CellImage entries, row ascending then column ascending
    """
    decoded = load_image(image)
    height, width = decoded.shape[:2]
    pipeline = PreprocessingPipeline(logger)

    cells = []
    for _, row, col in grid_positions(grid_size.rows, grid_size.cols):
        bounds = _cell_bounds(width, height, row, col, grid_size)
        cell = decoded[bounds.y:bounds.y + bounds.height, bounds.x:bounds.x + bounds.width]
        if enhance:
            cell, _ = pipeline.apply_chain(cell, DEFAULT_CHAIN)
        cells.append(CellImage(image=cell, row=row, col=col))

    if logger:
        logger.debug(f"Extracted {len(cells)} cells from {width}x{height} image")

    return cells
