"""
Exception types raised by the bingo card scanning pipeline.
"""


class BingoScannerError(Exception):
    """Base class for all scanner errors."""


class InvalidImageError(BingoScannerError, ValueError):
    """Raised when an image buffer cannot be decoded or is empty."""


class InvalidRegionError(BingoScannerError, ValueError):
    """Raised when a crop region does not fit inside the image."""


class LayoutConstraintError(BingoScannerError, ValueError):
    """Raised when a requested card layout yields cards outside the allowed area range."""
