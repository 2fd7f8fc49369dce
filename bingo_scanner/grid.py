"""
Row-major (reading order) grid helpers shared by card splitting and cell extraction.
"""

from typing import List, Tuple


def grid_positions(rows: int, cols: int) -> List[Tuple[int, int, int]]:
    """
    Enumerate grid positions in reading order.

    Args:
        rows: Number of rows
        cols: Number of columns

    Returns:
        List of (index, row, col) tuples, row 0 left to right, then row 1, etc.
    """
    return [(row * cols + col, row, col) for row in range(rows) for col in range(cols)]


def cut_positions(length: int, parts: int) -> List[int]:
    """
    Boundaries that split a length into equal integer parts with no gaps.

    Args:
        length: Total length in pixels
        parts: Number of parts

    Returns:
        parts + 1 ascending boundaries starting at 0 and ending at length
    """
    return [i * length // parts for i in range(parts + 1)]
