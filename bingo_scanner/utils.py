"""
Logging setup and scan result export.
"""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from bingo_scanner.scan_types import MultiCardScanResult


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# One row per cell per card in the exported cell CSVs
CELL_CSV_FIELDS = [
    'image', 'run_id', 'card', 'row', 'col',
    'number', 'is_free_space', 'confidence', 'raw_text',
]


def setup_logger(
    name: str,
    log_dir: str,
    debug: bool = True,
    console_output: bool = True,
    console_level: Optional[int] = None
) -> logging.Logger:
    """
    Configure a scan logger writing to a timestamped file under log_dir and to the console.

    Calling it again for the same name replaces the previous handlers.

    Args:
        name: Logger name, also the log file prefix
        log_dir: Directory for log files (created if missing)
        debug: Log per-cell decisions at DEBUG; INFO otherwise
        console_output: Also log to stderr
        console_level: Console level override (e.g. WARNING for quiet batch runs)

    Returns:
        Configured logger instance
    """
    level = logging.DEBUG if debug else logging.INFO
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    handlers: List[logging.Handler] = [
        logging.FileHandler(log_path / f'{name}_{datetime.now():%Y%m%d_%H%M%S}.log', encoding='utf-8')
    ]
    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level if console_level is not None else level)
        handlers.append(console_handler)

    for handler in handlers:
        if handler.level == logging.NOTSET:
            handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def cell_rows(result: MultiCardScanResult, image_name: str, run_id: str) -> List[Dict[str, Any]]:
    """Flatten a multi-card result into CELL_CSV_FIELDS rows, cards then cells in reading order."""
    rows = []
    for card, card_result in zip(result.detected_cards, result.card_results):
        for cell in card_result.cells:
            rows.append({
                'image': image_name,
                'run_id': run_id,
                'card': card.index,
                'row': cell.position.row,
                'col': cell.position.col,
                'number': '' if cell.number is None else cell.number,
                'is_free_space': cell.is_free_space,
                'confidence': round(cell.confidence, 2),
                'raw_text': cell.raw_text,
            })
    return rows


def save_cells_csv(
    filepath: str,
    result: MultiCardScanResult,
    image_name: str,
    run_id: str,
    logger: Optional[logging.Logger] = None
) -> int:
    """
    Write every cell of every card in a scan to a CSV file.

    Returns:
        Number of rows written

    Raises:
        IOError: If file writing fails
    """
    rows = cell_rows(result, image_name, run_id)
    try:
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CELL_CSV_FIELDS)
            writer.writeheader()
            writer.writerows(rows)
    except OSError as e:
        raise IOError(f"Failed to save cells CSV to {filepath}: {e}")

    if logger:
        logger.info(f"Saved {len(rows)} cell rows to {filepath}")
    return len(rows)


def save_scan_result(
    filepath: str,
    result: MultiCardScanResult,
    image_path: str,
    run_id: str,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Write a scan result as JSON, tagged with its source image and run ID.

    Raises:
        IOError: If file writing fails
    """
    payload = {'image': image_path, 'run_id': run_id, **result.to_dict()}
    try:
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as jsonfile:
            json.dump(payload, jsonfile, indent=2, ensure_ascii=False)
    except OSError as e:
        raise IOError(f"Failed to save scan result to {filepath}: {e}")

    if logger:
        logger.info(f"Saved {result.card_count}-card result to {filepath}")


def load_json(filepath: str, logger: Optional[logging.Logger] = None) -> Dict[str, Any]:
    """
    Read a JSON document (pipeline config or saved scan result).

    Raises:
        IOError: If the file cannot be read or is not valid JSON
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as jsonfile:
            data = json.load(jsonfile)
    except (OSError, json.JSONDecodeError) as e:
        raise IOError(f"Failed to load JSON from {filepath}: {e}")

    if logger:
        logger.debug(f"Loaded JSON from {filepath}")
    return data
