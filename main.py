#!/usr/bin/env python3
"""
Main entry point for the Bingo Card Scanner OCR Pipeline.
Supports both CLI and programmatic usage.
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
import uuid
from pathlib import Path
from typing import Dict

from bingo_scanner.card_detector import annotate_cards
from bingo_scanner.config_manager import ConfigManager
from bingo_scanner.image_io import load_image, save_image
from bingo_scanner.merge_predictions import merge_predictions_csvs
from bingo_scanner.scan_types import DetectionOptions, GridSize, MultiCardScanResult
from bingo_scanner.scanner import BingoScanner
from bingo_scanner.utils import save_cells_csv, save_scan_result, setup_logger


IMAGE_PATTERNS = ('*.png', '*.jpg', '*.jpeg', '*.heic')

MERGED_CSV_NAME = 'all_cells_merged.csv'


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Bingo Card Scanner OCR Pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan every card in one photograph with the default config
  python main.py --image photos/cards.png

  # Photograph holding a 2x3 sheet of cards
  python main.py --image photos/sheet.jpg --layout 2x3

  # Process all images in a directory with debug logging
  python main.py --image-dir photos/ --config my_config.json --debug
        """
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        '--image',
        type=str,
        help='Path to a single image to process'
    )
    source.add_argument(
        '--image-dir',
        type=str,
        help='Path to directory containing images to process'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to configuration file (default: packaged configs/default.json)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--layout',
        type=GridSize.parse,
        help='Card layout in the photograph as ROWSxCOLS (e.g. 2x3)'
    )
    parser.add_argument(
        '--expected-cards',
        type=int,
        help='Number of cards in the photograph; the layout is inferred'
    )
    parser.add_argument(
        '--grid',
        type=GridSize.parse,
        help='Cell grid of each card as ROWSxCOLS (default: from config)'
    )
    parser.add_argument(
        '--no-free-space',
        action='store_true',
        help='Cards have no FREE centre cell'
    )

    args = parser.parse_args(argv)

    if args.config and not Path(args.config).exists():
        parser.error(f'Config file not found: {args.config}')

    try:
        config_manager = ConfigManager(args.config)
        output_paths = config_manager.get_output_paths()
        logger = setup_logger('bingo_scanner', output_paths['logs'], debug=args.debug)
        config_manager.logger = logger
        scanner = build_scanner(config_manager, args, logger)
        detection_options = build_detection_options(config_manager, args)
    except Exception as e:
        print(f"Failed to initialize scanner: {e}", file=sys.stderr)
        return 1

    try:
        if args.image:
            asyncio.run(process_single_image(scanner, args.image, detection_options, output_paths, logger))
        else:
            asyncio.run(process_image_directory(scanner, args.image_dir, detection_options, output_paths, logger))
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        return 1

    return 0


def build_scanner(config_manager: ConfigManager, args: argparse.Namespace, logger: logging.Logger) -> BingoScanner:
    """Create a scanner from config, with CLI overrides applied."""
    options = config_manager.get_scanner_options()
    if args.grid:
        options = dataclasses.replace(options, grid_size=args.grid)
    if args.no_free_space:
        options = dataclasses.replace(options, has_free_space=False)

    return BingoScanner(
        options,
        engine_config=config_manager.get_engine_config(options.engine),
        preprocessing_chain=config_manager.get_preprocessing_chain(),
        logger=logger
    )


def build_detection_options(config_manager: ConfigManager, args: argparse.Namespace) -> DetectionOptions:
    """Detection options from config, with CLI overrides applied."""
    detection_options = config_manager.get_detection_options()
    if args.layout:
        detection_options = dataclasses.replace(detection_options, card_layout=args.layout)
    if args.expected_cards is not None:
        detection_options = dataclasses.replace(detection_options, expected_cards=args.expected_cards)
    return detection_options


async def scan_and_save(
    scanner: BingoScanner,
    image_path: Path,
    detection_options: DetectionOptions,
    output_paths: Dict[str, str],
    logger: logging.Logger
) -> MultiCardScanResult:
    """
    Scan one photograph and write its result JSON, cell CSV and annotated image.

    Raises:
        InvalidImageError: If the image cannot be decoded
        LayoutConstraintError: If the requested layout is rejected
        IOError: If any output cannot be written
    """
    run_id = uuid.uuid4().hex[:8]
    prefix = f"{image_path.stem}_{run_id}"
    logger.info(f"Run ID: {run_id}")

    image = load_image(image_path)
    result = await scanner.scan_multiple_from_image(image, detection_options)

    save_scan_result(
        str(Path(output_paths['results']) / f"{prefix}_result.json"),
        result, str(image_path), run_id, logger
    )
    save_cells_csv(
        str(Path(output_paths['cells']) / f"{prefix}_cells.csv"),
        result, image_path.name, run_id, logger
    )
    annotated = annotate_cards(image, result.detected_cards, result.card_results)
    save_image(annotated, str(Path(output_paths['annotated']) / f"{prefix}_annotated.jpg"), logger)

    logger.info(
        f"Found {result.card_count} card(s), confidence {result.confidence:.1f}, "
        f"{result.processing_time:.0f}ms"
    )
    return result


async def process_single_image(
    scanner: BingoScanner,
    image_path: str,
    detection_options: DetectionOptions,
    output_paths: Dict[str, str],
    logger: logging.Logger
) -> None:
    """
    Process a single image.

    Raises:
        FileNotFoundError: If image file not found
        Exception: If processing fails
    """
    if not Path(image_path).exists():
        raise FileNotFoundError(f"Image not found: {image_path}")
    logger.info(f"Processing single image: {image_path}")

    await scanner.initialize()
    try:
        await scan_and_save(scanner, Path(image_path), detection_options, output_paths, logger)
    finally:
        await scanner.terminate()

    logger.info(f"Results saved to {output_paths['results']}/")


async def process_image_directory(
    scanner: BingoScanner,
    image_dir: str,
    detection_options: DetectionOptions,
    output_paths: Dict[str, str],
    logger: logging.Logger
) -> None:
    """
    Process all images in a directory, then merge their cell CSVs.

    Raises:
        NotADirectoryError: If directory not found
        Exception: If processing fails (stops on first error)
    """
    image_dir_path = Path(image_dir)

    if not image_dir_path.is_dir():
        raise NotADirectoryError(f"Directory not found: {image_dir}")

    image_files = sorted({path for pattern in IMAGE_PATTERNS for path in image_dir_path.glob(pattern)})

    if not image_files:
        logger.warning(f"No images found in {image_dir}")
        return

    logger.info(f"Found {len(image_files)} images to process")

    await scanner.initialize()
    try:
        for i, image_path in enumerate(image_files, 1):
            try:
                logger.info(f"[{i}/{len(image_files)}] Processing: {image_path.name}")
                await scan_and_save(scanner, image_path, detection_options, output_paths, logger)
            except Exception as e:
                logger.error(f"Processing failed for {image_path.name}: {e}")
                raise
    finally:
        await scanner.terminate()

    merge_predictions_csvs(
        output_paths['cells'],
        str(Path(output_paths['results']) / MERGED_CSV_NAME),
        logger
    )


if __name__ == '__main__':
    sys.exit(main())
