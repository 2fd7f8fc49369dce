import argparse
import logging
from pathlib import Path
from typing import Optional

import pandas as pd


CELLS_CSV_PATTERN = "*_cells.csv"


def merge_predictions_csvs(
    predictions_dir: str,
    merged_csv_path: str,
    logger: Optional[logging.Logger] = None
) -> int:
    """
    Takes in a folder of per-image cell csv files, an output of the scanning CLI, and merges them into one.

    Returns:
        Number of rows in the merged csv

    Raises:
        FileNotFoundError: If the folder holds no cell csv files
    """
    predictions_dir = Path(predictions_dir)
    csv_files = sorted(predictions_dir.glob(CELLS_CSV_PATTERN))
    if not csv_files:
        raise FileNotFoundError(f"No {CELLS_CSV_PATTERN} files found in {predictions_dir}")

    try:
        df_list = [pd.read_csv(file) for file in csv_files]
        merged_df = pd.concat(df_list, ignore_index=True)
        Path(merged_csv_path).parent.mkdir(parents=True, exist_ok=True)
        merged_df.to_csv(merged_csv_path, index=False)
    except Exception as e:
        if logger:
            logger.exception(e)
        raise

    if logger:
        logger.info(f"Written {len(merged_df)} merged cell rows from {len(csv_files)} files to: {merged_csv_path}")

    return len(merged_df)


def main():
    """Main entry point for command-line execution"""
    parser = argparse.ArgumentParser(
        description="Merge per-image cell CSV files into a single CSV file"
    )
    parser.add_argument(
        "--predictions_dir",
        type=str,
        default="output/cells",
        help="Directory containing cell CSV files (default: output/cells)"
    )
    parser.add_argument(
        "--merged_csv_path",
        type=str,
        default="analysis/all_cells.csv",
        help="Output path for the merged CSV file (default: analysis/all_cells.csv)"
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    merge_predictions_csvs(args.predictions_dir, args.merged_csv_path, logging.getLogger(__name__))


if __name__ == "__main__":
    main()
