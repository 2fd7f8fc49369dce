import json
import logging

import numpy as np
import pandas as pd
import pytest

from bingo_scanner.merge_predictions import merge_predictions_csvs
from bingo_scanner.scan_types import (
    Bounds,
    CellPosition,
    CellResult,
    DetectedCard,
    MultiCardScanResult,
    ScanResult,
)
from bingo_scanner.utils import (
    CELL_CSV_FIELDS,
    cell_rows,
    load_json,
    save_cells_csv,
    save_scan_result,
    setup_logger,
)


def _card_result(numbers, confidence=88.456):
    cells = [
        CellResult(
            number=number,
            is_free_space=number is None,
            confidence=confidence,
            raw_text='FREE' if number is None else str(number),
            position=CellPosition(i // 2, i % 2),
        )
        for i, number in enumerate(numbers)
    ]
    return ScanResult(
        numbers=list(numbers),
        grid=[list(numbers[:2]), list(numbers[2:])],
        cells=cells,
        confidence=confidence,
        is_complete=True,
        unreadable_cells=[],
        processing_time=3.0,
    )


def _two_card_result():
    blank = np.zeros((10, 10, 3), dtype=np.uint8)
    card_results = [_card_result([3, 17, None, 40]), _card_result([9, 22, 35, None])]
    return MultiCardScanResult(
        card_count=2,
        cards=[r.numbers for r in card_results],
        card_results=card_results,
        detected_cards=[
            DetectedCard(Bounds(0, 0, 10, 10), 0, blank),
            DetectedCard(Bounds(10, 0, 10, 10), 1, blank),
        ],
        confidence=88.456,
        processing_time=12.5,
    )


def test_save_scan_result_writes_tagged_result(tmp_path):
    path = tmp_path / 'results' / 'cartón_result.json'
    result = _two_card_result()

    save_scan_result(str(path), result, 'photos/cartón.png', 'abcd1234')

    saved = load_json(str(path))
    assert saved['image'] == 'photos/cartón.png'
    assert saved['run_id'] == 'abcd1234'
    assert saved['cards'] == [[3, 17, None, 40], [9, 22, 35, None]]
    assert saved['detected_cards'][1]['bounds'] == {'x': 10, 'y': 0, 'width': 10, 'height': 10}
    assert {k: v for k, v in saved.items() if k not in ('image', 'run_id')} == json.loads(json.dumps(result.to_dict()))
    assert 'cartón' in path.read_text(encoding='utf-8')


def test_load_json_invalid(tmp_path):
    path = tmp_path / 'broken.json'
    path.write_text('{not json', encoding='utf-8')
    with pytest.raises(IOError):
        load_json(str(path))


def test_cell_rows_flattens_cards_in_order():
    rows = cell_rows(_two_card_result(), 'sheet.png', 'run1')

    assert len(rows) == 8
    assert [row['card'] for row in rows] == [0] * 4 + [1] * 4
    assert rows[2] == {
        'image': 'sheet.png', 'run_id': 'run1', 'card': 0, 'row': 1, 'col': 0,
        'number': '', 'is_free_space': True, 'confidence': 88.46, 'raw_text': 'FREE',
    }
    assert rows[5]['number'] == 22


def test_save_cells_csv(tmp_path):
    path = tmp_path / 'cells' / 'sheet_run1_cells.csv'

    count = save_cells_csv(str(path), _two_card_result(), 'sheet.png', 'run1')

    cells = pd.read_csv(path)
    assert count == 8
    assert list(cells.columns) == CELL_CSV_FIELDS
    assert cells['number'].isna().sum() == 2
    assert cells['is_free_space'].sum() == 2


def test_merge_predictions_csvs(tmp_path):
    cells_dir = tmp_path / 'cells'
    result = _two_card_result()
    save_cells_csv(str(cells_dir / 'a_1234_cells.csv'), result, 'a.png', '1234')
    save_cells_csv(str(cells_dir / 'b_5678_cells.csv'), result, 'b.png', '5678')
    (cells_dir / 'notes.csv').write_text('ignored\n1\n', encoding='utf-8')

    merged_path = tmp_path / 'analysis' / 'merged.csv'
    count = merge_predictions_csvs(str(cells_dir), str(merged_path))

    merged = pd.read_csv(merged_path)
    assert count == 16
    assert list(merged.columns) == CELL_CSV_FIELDS
    assert merged['image'].tolist() == ['a.png'] * 8 + ['b.png'] * 8


def test_merge_predictions_csvs_empty_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        merge_predictions_csvs(str(tmp_path), str(tmp_path / 'merged.csv'))


def test_setup_logger(tmp_path):
    logger = setup_logger('bingo_test', str(tmp_path / 'logs'), debug=False)
    try:
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 2
        logger.info('hello')
        log_files = list((tmp_path / 'logs').glob('bingo_test_*.log'))
        assert len(log_files) == 1

        # A second setup replaces handlers rather than stacking them
        logger = setup_logger(
            'bingo_test', str(tmp_path / 'logs'), console_output=False
        )
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()


def test_setup_logger_console_level_override(tmp_path):
    logger = setup_logger('bingo_quiet', str(tmp_path / 'logs'), console_level=logging.WARNING)
    try:
        levels = sorted(handler.level for handler in logger.handlers)
        assert levels == [logging.DEBUG, logging.WARNING]
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
