import numpy as np
import pytest

from bingo_scanner.card_detector import (
    annotate_cards,
    calculate_optimal_layout,
    detect_cards,
    extract_card_region,
    find_separators,
    split_image,
)
from bingo_scanner.exceptions import InvalidRegionError, LayoutConstraintError
from bingo_scanner.image_io import encode_image
from bingo_scanner.scan_types import Bounds, DetectionOptions, GridSize


def test_calculate_optimal_layout_matches_aspect():
    assert calculate_optimal_layout(4, 1000, 1000) == GridSize(2, 2)
    assert calculate_optimal_layout(6, 1500, 1000) == GridSize(2, 3)
    assert calculate_optimal_layout(6, 1000, 1500) == GridSize(3, 2)
    assert calculate_optimal_layout(5, 2000, 400) == GridSize(1, 5)
    assert calculate_optimal_layout(1, 640, 480) == GridSize(1, 1)


def test_calculate_optimal_layout_rejects_non_positive():
    with pytest.raises(ValueError):
        calculate_optimal_layout(0, 100, 100)


def test_split_image_reading_order(make_image):
    cards = split_image(make_image(300, 200), 2, 3)
    assert [card.index for card in cards] == list(range(6))
    assert cards[0].bounds == Bounds(0, 0, 100, 100)
    assert cards[2].bounds == Bounds(200, 0, 100, 100)
    assert cards[3].bounds == Bounds(0, 100, 100, 100)
    assert all(card.image.shape == (100, 100, 3) for card in cards)


def test_split_image_tiles_odd_sizes_exactly(make_image):
    cards = split_image(make_image(301, 201), 2, 2)
    assert sum(card.bounds.area for card in cards) == 301 * 201
    assert cards[1].bounds == Bounds(150, 0, 151, 100)
    assert cards[3].bounds == Bounds(150, 100, 151, 101)


def test_extract_card_region_returns_copy(make_image):
    image = make_image(50, 50)
    region = extract_card_region(image, Bounds(10, 10, 20, 20))
    region[:] = 0
    assert image.min() == 255


def test_extract_card_region_out_of_bounds(make_image):
    with pytest.raises(InvalidRegionError):
        extract_card_region(make_image(50, 50), Bounds(40, 40, 20, 20))
    with pytest.raises(InvalidRegionError):
        extract_card_region(make_image(50, 50), Bounds(0, 0, 0, 10))


def test_detect_cards_explicit_layout(make_image):
    options = DetectionOptions(card_layout=GridSize(2, 2))
    cards = detect_cards(make_image(200, 200), options)
    assert len(cards) == 4
    assert cards[3].bounds == Bounds(100, 100, 100, 100)


def test_detect_cards_explicit_layout_too_small(make_image):
    options = DetectionOptions(card_layout=GridSize(10, 10))
    with pytest.raises(LayoutConstraintError):
        detect_cards(make_image(100, 100), options)


def test_detect_cards_explicit_layout_too_large(make_image):
    options = DetectionOptions(card_layout=GridSize(1, 1))
    with pytest.raises(LayoutConstraintError):
        detect_cards(make_image(100, 100), options)


def test_detect_cards_expected_count(make_image):
    cards = detect_cards(make_image(300, 100), DetectionOptions(expected_cards=3))
    assert [card.bounds.x for card in cards] == [0, 100, 200]
    assert all(card.bounds.height == 100 for card in cards)


def test_detect_cards_auto_separator(two_card_image):
    cards = detect_cards(two_card_image)
    assert len(cards) == 2
    assert cards[0].bounds == Bounds(0, 0, 200, 200)
    assert cards[1].bounds == Bounds(200, 0, 200, 200)


def test_detect_cards_accepts_encoded_bytes(two_card_image):
    cards = detect_cards(encode_image(two_card_image))
    assert len(cards) == 2


def test_detect_cards_uniform_image_is_single_card(make_image):
    cards = detect_cards(make_image(320, 240))
    assert len(cards) == 1
    assert cards[0].bounds == Bounds(0, 0, 320, 240)
    assert cards[0].index == 0


def test_detect_cards_ignores_edge_line(make_image):
    image = make_image(400, 200)
    image[:, 18:23] = 0
    cards = detect_cards(image)
    assert len(cards) == 1
    assert cards[0].bounds == Bounds(0, 0, 400, 200)


def test_find_separators_horizontal():
    gray = np.full((400, 200), 255, dtype=np.uint8)
    gray[198:203, :] = 0
    assert find_separators(gray, 'horizontal') == [200]
    assert find_separators(gray, 'vertical') == []


def test_find_separators_unknown_direction():
    with pytest.raises(ValueError):
        find_separators(np.zeros((10, 10), dtype=np.uint8), 'diagonal')


def test_annotate_cards_keeps_original(two_card_image):
    cards = detect_cards(two_card_image)
    annotated = annotate_cards(two_card_image, cards)
    assert annotated.shape == two_card_image.shape
    assert not np.array_equal(annotated, two_card_image)
    assert two_card_image[0, 0].tolist() == [255, 255, 255]


def test_annotate_cards_grayscale_input():
    gray = np.full((100, 100), 200, dtype=np.uint8)
    cards = split_image(gray, 1, 2)
    annotated = annotate_cards(gray, cards)
    assert annotated.shape == (100, 100, 3)


def test_calculate_optimal_layout_compares_grid_shape_to_image_shape():
    # cols/rows is matched against width/height: 6 cards in a 4:1 photo sit in one row
    assert calculate_optimal_layout(6, 400, 100) == GridSize(1, 6)


def test_detect_cards_explicit_layout_bounds(make_image):
    cards = detect_cards(make_image(400, 200), DetectionOptions(card_layout=GridSize(1, 2)))
    assert [card.bounds for card in cards] == [Bounds(0, 0, 200, 200), Bounds(200, 0, 200, 200)]


def test_detect_cards_explicit_layout_below_min_area(make_image):
    options = DetectionOptions(card_layout=GridSize(2, 2), min_card_area_percent=0.5)
    with pytest.raises(LayoutConstraintError):
        detect_cards(make_image(100, 100), options)


@pytest.mark.parametrize('count, width, height', [(4, 301, 199), (6, 640, 480), (3, 100, 301)])
def test_detect_cards_expected_count_tiles_image(make_image, count, width, height):
    cards = detect_cards(make_image(width, height), DetectionOptions(expected_cards=count))
    assert [card.index for card in cards] == list(range(count))
    assert sum(card.bounds.area for card in cards) == width * height
