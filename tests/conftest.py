import cv2
import numpy as np
import pytest

from bingo_scanner.ocr_engines import OCREngine
from bingo_scanner.scan_types import OCRText


class FakeEngine(OCREngine):
    """Scripted OCR engine that records its lifecycle calls."""

    def __init__(self, responses=None, default=OCRText('7', 95.0), fail_on_recognize=False):
        super().__init__()
        self.responses = list(responses or [])
        self.default = default
        self.fail_on_recognize = fail_on_recognize
        self.initialize_calls = 0
        self.terminate_calls = 0
        self.recognize_calls = 0
        self._ready = False

    @property
    def name(self):
        return 'fake'

    @property
    def is_initialized(self):
        return self._ready

    def initialize(self, language):
        self.initialize_calls += 1
        self.language = language
        self._ready = True

    def recognize(self, image):
        self._require_initialized()
        self.recognize_calls += 1
        if self.fail_on_recognize:
            raise RuntimeError("fake engine exploded")
        if self.responses:
            return self.responses.pop(0)
        return self.default

    def terminate(self):
        self.terminate_calls += 1
        self._ready = False


def standard_card_responses(confidence=90.0):
    """25 responses in reading order, each number inside its B-I-N-G-O column."""
    responses = []
    for row in range(5):
        for col in range(5):
            if (row, col) == (2, 2):
                responses.append(OCRText('FREE', confidence))
            else:
                responses.append(OCRText(str(col * 15 + row + 1), confidence))
    return responses


def standard_card_numbers():
    numbers = [col * 15 + row + 1 for row in range(5) for col in range(5)]
    numbers[12] = None
    return numbers


@pytest.fixture
def make_image():
    """Factory for uniform BGR images of a given size and gray level."""
    def _make(width, height, value=255):
        return np.full((height, width, 3), value, dtype=np.uint8)
    return _make


@pytest.fixture
def two_card_image(make_image):
    """400x200 white photo split by a dark vertical line at x=200."""
    image = make_image(400, 200)
    image[:, 198:203] = 0
    return image


@pytest.fixture
def png_bytes(make_image):
    image = make_image(60, 40, 128)
    cv2.rectangle(image, (10, 10), (30, 30), (0, 0, 255), -1)
    success, buffer = cv2.imencode('.png', image)
    assert success
    return buffer.tobytes()


@pytest.fixture
def fake_engine():
    return FakeEngine()
