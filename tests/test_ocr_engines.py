import sys
import types

import numpy as np
import pytest
import pytesseract

from bingo_scanner.ocr_engines import (
    EasyOCREngine,
    PaddleOCREngine,
    TesseractEngine,
    create_engine,
)
from bingo_scanner.scan_types import OCRText


@pytest.fixture
def cell():
    return np.full((20, 20), 255, dtype=np.uint8)


@pytest.fixture
def fake_tesseract(monkeypatch):
    """Replace the tesseract binary calls and record image_to_data configs."""
    calls = []
    data = {'text': ['', '4', '2'], 'conf': [-1, 90, '80']}

    def image_to_data(image, lang=None, config='', output_type=None):
        calls.append({'lang': lang, 'config': config})
        return data

    monkeypatch.setattr(pytesseract, 'get_tesseract_version', lambda: '5.3.0')
    monkeypatch.setattr(pytesseract, 'image_to_data', image_to_data)
    monkeypatch.setattr(pytesseract.pytesseract, 'tesseract_cmd', 'tesseract')
    return types.SimpleNamespace(calls=calls, data=data)


def test_create_engine_by_name():
    assert isinstance(create_engine('tesseract'), TesseractEngine)
    assert isinstance(create_engine('easyocr'), EasyOCREngine)
    assert isinstance(create_engine('paddleocr'), PaddleOCREngine)


def test_create_engine_unsupported():
    with pytest.raises(ValueError, match='Unsupported engine'):
        create_engine('abbyy')


def test_recognize_before_initialize(cell):
    with pytest.raises(RuntimeError):
        TesseractEngine().recognize(cell)


def test_tesseract_recognize(fake_tesseract, cell):
    engine = TesseractEngine()
    engine.initialize('eng')
    engine.set_parameters(char_whitelist='0123456789', page_segmentation_mode=7)

    result = engine.recognize(cell)

    assert result == OCRText('4 2', 85.0)
    assert fake_tesseract.calls == [
        {'lang': 'eng', 'config': '--psm 7 -c tessedit_char_whitelist=0123456789'}
    ]


def test_tesseract_recognize_nothing_found(fake_tesseract, cell):
    fake_tesseract.data['text'] = ['', ' ']
    fake_tesseract.data['conf'] = [-1, -1]
    engine = TesseractEngine()
    engine.initialize('eng')
    assert engine.recognize(cell) == OCRText('', 0.0)


def test_tesseract_psm_from_engine_config(fake_tesseract, cell):
    engine = TesseractEngine({'psm': 10})
    engine.initialize('eng')
    engine.recognize(cell)
    assert fake_tesseract.calls[0]['config'] == '--psm 10'


def test_tesseract_cmd_from_engine_config(fake_tesseract):
    engine = TesseractEngine({'tesseract_cmd': '/opt/tesseract/bin/tesseract'})
    engine.initialize('eng')
    assert pytesseract.pytesseract.tesseract_cmd == '/opt/tesseract/bin/tesseract'


def test_tesseract_initialize_failure(monkeypatch):
    def missing():
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, 'get_tesseract_version', missing)
    engine = TesseractEngine()
    with pytest.raises(RuntimeError, match='Failed to initialize tesseract'):
        engine.initialize('eng')
    assert not engine.is_initialized


def test_tesseract_terminate(fake_tesseract):
    engine = TesseractEngine()
    engine.initialize('eng')
    engine.terminate()
    assert not engine.is_initialized
    engine.terminate()


def test_easyocr_engine(monkeypatch, cell):
    created = {}

    class FakeReader:
        def __init__(self, languages, gpu=False, verbose=True):
            created['languages'] = languages
            created['gpu'] = gpu

        def readtext(self, image, allowlist=None, detail=1):
            created['allowlist'] = allowlist
            return [([[0, 0], [1, 0], [1, 1], [0, 1]], '12', 0.9)]

    monkeypatch.setitem(sys.modules, 'easyocr', types.SimpleNamespace(Reader=FakeReader))

    engine = EasyOCREngine()
    engine.initialize('spa')
    engine.set_parameters(char_whitelist='0123456789')
    result = engine.recognize(cell)

    assert created == {'languages': ['es'], 'gpu': False, 'allowlist': '0123456789'}
    assert result.text == '12'
    assert result.confidence == pytest.approx(90.0)

    engine.terminate()
    assert not engine.is_initialized


def test_paddleocr_engine_expands_grayscale(monkeypatch, cell):
    seen = {}

    class FakePaddle:
        def __init__(self, use_angle_cls=False, lang='en'):
            seen['lang'] = lang

        def ocr(self, image):
            seen['ndim'] = image.ndim
            return [[[[[0, 0], [1, 0], [1, 1], [0, 1]], ('7', 0.5)]]]

    monkeypatch.setitem(sys.modules, 'paddleocr', types.SimpleNamespace(PaddleOCR=FakePaddle))

    engine = PaddleOCREngine()
    engine.initialize('eng')
    result = engine.recognize(cell)

    assert seen == {'lang': 'en', 'ndim': 3}
    assert result == OCRText('7', 50.0)


def test_paddleocr_empty_result(monkeypatch, cell):
    class FakePaddle:
        def __init__(self, **kwargs):
            pass

        def ocr(self, image):
            return [None]

    monkeypatch.setitem(sys.modules, 'paddleocr', types.SimpleNamespace(PaddleOCR=FakePaddle))

    engine = PaddleOCREngine()
    engine.initialize('eng')
    assert engine.recognize(cell) == OCRText('', 0.0)
