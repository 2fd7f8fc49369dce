"""
Image decoding and encoding helpers.
Accepts encoded bytes, file paths or decoded arrays and always hands back BGR numpy arrays.
"""

import io
import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
import pillow_heif
from PIL import Image

from bingo_scanner.exceptions import InvalidImageError
from bingo_scanner.scan_types import ImageInput, RawImage


def load_image(image: ImageInput) -> RawImage:
    """
    Decode an image input into a pixel buffer.

    Encoded bytes are decoded with OpenCV first; formats OpenCV does not
    understand (HEIC/HEIF phone photos) fall back to Pillow.

    Args:
        image: Encoded bytes, a path to an image file, or a decoded array

    Returns:
        Decoded image as a numpy array

    Raises:
        InvalidImageError: If the input cannot be read or decoded
    """
    if isinstance(image, np.ndarray):
        if image.size == 0 or image.ndim not in (2, 3):
            raise InvalidImageError(f"Invalid image array with shape {image.shape}")
        return image

    if isinstance(image, (str, Path)):
        try:
            data = Path(image).read_bytes()
        except OSError as e:
            raise InvalidImageError(f"Failed to read image file {image}: {e}")
    elif isinstance(image, (bytes, bytearray, memoryview)):
        data = bytes(image)
    else:
        raise InvalidImageError(f"Unsupported image input type: {type(image).__name__}")

    if not data:
        raise InvalidImageError("Image buffer is empty")

    decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if decoded is not None:
        return decoded

    return _load_with_pillow(data)


def _load_with_pillow(data: bytes) -> RawImage:
    """Decode bytes with Pillow (HEIC/HEIF support registered) and convert to BGR."""
    pillow_heif.register_heif_opener()

    try:
        pil_image = Image.open(io.BytesIO(data))
        pil_image.load()
    except Exception as e:
        raise InvalidImageError(f"Could not decode image buffer: {e}")

    # Flatten transparency onto white, as phone exports often carry alpha
    if pil_image.mode in ('RGBA', 'LA', 'P'):
        pil_image = pil_image.convert('RGBA')
        background = Image.new('RGB', pil_image.size, (255, 255, 255))
        background.paste(pil_image, mask=pil_image.split()[-1])
        pil_image = background
    elif pil_image.mode != 'RGB':
        pil_image = pil_image.convert('RGB')

    return cv2.cvtColor(np.array(pil_image), cv2.COLOR_RGB2BGR)


def encode_image(image: RawImage, extension: str = '.png') -> bytes:
    """
    Encode a pixel buffer into an image format.

    Args:
        image: Decoded image
        extension: Target format extension (default: lossless PNG)

    Returns:
        Encoded image bytes

    Raises:
        InvalidImageError: If encoding fails
    """
    success, buffer = cv2.imencode(extension, image)
    if not success:
        raise InvalidImageError(f"cv2.imencode failed for format {extension}")
    return buffer.tobytes()


def save_image(
    image: RawImage,
    output_path: str,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Save an image to disk, creating parent directories.

    Raises:
        IOError: If file writing fails
    """
    try:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        params = [cv2.IMWRITE_JPEG_QUALITY, 90] if output_path.lower().endswith(('.jpg', '.jpeg')) else []
        success = cv2.imwrite(output_path, image, params)
        if not success:
            raise IOError(f"cv2.imwrite returned False for {output_path}")
        if logger:
            logger.info(f"Saved image to {output_path}")
    except Exception as e:
        raise IOError(f"Failed to save image to {output_path}: {e}")
