# core/preprocessing.py

import cv2
import numpy as np

from visual_catalog.core.exceptions import DecodeFailure

DEFAULT_INPUT_SIZE = 224


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode compressed image bytes into an RGB uint8 array

    Alpha is dropped and greyscale images are expanded to three channels.
    EXIF orientation is ignored: the stored pixel grid is returned as is.
    """
    if not data:
        raise DecodeFailure("Cannot decode image: no data")

    buffer = np.frombuffer(data, dtype=np.uint8)
    try:
        img = cv2.imdecode(buffer, cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
    except cv2.error as e:
        raise DecodeFailure(f"Cannot decode image: {e}") from e

    if img is None or img.size == 0:
        raise DecodeFailure("Cannot decode image: unsupported or corrupt data")

    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


def point_sample(image: np.ndarray, size: int) -> np.ndarray:
    """
    Resize to size x size by nearest source pixel

    Destination pixel (x, y) reads source pixel
    (floor(x * width / size), floor(y * height / size)). There is no
    averaging, so small details alias and the aspect ratio is not kept.
    """
    h, w = image.shape[:2]

    # Integer arithmetic keeps the floor exact for every x
    xs = (np.arange(size) * w) // size
    ys = (np.arange(size) * h) // size

    return image[ys[:, None], xs[None, :]]


def normalize(pixels: np.ndarray) -> np.ndarray:
    """Map uint8 channel values to [-1, 1]"""
    return pixels.astype(np.float32) / 127.5 - 1.0


class ImagePreprocessor:
    """
    Turns encoded image bytes into the model's input tensor
    """

    def __init__(self, input_size: int = DEFAULT_INPUT_SIZE):
        self.input_size = input_size

    def preprocess(self, data: bytes) -> np.ndarray:
        """
        Decode, point-sample and normalize an image

        Args:
            data: Encoded image bytes (JPEG, PNG, ...)

        Returns:
            float32 array of shape (input_size, input_size, 3)
        """
        image = decode_image(data)
        sampled = point_sample(image, self.input_size)
        return np.ascontiguousarray(normalize(sampled))
