# tests/conftest.py

import time

import cv2
import numpy as np
import pytest

from visual_catalog.config import SystemConfig
from visual_catalog.core.exceptions import InitializationFailure


class StubExtractor:
    """
    Stands in for the CNN: the embedding is the mean of each channel

    Counts load() calls so tests can check at-most-once initialization.
    """

    def __init__(self, load_delay: float = 0.0, failures: int = 0):
        self.load_delay = load_delay
        self.failures = failures
        self.load_calls = 0

    def load(self):
        self.load_calls += 1
        time.sleep(self.load_delay)
        if self.load_calls <= self.failures:
            raise InitializationFailure("weights missing", resource="embedding model")
        return self

    def extract(self, tensor: np.ndarray) -> np.ndarray:
        return tensor.reshape(-1, 3).mean(axis=0).astype(np.float32)


@pytest.fixture
def extractor_factory():
    return StubExtractor


@pytest.fixture
def search_config(tmp_path):
    """Config pointing every path into tmp_path"""
    config = SystemConfig()
    config.n_workers = 4
    config.database_path = str(tmp_path / "data" / "vectors.db")
    config.log_dir = str(tmp_path / "logs")
    config.feature_extraction.model_path = str(tmp_path / "assets" / "missing.pth")
    config.initialization.initial_delay = 0.01
    config.initialization.max_delay = 0.02
    return config


@pytest.fixture
def write_image(tmp_path):
    """Write a solid-colour or given BGR image and return its path"""
    def _write(name: str, color=(0, 0, 255), size=(64, 48), pixels=None) -> str:
        if pixels is None:
            h, w = size
            pixels = np.zeros((h, w, 3), dtype=np.uint8)
            pixels[:] = color
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(path), pixels)
        return str(path)
    return _write
