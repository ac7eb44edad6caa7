# core/feature_extractors.py

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import timm
import torch

from visual_catalog.core.exceptions import InferenceFailure, InitializationFailure

logger = logging.getLogger(__name__)


class MobileNetFeatureExtractor:
    """
    Pretrained CNN backbone used as an image feature extractor

    The classification head is removed, so the forward pass returns the
    pooled penultimate layer (1280 floats for mobilenetv2_100) instead of
    class probabilities. Weights come from a local file; nothing is
    downloaded.
    """

    def __init__(self,
                 model_name: str = "mobilenetv2_100",
                 model_path: str = "assets/mobilenetv2_100.pth",
                 device: str = "cpu"):
        self.model_name = model_name
        self.model_path = Path(model_path)
        self.device = device
        self.model = None
        self.feature_dim: Optional[int] = None

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def load(self) -> 'MobileNetFeatureExtractor':
        """
        Build the backbone and load the bundled weights

        Expensive; callers are expected to do this once.
        """
        if self.model is not None:
            return self

        if not self.model_path.is_file():
            raise InitializationFailure(
                f"Model weights not found: {self.model_path}",
                resource="embedding model"
            )

        try:
            model = timm.create_model(self.model_name,
                                      pretrained=False,
                                      checkpoint_path=str(self.model_path))
            # Drop the classifier, keep global pooling
            model.reset_classifier(0)
            model.to(self.device)
            model.eval()
        except Exception as e:
            raise InitializationFailure(
                f"Failed to load {self.model_name} from {self.model_path}: {e}",
                resource="embedding model"
            ) from e

        self.model = model
        self.feature_dim = model.num_features
        logger.info(f"Loaded {self.model_name} ({self.feature_dim}-d features) "
                    f"on {self.device}")
        return self

    @torch.no_grad()
    def extract(self, tensor: np.ndarray) -> np.ndarray:
        """
        Run a preprocessed (S, S, 3) tensor through the model

        Returns:
            Flat float32 feature vector
        """
        if self.model is None:
            raise InferenceFailure("Model is not loaded")

        if tensor.ndim != 3 or tensor.shape[2] != 3:
            raise InferenceFailure(f"Expected an (S, S, 3) tensor, got {tensor.shape}")

        try:
            # HWC -> NCHW
            batch = torch.from_numpy(np.ascontiguousarray(tensor, dtype=np.float32))
            batch = batch.permute(2, 0, 1).unsqueeze(0).to(self.device)
            features = self.model(batch)
        except RuntimeError as e:
            raise InferenceFailure(f"Inference failed: {e}") from e

        return features.cpu().numpy().astype(np.float32).flatten()
