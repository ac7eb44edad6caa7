# components/similarity_search.py

import asyncio
import functools
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from visual_catalog.config import SystemConfig
from visual_catalog.core.database import VectorDatabase
from visual_catalog.core.exceptions import VisualSearchError
from visual_catalog.core.feature_extractors import MobileNetFeatureExtractor
from visual_catalog.core.lazy_resource import InitState, LazyResource
from visual_catalog.core.preprocessing import ImagePreprocessor
from visual_catalog.core.similarity import (SimilarityMatch, VectorLike,
                                            as_vector, rank_matches)
from visual_catalog.utils.file_utils import read_image_bytes
from visual_catalog.utils.logging_config import PerformanceLogger

logger = logging.getLogger(__name__)


class SimilaritySearchEngine:
    """
    Entry point for visual search: embed photos, store and rank vectors

    Every public method is a coroutine. Model loading, image decoding,
    inference and SQLite access run on a worker pool, so awaiting them
    never blocks the caller's event loop. The model and the store are
    each initialized at most once, on first use.

    This class is the error boundary of the subsystem: failures are logged
    and reported as None, False or an empty list, never raised.
    """

    def __init__(self,
                 config: Optional[SystemConfig] = None,
                 feature_extractor=None,
                 database: Optional[VectorDatabase] = None,
                 preprocessor: Optional[ImagePreprocessor] = None,
                 executor: Optional[Executor] = None):
        self.config = config or SystemConfig()
        fe = self.config.feature_extraction

        self.feature_extractor = feature_extractor or MobileNetFeatureExtractor(
            model_name=fe.model_name,
            model_path=fe.model_path,
            device=fe.device
        )
        self.database = database or VectorDatabase(
            db_path=self.config.database_path,
            scan_batch_size=self.config.similarity_search.scan_batch_size
        )
        self.preprocessor = preprocessor or ImagePreprocessor(fe.input_size)

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.n_workers,
            thread_name_prefix="visual-search"
        )

        retry = self.config.initialization.retry_policy()
        self._model = LazyResource("Embedding model", self.feature_extractor.load,
                                   retry, self._executor)
        self._store = LazyResource("Vector store", self.database.initialize,
                                   retry, self._executor)

        self.performance = PerformanceLogger()

    async def __aenter__(self) -> 'SimilaritySearchEngine':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    @property
    def model_state(self) -> InitState:
        return self._model.state

    @property
    def store_state(self) -> InitState:
        return self._store.state

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    async def initialize(self) -> bool:
        """
        Load the model and open the store; safe to call repeatedly

        Returns True only when both are ready.
        """
        model, store = await asyncio.gather(self._model.get(), self._store.get())
        return model is not None and store is not None

    async def generate_embedding(self, image_ref: Union[str, Path]) -> Optional[np.ndarray]:
        """
        Embed the photo behind a path or file:// URI

        Returns None when the model is unavailable or the image cannot be
        read, decoded or run through the model.
        """
        if not image_ref:
            return None

        extractor = await self._model.get()
        if extractor is None:
            return None

        try:
            return await self._run(self._embed_file, extractor, image_ref)
        except VisualSearchError as e:
            logger.warning(f"Embedding generation failed for {image_ref}: {e}")
        except Exception:
            logger.exception(f"Unexpected error embedding {image_ref}")
        return None

    async def embed_image_bytes(self, data: bytes) -> Optional[np.ndarray]:
        """Embed already-loaded encoded image bytes"""
        extractor = await self._model.get()
        if extractor is None:
            return None

        try:
            return await self._run(self._embed, extractor, data)
        except VisualSearchError as e:
            logger.warning(f"Embedding generation failed: {e}")
        except Exception:
            logger.exception("Unexpected error embedding image bytes")
        return None

    def _embed_file(self, extractor, image_ref) -> np.ndarray:
        return self._embed(extractor, read_image_bytes(image_ref))

    def _embed(self, extractor, data: bytes) -> np.ndarray:
        with self.performance.measure('generate_embedding'):
            tensor = self.preprocessor.preprocess(data)
            vector = extractor.extract(tensor)

        logger.debug(f"Generated embedding of length {len(vector)}")
        return vector

    async def store_embedding(self, entity_id: str, vector: VectorLike) -> bool:
        """Insert or replace the embedding for an entity"""
        if not entity_id or vector is None:
            logger.warning(f"Not storing embedding: missing entity id or vector ({entity_id!r})")
            return False

        store = await self._store.get()
        if store is None:
            return False

        try:
            await self._run(store.put, entity_id, as_vector(vector))
            return True
        except VisualSearchError as e:
            logger.warning(f"Storing embedding for {entity_id} failed: {e}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid vector for {entity_id}: {e}")
        except Exception:
            logger.exception(f"Unexpected error storing embedding for {entity_id}")
        return False

    async def remove_embedding(self, entity_id: str) -> bool:
        """Delete the embedding for an entity; unknown ids succeed"""
        if not entity_id:
            return False

        store = await self._store.get()
        if store is None:
            return False

        try:
            await self._run(store.delete, entity_id)
            return True
        except VisualSearchError as e:
            logger.warning(f"Removing embedding for {entity_id} failed: {e}")
        except Exception:
            logger.exception(f"Unexpected error removing embedding for {entity_id}")
        return False

    async def find_similar(self, vector: VectorLike,
                           k: Optional[int] = None) -> List[SimilarityMatch]:
        """
        Rank every stored embedding against a query vector

        Args:
            vector: Query embedding
            k: Maximum number of matches (defaults to max_results)

        Returns:
            Matches in descending similarity order
        """
        if vector is None:
            return []

        if k is None:
            k = self.config.similarity_search.max_results

        store = await self._store.get()
        if store is None:
            return []

        try:
            return await self._run(self._rank, store, as_vector(vector), k)
        except VisualSearchError as e:
            logger.warning(f"Similarity search failed: {e}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid query vector: {e}")
        except Exception:
            logger.exception("Unexpected error during similarity search")
        return []

    def _rank(self, store: VectorDatabase, query: np.ndarray, k: int) -> List[SimilarityMatch]:
        with self.performance.measure('find_similar'):
            matches = rank_matches(query, store.scan_all(), k)

        logger.debug(f"Top matches: {[(m.entity_id, round(m.similarity, 4)) for m in matches]}")
        return matches

    async def stats(self) -> Optional[Dict[str, int]]:
        """Embedding count and total stored bytes"""
        store = await self._store.get()
        if store is None:
            return None

        try:
            return await self._run(store.stats)
        except VisualSearchError as e:
            logger.warning(f"Reading store statistics failed: {e}")
        except Exception:
            logger.exception("Unexpected error reading store statistics")
        return None

    def close(self):
        """Release the worker pool and the database connection"""
        self._model.close()
        self._store.close()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
        self.database.close()

    async def aclose(self):
        """close() without blocking the event loop while workers drain"""
        # Cells first: nothing new may reach the store once closing starts
        self._model.close()
        self._store.close()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.close)
