# core/similarity.py

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from visual_catalog.core.exceptions import DimensionMismatch

logger = logging.getLogger(__name__)

# Stored BLOBs are raw little-endian float32, no header
VECTOR_DTYPE = np.dtype('<f4')

VectorLike = Union[np.ndarray, Sequence[float]]


@dataclass(frozen=True)
class SimilarityMatch:
    """Container for a ranked match"""
    entity_id: str
    similarity: float


def as_vector(values: VectorLike) -> np.ndarray:
    """Coerce a sequence of numbers to a flat float32 vector"""
    return np.asarray(values, dtype=np.float32).ravel()


def encode_vector(vector: VectorLike) -> bytes:
    """Serialize a vector as raw little-endian float32 bytes (4 bytes per value)"""
    return as_vector(vector).astype(VECTOR_DTYPE, copy=False).tobytes()


def decode_vector(raw: bytes) -> Optional[np.ndarray]:
    """
    Deserialize a BLOB written by encode_vector.

    Returns None when the byte count is not a multiple of 4, since such a
    row cannot have been produced by encode_vector.
    """
    if raw is None or len(raw) % VECTOR_DTYPE.itemsize != 0:
        return None
    return np.frombuffer(raw, dtype=VECTOR_DTYPE).astype(np.float32)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine similarity between two vectors of equal length.

    Returns 0.0 when either vector has zero magnitude. Raises
    DimensionMismatch when the lengths differ.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()

    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0])

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def rank_matches(query: VectorLike,
                 rows: Iterable[Tuple[str, bytes]],
                 k: int = 5) -> List[SimilarityMatch]:
    """
    Brute-force nearest neighbour search over scanned store rows.

    Args:
        query: Query embedding
        rows: (entity_id, raw_bytes) pairs, in scan order
        k: Maximum number of matches to return

    Returns:
        Matches sorted by descending similarity. Ties keep scan order.
        Rows that cannot be decoded or whose length differs from the query
        are skipped.
    """
    if k <= 0:
        return []

    query = as_vector(query)
    matches = []
    skipped = 0

    for entity_id, raw in rows:
        stored = decode_vector(raw)
        if stored is None:
            logger.debug(f"Skipping {entity_id}: {len(raw) if raw is not None else 0} "
                         f"bytes is not a float32 array")
            skipped += 1
            continue

        try:
            similarity = cosine_similarity(query, stored)
        except DimensionMismatch as e:
            logger.debug(f"Skipping {entity_id}: {e}")
            skipped += 1
            continue

        if np.isnan(similarity):
            continue
        matches.append(SimilarityMatch(entity_id, similarity))

    if skipped:
        logger.info(f"Skipped {skipped} stored embeddings that could not be compared")

    # sorted() is stable with reverse=True, so equal scores keep scan order
    matches = sorted(matches, key=lambda m: m.similarity, reverse=True)
    return matches[:k]
