# tests/test_similarity.py

import numpy as np
import pytest

from visual_catalog.core.exceptions import DimensionMismatch
from visual_catalog.core.similarity import (SimilarityMatch, cosine_similarity,
                                            decode_vector, encode_vector,
                                            rank_matches)


def rows(**vectors):
    return [(name, encode_vector(v)) for name, v in vectors.items()]


def test_cosine_of_vector_with_itself():
    """A nonzero vector is perfectly aligned with itself"""
    v = np.random.default_rng(0).normal(size=1280).astype(np.float32)
    assert cosine_similarity(v, v) == pytest.approx(1.0, abs=1e-6)


def test_cosine_of_orthogonal_vectors():
    assert cosine_similarity([1, 0, 0], [0, 1, 0]) == pytest.approx(0.0)


def test_cosine_of_opposite_vectors():
    assert cosine_similarity([1, 2, 3], [-1, -2, -3]) == pytest.approx(-1.0)


def test_cosine_with_zero_vector_is_zero():
    assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
    assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0


def test_cosine_rejects_different_lengths():
    with pytest.raises(DimensionMismatch):
        cosine_similarity([1, 0, 0], [1, 0])


def test_encoding_is_little_endian_float32():
    """Four bytes per value, no header"""
    blob = encode_vector([1.0, -2.5])
    assert blob == np.array([1.0, -2.5], dtype='<f4').tobytes()
    assert len(blob) == 8


def test_encode_decode_is_bit_exact():
    v = np.array([0.1, -0.0, 3.4028235e38, 1e-45, np.pi], dtype=np.float32)
    decoded = decode_vector(encode_vector(v))
    assert decoded.dtype == np.float32
    assert decoded.tobytes() == v.tobytes()


def test_decode_rejects_partial_floats():
    assert decode_vector(b"\x00\x00\x80\x3f\x00") is None


def test_ranking_orders_by_similarity():
    """Identical vector first, orthogonal one second"""
    results = rank_matches([1, 0, 0], rows(carA=[1, 0, 0], carB=[0, 1, 0]))

    assert [m.entity_id for m in results] == ["carA", "carB"]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.0)


def test_ranking_empty_store():
    assert rank_matches([1, 0, 0], []) == []


def test_ranking_truncates_to_k():
    store = rows(a=[1, 0], b=[1, 1], c=[0, 1], d=[-1, 0])
    results = rank_matches([1, 0], store, k=2)
    assert [m.entity_id for m in results] == ["a", "b"]


def test_ranking_non_positive_k():
    assert rank_matches([1, 0], rows(a=[1, 0]), k=0) == []


def test_ties_keep_scan_order():
    store = rows(first=[2, 0], second=[1, 0], third=[3, 0])
    results = rank_matches([1, 0], store, k=3)
    assert [m.entity_id for m in results] == ["first", "second", "third"]


def test_malformed_blob_is_skipped():
    """A BLOB that is not a whole number of floats never breaks the scan"""
    store = [("broken", b"\x01\x02\x03"), ("good", encode_vector([1, 0, 0]))]
    results = rank_matches([1, 0, 0], store)
    assert results == [SimilarityMatch("good", pytest.approx(1.0))]


def test_length_mismatch_is_skipped():
    store = rows(short=[1, 0], match=[0, 0, 1])
    results = rank_matches([1, 0, 0], store)
    assert [m.entity_id for m in results] == ["match"]


def test_nan_scores_are_discarded():
    store = rows(bad=[np.nan, 0, 0], good=[1, 1, 0])
    results = rank_matches([1, 0, 0], store)
    assert [m.entity_id for m in results] == ["good"]
