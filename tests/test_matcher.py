import numpy as np
import pytest

from conftest import make_identity, vector
from face_greeter.gallery import Gallery
from face_greeter.matcher import FaceMatcher, confidence_percent, find_best_match


def test_empty_gallery_never_matches():
    assert find_best_match(vector(0.0), Gallery(), distance_threshold=10.0, confidence_threshold_percent=0) is None


@pytest.mark.parametrize(
    "offset, expected",
    [(0.25, True), (0.4375, True), (0.5, False), (0.625, False)],
)
def test_match_iff_min_distance_below_threshold(offset, expected):
    gallery = Gallery([make_identity("alice", vector(0.0))])
    result = find_best_match(vector(offset), gallery, distance_threshold=0.5, confidence_threshold_percent=0)
    assert (result is not None) is expected


def test_multi_embedding_identity_scores_as_closest_embedding():
    far, near = vector(0.0, 0.9), vector(0.3)
    query = vector(0.1)

    multi = find_best_match(query, Gallery([make_identity("alice", far, near)]), 0.58, 0)
    single = find_best_match(query, Gallery([make_identity("alice", near)]), 0.58, 0)

    assert multi is not None and single is not None
    expected = min(np.linalg.norm(query - far), np.linalg.norm(query - near))
    assert multi.distance == pytest.approx(expected, abs=1e-6)
    assert multi.distance == pytest.approx(single.distance, abs=1e-6)


def test_closest_identity_wins_across_gallery():
    gallery = Gallery(
        [
            make_identity("bob", vector(0.5)),
            make_identity("alice", vector(0.0, 0.9), vector(0.05)),
        ]
    )
    result = find_best_match(vector(0.0), gallery, 0.58, 0)
    assert result.identity_id == "alice"


def test_equal_distance_prefers_first_in_gallery_order():
    gallery = Gallery([make_identity("first", vector(0.2)), make_identity("second", vector(-0.2))])
    result = find_best_match(vector(0.0), gallery, 0.58, 0)
    assert result.identity_id == "first"


def test_confidence_gate_applies_independently_of_distance():
    gallery = Gallery([make_identity("alice", vector(0.0))])
    query = vector(0.45)  # confidence 55

    assert find_best_match(query, gallery, distance_threshold=0.6, confidence_threshold_percent=60) is None
    accepted = find_best_match(query, gallery, distance_threshold=0.6, confidence_threshold_percent=55)
    assert accepted is not None
    assert accepted.confidence_percent == 55


def test_distance_gate_applies_even_when_confidence_passes():
    gallery = Gallery([make_identity("alice", vector(0.0))])
    assert find_best_match(vector(0.3), gallery, distance_threshold=0.25, confidence_threshold_percent=0) is None


def test_identity_with_other_dimension_is_never_matched():
    gallery = Gallery([make_identity("short", np.zeros(64, dtype=np.float32)), make_identity("alice", vector(0.1))])
    result = find_best_match(vector(0.0), gallery, 0.58, 0)
    assert result.identity_id == "alice"


@pytest.mark.parametrize("distance, expected", [(0.0, 100), (0.2, 80), (0.25, 75), (1.0, 0), (1.7, 0)])
def test_confidence_percent(distance, expected):
    assert confidence_percent(distance) == expected


def test_face_matcher_uses_configured_thresholds():
    gallery = Gallery([make_identity("alice", vector(0.0), name="Alice")])
    matcher = FaceMatcher(distance_threshold=0.58, confidence_threshold_percent=60)

    result = matcher.match(vector(0.2), gallery)
    assert result.name == "Alice"
    assert result.confidence_percent == 80
    assert matcher.match(vector(0.5), gallery) is None
