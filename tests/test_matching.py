"""
Tests for the Matching Module

These tests verify that:
1. EuclideanIdentityMatcher finds the nearest enrolled identity
2. The threshold boundary is inclusive
3. An empty roster is reported distinctly from an unknown face
4. Ties and dimension mismatches are handled deterministically
"""

import numpy as np
import pytest

from facelogin.matching import (
    DEFAULT_THRESHOLD,
    EuclideanIdentityMatcher,
    IdentityMatcher,
    MatchOutcome,
    MatchResult,
)
from facelogin.registry import EnrollmentRegistry


# ============================================================
# Test Fixtures
# ============================================================

@pytest.fixture
def matcher():
    return EuclideanIdentityMatcher({"threshold": 0.55})


@pytest.fixture
def unit_roster():
    """Five random unit-length 128-dim float32 embeddings."""
    rng = np.random.default_rng(42)
    vectors = rng.standard_normal((5, 128)).astype(np.float32)
    vectors /= np.linalg.norm(vectors, axis=1, keepdims=True)
    return [(f"u{i}", v) for i, v in enumerate(vectors)]


class TestMatchResult:
    """Tests for the MatchResult data class."""

    def test_matched(self):
        result = MatchResult.matched("u1", 0.2, 0.55, method="euclidean")

        assert result.outcome is MatchOutcome.MATCHED
        assert result.is_match
        assert result.identity_id == "u1"
        assert result.details == {"method": "euclidean"}

    def test_unknown_and_empty_are_not_matches(self):
        assert not MatchResult.unknown(0.9, 0.55).is_match
        assert not MatchResult.no_enrolled_identities(0.55).is_match
        assert MatchResult.no_enrolled_identities(0.55).distance is None


class TestEuclideanIdentityMatcher:
    """Tests for EuclideanIdentityMatcher."""

    def test_is_identity_matcher(self, matcher):
        assert isinstance(matcher, IdentityMatcher)

    def test_default_threshold(self):
        assert EuclideanIdentityMatcher().threshold == DEFAULT_THRESHOLD == 0.55

    def test_exact_match(self, matcher):
        v1 = np.array([0.1, 0.2, 0.3, 0.4])

        result = matcher.match(v1.copy(), [("u1", v1)], threshold=0.55)

        assert result.outcome is MatchOutcome.MATCHED
        assert result.identity_id == "u1"
        assert result.distance == 0.0

    def test_rejection(self, matcher):
        v1 = np.zeros(4)
        v2 = np.array([0.9, 0.0, 0.0, 0.0])

        result = matcher.match(v2, [("u1", v1)], threshold=0.55)

        assert result.outcome is MatchOutcome.UNKNOWN
        assert result.identity_id is None
        assert result.distance == pytest.approx(0.9)
        assert result.details["closest_id"] == "u1"

    @pytest.mark.parametrize("threshold", [0.0, 0.55, 10.0, float("inf")])
    def test_empty_roster(self, matcher, threshold):
        result = matcher.match(np.ones(4), [], threshold=threshold)

        assert result.outcome is MatchOutcome.NO_ENROLLED_IDENTITIES
        assert result.distance is None

    def test_threshold_boundary_is_inclusive(self, matcher):
        enrolled = np.array([0.0, 0.0])
        query = np.array([3.0, 4.0])  # distance exactly 5.0

        at = matcher.match(query, [("u1", enrolled)], threshold=5.0)
        above = matcher.match(query, [("u1", enrolled)], threshold=np.nextafter(5.0, 0.0))

        assert at.outcome is MatchOutcome.MATCHED
        assert at.distance == 5.0
        assert above.outcome is MatchOutcome.UNKNOWN
        assert above.distance == 5.0

    def test_nearest_identity_wins(self, matcher):
        roster = [
            ("far", np.array([1.0, 0.0])),
            ("near", np.array([0.1, 0.0])),
            ("mid", np.array([0.3, 0.0])),
        ]

        result = matcher.match(np.zeros(2), roster)

        assert result.identity_id == "near"
        assert result.distance == pytest.approx(0.1)

    def test_tie_goes_to_first_in_roster_order(self, matcher):
        a = np.array([0.1, 0.0])
        b = np.array([-0.1, 0.0])
        query = np.zeros(2)

        assert matcher.match(query, [("a", a), ("b", b)]).identity_id == "a"
        assert matcher.match(query, [("b", b), ("a", a)]).identity_id == "b"

    def test_every_enrolled_identity_matches_itself(self, matcher, unit_roster):
        for identity_id, embedding in unit_roster:
            result = matcher.match(embedding, unit_roster, threshold=0.0)
            assert result.identity_id == identity_id
            assert result.distance == 0.0

    def test_threshold_from_config(self):
        roster = [("u1", np.zeros(2))]
        query = np.array([0.6, 0.0])

        assert EuclideanIdentityMatcher({"threshold": 0.55}).match(query, roster).outcome \
            is MatchOutcome.UNKNOWN
        assert EuclideanIdentityMatcher({"threshold": 0.7}).match(query, roster).outcome \
            is MatchOutcome.MATCHED

    def test_per_call_threshold_overrides_config(self, matcher):
        result = matcher.match(np.array([0.6, 0.0]), [("u1", np.zeros(2))], threshold=1.0)

        assert result.is_match
        assert result.threshold == 1.0

    def test_no_normalization(self, matcher):
        v = np.array([0.6, 0.8])

        result = matcher.match(2 * v, [("u1", v)])

        assert result.outcome is MatchOutcome.UNKNOWN
        assert result.distance == pytest.approx(1.0)

    def test_dimension_mismatch_raises(self, matcher):
        with pytest.raises(ValueError):
            matcher.match(np.zeros(4), [("u1", np.zeros(3))])

    def test_accepts_lazy_registry_roster(self, matcher):
        registry = EnrollmentRegistry()
        registry.enroll("Alice", "alice@example.com", np.array([0.0, 0.0]))
        bob = registry.enroll("Bob", "bob@example.com", np.array([1.0, 0.0]))

        result = matcher.match(np.array([0.9, 0.0]), registry.list_roster())

        assert result.identity_id == bob.id

    def test_does_not_modify_roster(self, matcher, unit_roster):
        before = [v.copy() for _, v in unit_roster]

        matcher.match(unit_roster[0][1] + 0.01, unit_roster)

        for (_, after), original in zip(unit_roster, before):
            np.testing.assert_array_equal(after, original)
