"""
Matching Module for Face Login

Components:
    - interfaces: MatchResult, MatchOutcome and the IdentityMatcher interface
    - euclidean_matcher: nearest-neighbour matching by Euclidean distance

Usage:
    from facelogin.matching import EuclideanIdentityMatcher, MatchOutcome
"""

from facelogin.matching.interfaces import (
    IdentityMatcher,
    MatchOutcome,
    MatchResult,
    RosterEntry,
)
from facelogin.matching.euclidean_matcher import DEFAULT_THRESHOLD, EuclideanIdentityMatcher

__all__ = [
    # Data classes
    "MatchOutcome",
    "MatchResult",
    "RosterEntry",
    # Abstract interface
    "IdentityMatcher",
    # Implementations
    "EuclideanIdentityMatcher",
    "DEFAULT_THRESHOLD",
]
