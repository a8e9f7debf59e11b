"""
Matching Interfaces Module

Defines the result type and abstract interface for identity matching.

A matcher answers one question: which enrolled identity, if any, does a
query embedding belong to? It has three outcomes, and callers react to each
differently:

    MATCHED                 log the identity in
    UNKNOWN                 ask the user to retake the photo
    NO_ENROLLED_IDENTITIES  send the user to enrollment instead

Usage:
    from facelogin.matching import EuclideanIdentityMatcher, MatchOutcome

    matcher = EuclideanIdentityMatcher(get_matching_config())
    result = matcher.match(query, registry.list_roster())
    if result.outcome is MatchOutcome.MATCHED:
        login(result.identity_id)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

import numpy as np

RosterEntry = Tuple[str, np.ndarray]


class MatchOutcome(Enum):
    MATCHED = "matched"
    UNKNOWN = "unknown"
    NO_ENROLLED_IDENTITIES = "no_enrolled_identities"


@dataclass
class MatchResult:
    """
    Result of a matching operation.

    Attributes:
        outcome: Which of the three outcomes occurred.
        identity_id: Matched identity (MATCHED only).
        distance: Best distance found (None for NO_ENROLLED_IDENTITIES).
        threshold: Threshold the decision was made against.
        details: Algorithm-specific details for debugging and analysis.
                 Examples: {"method": "euclidean", "roster_size": 3}
    """

    outcome: MatchOutcome
    identity_id: Optional[str] = None
    distance: Optional[float] = None
    threshold: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_match(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED

    @classmethod
    def matched(cls, identity_id: str, distance: float, threshold: float, **details) -> "MatchResult":
        return cls(MatchOutcome.MATCHED, identity_id, distance, threshold, details)

    @classmethod
    def unknown(cls, distance: float, threshold: float, **details) -> "MatchResult":
        return cls(MatchOutcome.UNKNOWN, None, distance, threshold, details)

    @classmethod
    def no_enrolled_identities(cls, threshold: float, **details) -> "MatchResult":
        return cls(MatchOutcome.NO_ENROLLED_IDENTITIES, None, None, threshold, details)


class IdentityMatcher(ABC):
    """
    Abstract base class for 1:N identity matching.

    Implementations must be pure functions of their inputs: no I/O and no
    mutation of the roster.
    """

    @abstractmethod
    def match(
        self,
        query: np.ndarray,
        roster: Iterable[RosterEntry],
        threshold: Optional[float] = None,
    ) -> MatchResult:
        """
        Find the enrolled identity closest to `query`.

        Args:
            query: Embedding of the face to identify. Shape: (D,).
            roster: (identity_id, embedding) pairs. Iteration order decides
                    ties, so pass an ordered roster for reproducible results.
            threshold: Acceptance threshold; the matcher's configured
                       threshold when None.

        Returns:
            MatchResult with outcome MATCHED, UNKNOWN or
            NO_ENROLLED_IDENTITIES.
        """
        pass
