"""
Euclidean Matcher: nearest enrolled embedding by L2 distance.

The query is compared to every roster embedding as given. Nothing is
normalized or clamped, so a model emitting unit vectors and one emitting raw
descriptors are both matched on their own scale; the threshold must be tuned
to the model in use (0.55 suits unit-length 128/512-dim face descriptors).
"""

import logging
from typing import Any, Dict, Iterable, Optional

import numpy as np

from facelogin.matching.interfaces import IdentityMatcher, MatchResult, RosterEntry

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.55


class EuclideanIdentityMatcher(IdentityMatcher):
    """
    Match a query embedding against a roster by minimum Euclidean distance.

    A roster embedding at distance <= threshold is a match (the boundary is
    inclusive). When several roster entries share the minimum distance, the
    first one in roster order wins.

    Args:
        config: Dictionary with optional keys:
            - threshold: Default acceptance distance (default 0.55)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        if config is None:
            config = {}
        self.threshold = float(config.get("threshold", DEFAULT_THRESHOLD))

    def match(
        self,
        query: np.ndarray,
        roster: Iterable[RosterEntry],
        threshold: Optional[float] = None,
    ) -> MatchResult:
        """
        Find the closest enrolled identity.

        Args:
            query: (D,) embedding.
            roster: (identity_id, embedding) pairs, each embedding (D,).
            threshold: Overrides the configured threshold for this call.

        Returns:
            MatchResult.

        Raises:
            ValueError: If a roster embedding's length differs from the query's.
        """
        if threshold is None:
            threshold = self.threshold

        entries = list(roster)
        if not entries:
            logger.info("Match requested with no enrolled identities")
            return MatchResult.no_enrolled_identities(threshold, method="euclidean", roster_size=0)

        query = np.asarray(query).ravel()
        ids = [identity_id for identity_id, _ in entries]
        embeddings = [np.asarray(embedding).ravel() for _, embedding in entries]

        for identity_id, embedding in zip(ids, embeddings):
            if embedding.shape[0] != query.shape[0]:
                raise ValueError(
                    f"Embedding dimension mismatch: query={query.shape[0]}, "
                    f"{identity_id}={embedding.shape[0]}"
                )

        distances = np.linalg.norm(np.stack(embeddings) - query, axis=1)
        # argmin returns the first occurrence of the minimum
        best = int(np.argmin(distances))
        best_distance = float(distances[best])

        details = {
            "method": "euclidean",
            "roster_size": len(entries),
            "embedding_dim": query.shape[0],
        }

        if best_distance <= threshold:
            logger.info(f"Matched {ids[best]} (distance={best_distance:.4f}, threshold={threshold})")
            return MatchResult.matched(ids[best], best_distance, threshold, **details)

        logger.info(f"No match (best distance={best_distance:.4f}, threshold={threshold})")
        return MatchResult.unknown(best_distance, threshold, closest_id=ids[best], **details)
