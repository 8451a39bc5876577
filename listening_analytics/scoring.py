"""Co-listening similarity and candidate scoring"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

@dataclass
class ScoringBreakdown:
    """Intermediate results of one scoring run"""
    listened: Set[int] = field(default_factory=set)
    similar_users: Dict[int, int] = field(default_factory=dict)
    candidate_scores: Dict[int, int] = field(default_factory=dict)

@dataclass(frozen=True)
class RankedCandidate:
    track_id: int
    score: int
    popularity: int

class CoListeningScorer:
    """
    Scores unheard tracks for a user from the plays of users who share
    at least `threshold` distinct tracks with them.

    Works on (user_id, track_id) pairs so it can run on any source of plays.
    Duplicate pairs are tolerated: overlap and contribution are both
    counted per distinct track, never per play.
    """

    def __init__(self, threshold: int = 2):
        if threshold < 1:
            raise ValueError("Similarity threshold must be at least 1")
        self.threshold = threshold

    def listened_set(self, track_ids: Iterable[int]) -> Set[int]:
        return set(track_ids)

    def similar_users(self, listened: Set[int], pairs: Iterable[Tuple[int, int]],
                      exclude_user: Optional[int] = None) -> Dict[int, int]:
        """
        Map each qualifying user to their overlap with `listened`.

        Users below the threshold are dropped. An empty listened set yields
        no similar users.
        """
        if not listened:
            return {}
        shared: Dict[int, Set[int]] = defaultdict(set)
        for user_id, track_id in pairs:
            if user_id == exclude_user or track_id not in listened:
                continue
            shared[user_id].add(track_id)
        return {
            user_id: len(tracks)
            for user_id, tracks in shared.items()
            if len(tracks) >= self.threshold
        }

    def candidate_scores(self, listened: Set[int], similar: Mapping[int, int],
                         pairs: Iterable[Tuple[int, int]]) -> Dict[int, int]:
        """Sum the overlap of every similar user who played each unheard track"""
        if not similar:
            return {}
        scores: Dict[int, int] = defaultdict(int)
        seen: Set[Tuple[int, int]] = set()
        for user_id, track_id in pairs:
            overlap = similar.get(user_id)
            if overlap is None or track_id in listened or (user_id, track_id) in seen:
                continue
            seen.add((user_id, track_id))
            scores[track_id] += overlap
        return dict(scores)

    def rank(self, scores: Mapping[int, int], popularity: Mapping[int, int]) -> List[RankedCandidate]:
        """Order by score desc, then popularity desc, then track id asc"""
        ranked = [
            RankedCandidate(track_id=track_id, score=score, popularity=popularity.get(track_id, 0))
            for track_id, score in scores.items()
        ]
        ranked.sort(key=lambda c: (-c.score, -c.popularity, c.track_id))
        return ranked
