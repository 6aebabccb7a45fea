"""Once-per-game victory computation.

A room with a single player plays against a score threshold; any larger
room is ranked and the top N players win.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .scoring import RESPONSE_TYPE_POINTS
from .types import EXACT, GameSettings, Player

SOLO_THRESHOLDS = {
    'easy': 0.70,
    'medium': 0.60,
    'hard': 0.50,
}
# Exact-title play is harder, so one fraction applies whatever the difficulty
EXACT_PRECISION_THRESHOLD = 0.50
DEFAULT_THRESHOLD = 0.60

SMALL_LOBBY_LIMIT = 4
WINNERS_SMALL = 1
WINNERS_LARGE = 3

RANKS = (
    ('S+', 1.00),
    ('S', 0.90),
    ('A', 0.80),
    ('B', 0.60),
    ('C', 0.40),
    ('D', 0.00),
)


@dataclass
class VictoryResult:
    is_solo: bool
    rankings: List[Player]
    winner_ids: List[str]
    max_possible_score: int
    solo_threshold: Optional[float] = None
    solo_target_score: Optional[int] = None
    solo_difficulty: Optional[str] = None
    multi_winner_count: Optional[int] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        rankings = []
        for position, p in enumerate(self.rankings):
            entry = p.to_dict()
            entry['rank'] = position + 1
            entry['grade'] = grade_for(p.score, self.max_possible_score)
            entry['is_winner'] = p.id in self.winner_ids
            rankings.append(entry)
        return {
            'is_solo': self.is_solo,
            'winner': rankings[0] if rankings else None,
            'rankings': rankings,
            'winner_ids': list(self.winner_ids),
            'max_possible_score': self.max_possible_score,
            'solo_threshold': self.solo_threshold,
            'solo_target_score': self.solo_target_score,
            'solo_difficulty': self.solo_difficulty,
            'multi_winner_count': self.multi_winner_count,
            'history': self.history,
        }


def max_possible_score(round_count: int, response_type: str) -> int:
    return round_count * RESPONSE_TYPE_POINTS.get(response_type, RESPONSE_TYPE_POINTS['typing'])


def solo_difficulty(settings: GameSettings) -> Optional[str]:
    if len(settings.difficulty) == 1:
        return settings.difficulty[0]
    return None


def solo_threshold(settings: GameSettings) -> float:
    if settings.precision == EXACT:
        return EXACT_PRECISION_THRESHOLD
    return SOLO_THRESHOLDS.get(solo_difficulty(settings), DEFAULT_THRESHOLD)


def required_score(max_score: int, fraction: float) -> int:
    # round() first so 50 * 0.6 doesn't ceil up to 31 on float noise
    return math.ceil(round(max_score * fraction, 6))


def winner_count(roster_size: int) -> int:
    return WINNERS_SMALL if roster_size <= SMALL_LOBBY_LIMIT else WINNERS_LARGE


def grade_for(score: int, max_score: int) -> str:
    if max_score <= 0:
        return '?'
    ratio = score / max_score
    for label, floor in RANKS:
        if ratio >= floor:
            return label
    return RANKS[-1][0]


def compute_victory(players: Sequence[Player], settings: GameSettings, round_count: int,
                    history: Optional[List[Dict[str, Any]]] = None) -> VictoryResult:
    ranked = sorted(players, key=lambda p: p.score, reverse=True)
    max_score = max_possible_score(round_count, settings.response_type)

    if len(ranked) == 1:
        fraction = solo_threshold(settings)
        target = required_score(max_score, fraction)
        solo = ranked[0]
        return VictoryResult(
            is_solo=True,
            rankings=ranked,
            winner_ids=[solo.id] if solo.score >= target else [],
            max_possible_score=max_score,
            solo_threshold=fraction,
            solo_target_score=target,
            solo_difficulty=solo_difficulty(settings),
            history=history or [],
        )

    count = winner_count(len(ranked))
    return VictoryResult(
        is_solo=False,
        rankings=ranked,
        winner_ids=[p.id for p in ranked[:count]],
        max_possible_score=max_score,
        multi_winner_count=count,
        history=history or [],
    )
