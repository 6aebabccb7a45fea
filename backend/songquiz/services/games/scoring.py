from typing import Iterable

from .answers import is_answer_correct
from .types import CARRE, DUO, TYPING, Player

POINTS = {
    TYPING: 5,
    CARRE: 2,
    DUO: 1,
}

# Per-correct value of a room-level response setting, used for the solo max score
RESPONSE_TYPE_POINTS = {
    'typing': 5,
    'mix': 5,
    'qcm': 2,
    'duo': 1,
}


def points_for(mode: str, is_correct: bool, streak: int = 0) -> int:
    """Points for one answer.

    The streak is accepted so callers can pass it along, but it does not
    change the value: streaks are displayed only.
    """
    if not is_correct:
        return 0
    return POINTS.get(mode, POINTS[TYPING])


def score_current_round(players: Iterable[Player], accepted_answers: Iterable[str]) -> None:
    """Settle the round for every player.

    A player who never answered is scored as incorrect with a null answer.
    Correct answers add their points to the score and extend the streak;
    anything else resets the streak to 0.
    """
    accepted = list(accepted_answers)
    for p in players:
        if p.answer_mode is None:
            p.current_answer = None
            p.is_correct = False
        else:
            p.is_correct = is_answer_correct(p.current_answer, accepted)
        p.round_points = points_for(p.answer_mode or TYPING, p.is_correct, p.streak)
        p.score += p.round_points
        if p.is_correct:
            p.streak += 1
            p.correct_count += 1
            p.best_streak = max(p.best_streak, p.streak)
        else:
            p.streak = 0
