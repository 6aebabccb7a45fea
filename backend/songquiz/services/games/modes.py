import logging
from typing import Any, Dict, List, Optional, Sequence

from .scoring import score_current_round
from .types import ALLOWED_ANSWER_MODES, GameSettings, Player, RoundItem
from .victory import VictoryResult, compute_victory

logger = logging.getLogger(__name__)


class GameMode:
    """Rules a room delegates to: answer intake, round settlement, victory."""

    name = 'base'

    def handle_answer(self, player: Player, item: RoundItem, answer: Any, mode: Any,
                      settings: GameSettings) -> bool:
        raise NotImplementedError

    def on_round_end(self, players: Sequence[Player], item: RoundItem, settings: GameSettings) -> None:
        raise NotImplementedError

    def check_victory(self, players: Sequence[Player], settings: GameSettings, round_count: int,
                      history: Optional[List[Dict[str, Any]]] = None) -> VictoryResult:
        raise NotImplementedError


class StandardMode(GameMode):
    name = 'standard'

    def handle_answer(self, player, item, answer, mode, settings):
        # One answer per round; the first one is kept
        if player.has_answered:
            return False
        if mode not in ALLOWED_ANSWER_MODES.get(settings.response_type, ()):
            return False
        if not isinstance(answer, str) or not answer.strip():
            return False
        player.current_answer = answer.strip()[:200]
        player.answer_mode = mode
        return True

    def on_round_end(self, players, item, settings):
        score_current_round(players, item.answers_for(settings.precision))

    def check_victory(self, players, settings, round_count, history=None):
        return compute_victory(players, settings, round_count, history)


def mode_for(game_type: str) -> GameMode:
    if game_type not in (None, '', StandardMode.name):
        logger.warning(f"[mode] game_type={game_type} not implemented, falling back to standard")
    return StandardMode()
