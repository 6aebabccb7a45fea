import logging
from typing import Iterable, Sequence

from songquiz import db
from songquiz.models import SongHistory, User
from songquiz.services.games.types import Player

logger = logging.getLogger(__name__)


class StatsStore:
    """Writes long-term account stats once per finished game.

    Only players linked to an account are recorded. Each account is
    committed on its own, so one failing write does not lose the others.
    """

    def __init__(self, app):
        self.app = app

    def record_game(self, players: Sequence[Player], winner_ids: Iterable[str]) -> int:
        winners = set(winner_ids)
        saved = 0
        with self.app.app_context():
            for player in players:
                if player.user_id is None:
                    continue
                try:
                    if self._record_player(player, player.id in winners):
                        db.session.commit()
                        saved += 1
                except Exception:
                    db.session.rollback()
                    logger.exception(f"[stats] user={player.user_id} failed to save game")
        logger.info(f"[stats] saved accounts={saved} players={len(players)}")
        return saved

    def _record_player(self, player: Player, is_winner: bool) -> bool:
        user = db.session.get(User, player.user_id)
        if user is None:
            logger.warning(f"[stats] user={player.user_id} not found, skipped")
            return False
        user.games_played = (user.games_played or 0) + 1
        if is_winner:
            user.games_won = (user.games_won or 0) + 1
        user.correct_guesses = (user.correct_guesses or 0) + player.correct_count
        user.max_streak = max(user.max_streak or 0, player.best_streak)

        seen = set(player.seen_song_ids)
        if not seen:
            return True
        known = {
            row.song_id for row in
            SongHistory.query.filter(SongHistory.user_id == user.id, SongHistory.song_id.in_(seen)).all()
        }
        for song_id in sorted(seen - known):
            db.session.add(SongHistory(user_id=user.id, song_id=song_id))
        return True
