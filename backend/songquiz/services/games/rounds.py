import logging
from functools import partial
from typing import Callable, Optional

from .types import FINISHED, PAUSED, PLAYING

logger = logging.getLogger(__name__)


class RoundController:
    """Drives one round at a time for a room.

    Methods ending in ``_locked`` expect the room lock to be held and may
    return a follow-up callable that the caller must run *after* releasing
    the lock (song-provider and stats calls never run under the lock).
    Every transition checks the round index it was scheduled for, so a timer
    and a skip quorum racing on the same round only advance it once.
    """

    def __init__(self, room):
        self.room = room

    # ---- intro / resume entry points (timer callbacks) ----

    def start_first_round(self, token: int) -> None:
        room = self.room
        with room.lock:
            if (room.game_token != token or room.status != PLAYING
                    or room.current_round_index != -1 or room.round_loading):
                return
            follow = self.advance_locked()
        if follow:
            follow()

    def finish_resume(self, token: int) -> None:
        room = self.room
        follow = None
        with room.lock:
            if room.game_token != token or room.status != PAUSED or not room.resuming:
                return
            room.resuming = False
            room.status = PLAYING
            room.emit('game_paused', {'is_paused': False})
            logger.info(f"[resume] room={room.code} round={room.current_round_index + 1}")
            if room.round_ended:
                follow = self.advance_locked()
            else:
                self.end_round_locked(room.current_round_index)
        if follow:
            follow()

    # ---- round start ----

    def advance_locked(self) -> Optional[Callable[[], None]]:
        room = self.room
        room.disarm()
        room.current_round_index += 1
        idx = room.current_round_index
        if idx >= len(room.playlist):
            return self.finish_locked()

        room.round_loading = True
        room.round_ended = False
        room.votes.clear()
        room.emit('vote_update', room.votes.tally('skip', room.vote_roster_size))
        room.emit('vote_update', room.votes.tally('pause', room.vote_roster_size))

        item = room.playlist[idx]
        for p in room.active_players():
            p.reset_for_round()
            p.seen_song_ids.append(item.song_id)
        target = item.target(room.settings.precision)
        return partial(self._load_round, room.game_token, idx, item, target, room.settings)

    def _load_round(self, token, idx, item, target, settings) -> None:
        room = self.room
        try:
            # Duo must reuse the four-choice pool, so it waits on that result
            choices = room.provider.generate_choices(target, settings.precision, settings.song_filters())
            duo = room.provider.generate_duo(target, choices)
        except Exception:
            logger.exception(f"[round-choices] room={room.code} round={idx + 1} provider failed")
            choices, duo = [target], [target]

        with room.lock:
            if room.game_token != token or room.status != PLAYING or room.current_round_index != idx:
                logger.info(f"[round-stale] room={room.code} round={idx + 1} dropped after loading")
                return
            room.round_data = {'choices': list(choices), 'duo': list(duo), 'target': target}
            room.round_loading = False
            room.round_started_at = room.clock()
            room.emit_roster()
            room.emit('round_start', {
                'round': idx + 1,
                'total_rounds': len(room.playlist),
                'video_key': item.video_key,
                'video_start_time': item.video_start_time,
                'duration': item.guess_duration,
                'response_type': settings.response_type,
                'choices': list(choices),
                'duo': list(duo),
            })
            logger.info(f"[round-start] room={room.code} round={idx + 1}/{len(room.playlist)}")
            room.arm('guess', item.guess_duration + room.timings.guess_buffer, partial(self.end_round, idx))

    # ---- guess -> reveal ----

    def end_round(self, idx: int) -> None:
        with self.room.lock:
            self.end_round_locked(idx)

    def end_round_locked(self, idx: int) -> bool:
        room = self.room
        if (room.status != PLAYING or room.round_loading or room.round_ended
                or room.current_round_index != idx):
            return False
        room.round_ended = True
        room.disarm()

        item = room.playlist[idx]
        players = room.active_players()
        room.mode.on_round_end(players, item, room.settings)
        target = room.round_data.get('target') or item.target(room.settings.precision)
        room.history.append({
            'round': idx + 1,
            'song': item.to_dict(),
            'correct_answer': target,
            'answers': [{
                'player_id': p.id,
                'username': p.name,
                'answer': p.current_answer,
                'is_correct': p.is_correct,
                'points': p.round_points,
            } for p in players],
        })

        # Skip votes that cut the guess phase must not carry into the reveal
        room.votes.skip_votes.clear()
        room.emit('vote_update', room.votes.tally('skip', room.vote_roster_size))

        next_video = room.playlist[idx + 1].video_key if idx + 1 < len(room.playlist) else None
        room.emit('round_reveal', {
            'round': idx + 1,
            'song': item.to_dict(),
            'correct_answer': target,
            'players': room.roster(),
            'duration': room.timings.reveal_duration,
            'next_video': next_video,
        })
        logger.info(f"[round-reveal] room={room.code} round={idx + 1}")
        room.arm('reveal', room.timings.reveal_duration, partial(self.after_reveal, idx))
        return True

    # ---- reveal -> next round / pause / game over ----

    def after_reveal(self, idx: int) -> None:
        with self.room.lock:
            follow = self.after_reveal_locked(idx)
        if follow:
            follow()

    def after_reveal_locked(self, idx: int) -> Optional[Callable[[], None]]:
        room = self.room
        if (room.status != PLAYING or not room.round_ended or room.round_loading
                or room.current_round_index != idx):
            return None
        room.disarm()
        if room.votes.pause_pending:
            room.pause_locked()
            return None
        return self.advance_locked()

    def finish_locked(self) -> Optional[Callable[[], None]]:
        room = self.room
        room.round_loading = False
        players = room.active_players()
        result = room.mode.check_victory(players, room.settings, len(room.playlist), list(room.history))
        room.status = FINISHED
        room.last_result = result.to_dict()
        room.emit('game_over', {'victory_data': room.last_result})
        room.emit_roster()
        logger.info(
            f"[game-over] room={room.code} rounds={len(room.playlist)} winners={result.winner_ids}"
        )
        if room.stats is None:
            return None
        snapshot = [room.snapshot_player(p) for p in players]
        return partial(self._persist_results, snapshot, list(result.winner_ids))

    def _persist_results(self, players, winner_ids) -> None:
        try:
            self.room.stats.record_game(players, winner_ids)
        except Exception:
            logger.exception(f"[stats] room={self.room.code} failed to persist game results")
