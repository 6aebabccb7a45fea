import logging
import threading
import time
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .modes import GameMode, StandardMode, mode_for
from .rounds import RoundController
from .scheduler import TimerHandle
from .types import (FINISHED, PAUSED, PLAYING, WAITING, GameSettings, NoPlayableContent, Player, RoundItem,
                    SongSelection)
from .votes import VoteCoordinator
from ..watchlists import merge_watched_ids

logger = logging.getLogger(__name__)


@dataclass
class RoomTimings:
    intro_delay: float = 3
    guess_buffer: float = 0.5
    reveal_duration: float = 10
    resume_countdown: float = 3

    @classmethod
    def from_config(cls, config) -> 'RoomTimings':
        return cls(
            intro_delay=config.get('INTRO_DELAY_SEC', 3),
            guess_buffer=config.get('GUESS_BUFFER_SEC', 0.5),
            reveal_duration=config.get('REVEAL_DURATION_SEC', 10),
            resume_countdown=config.get('RESUME_COUNTDOWN_SEC', 3),
        )


class Room:
    """Authoritative state of one game session.

    Every mutation happens under ``self.lock``, whether it comes from a
    player message or from one of the room's own timers. A room holds at
    most one armed timer (intro, guess, reveal or resume); arming a new one
    cancels the previous handle, and a handle that is no longer current does
    nothing when it fires.

    Lifecycle: waiting -> playing <-> paused -> finished -> waiting. A room is
    only stopped for good when its last player leaves.
    """

    def __init__(self, code: str, host_id: str, settings: Optional[GameSettings] = None, *,
                 scheduler, emit: Callable[..., None], provider, mode: Optional[GameMode] = None,
                 watchlists=None, stats=None, timings: Optional[RoomTimings] = None,
                 clock: Callable[[], float] = time.time, max_players_cap: int = 50):
        self.code = code
        self.host_id = host_id
        self.settings = settings or GameSettings()
        self.status = WAITING
        self.players: Dict[str, Player] = {}
        self.playlist: Tuple[RoundItem, ...] = ()
        self.current_round_index = -1
        self.returned: Set[str] = set()
        self.votes = VoteCoordinator()
        self.round_loading = False
        self.round_ended = False
        self.resuming = False
        self.round_data: Dict[str, Any] = {}
        self.round_started_at = 0.0
        self.history: List[Dict[str, Any]] = []
        self.last_result: Optional[Dict[str, Any]] = None
        # Bumped on every (re)start, reset and stop; stale async work compares against it
        self.game_token = 0

        self.scheduler = scheduler
        self.provider = provider
        self.watchlists = watchlists
        self.stats = stats
        self.mode = mode or StandardMode()
        self.timings = timings or RoomTimings()
        self.clock = clock
        self.max_players_cap = max_players_cap
        self._emit = emit
        self._timer: Optional[TimerHandle] = None
        self._starting = False

        self.lock = threading.RLock()
        self.rounds = RoundController(self)

    # ---- transport ----

    def emit(self, event: str, payload: Dict[str, Any], to: Optional[str] = None) -> None:
        self._emit(event, payload, to=to or self.code)

    def is_in_game(self, player_id: str) -> bool:
        return self.status in (PLAYING, PAUSED, FINISHED) and player_id not in self.returned

    def active_players(self) -> List[Player]:
        """Players taking part in the current game; late joiners and returned players are left out."""
        return [p for p in self.players.values() if self.is_in_game(p.id)]

    @property
    def vote_roster_size(self) -> int:
        return len(self.active_players())

    def roster(self) -> List[Dict[str, Any]]:
        hide = self.status == PLAYING and not self.round_ended
        players = []
        for p in self.players.values():
            d = p.to_dict(reveal_answers=not hide)
            d['is_host'] = p.id == self.host_id
            d['is_in_game'] = self.is_in_game(p.id)
            players.append(d)
        return players

    def emit_roster(self) -> None:
        self.emit('update_players', {
            'players': self.roster(),
            'host_id': self.host_id,
            'status': self.status,
        })

    # ---- timers ----

    @property
    def timer_phase(self) -> Optional[str]:
        return self._timer.phase if self._timer is not None else None

    def arm(self, phase: str, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Arm the room's single timer. Must be called with the lock held."""
        self.disarm()
        slot: Dict[str, TimerHandle] = {}

        def fire():
            with self.lock:
                if self._timer is not slot.get('handle'):
                    logger.debug(f"[timer-stale] room={self.code} phase={phase}")
                    return
                self._timer = None
            logger.info(f"[timer-fire] room={self.code} phase={phase} round={self.current_round_index + 1}")
            callback()

        handle = self.scheduler.call_later(delay, fire, phase=phase)
        slot['handle'] = handle
        self._timer = handle
        logger.info(f"[timer-set] room={self.code} phase={phase} round={self.current_round_index + 1} delay={delay}s")
        return handle

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ---- roster ----

    def add_player(self, conn_id: str, name: str, avatar: str = '', ready: bool = False,
                   user_id: Optional[int] = None) -> Player:
        with self.lock:
            player = self.players.get(conn_id)
            if player is None:
                player = Player(id=conn_id, name=name, avatar=avatar, user_id=user_id, is_ready=ready)
                self.players[conn_id] = player
                # Late joiners sit in the lobby view until the next game
                if self.status != WAITING:
                    self.returned.add(conn_id)
            else:
                player.name = name
                player.avatar = avatar
                player.is_ready = ready
                if user_id is not None:
                    player.user_id = user_id
            if self.host_id not in self.players:
                # First arrival in a room its last player just left
                self.host_id = conn_id
                if self.status != WAITING:
                    self._reset_to_waiting()
            if conn_id == self.host_id:
                player.is_ready = True
            self.emit_roster()
            return player

    def remove_player(self, conn_id: str) -> bool:
        follow = None
        with self.lock:
            if conn_id not in self.players:
                return False
            del self.players[conn_id]
            self.returned.discard(conn_id)
            self.votes.discard(conn_id)
            self.votes.refresh(self.vote_roster_size)

            if not self.players:
                self.stop_game()
                return True

            if conn_id == self.host_id:
                self._promote_next_host()

            if self.status != WAITING and all(pid in self.returned for pid in self.players):
                self._reset_to_waiting()
            self.emit_roster()
            if self.status == PLAYING and self.votes.skip_votes:
                follow = self._recheck_skip_locked()
        if follow:
            follow()
        return True

    def _recheck_skip_locked(self) -> Optional[Callable[[], None]]:
        """Act on existing skip votes once a departure has lowered the quorum."""
        if self.round_loading or self.current_round_index < 0:
            return None
        _, _, reached = self.votes.skip_status(self.vote_roster_size)
        self.emit('vote_update', self.votes.tally('skip', self.vote_roster_size))
        if not reached:
            return None
        return self._skip_locked()

    def _skip_locked(self) -> Optional[Callable[[], None]]:
        idx = self.current_round_index
        logger.info(f"[skip] room={self.code} round={idx + 1} ended_by_vote")
        if self.round_ended:
            return self.rounds.after_reveal_locked(idx)
        self.rounds.end_round_locked(idx)
        return None

    def _promote_next_host(self) -> None:
        candidates = sorted(self.players.values(), key=lambda p: p.name.lower())
        new_host = candidates[0]
        self.host_id = new_host.id
        new_host.is_ready = True
        logger.info(f"[host] room={self.code} promoted={new_host.id}")
        self.emit('host_promoted', {'host_id': new_host.id}, to=new_host.id)

    def transfer_host(self, conn_id: str, target_id: str) -> bool:
        with self.lock:
            if conn_id != self.host_id or target_id not in self.players or target_id == conn_id:
                return False
            self.host_id = target_id
            self.players[target_id].is_ready = True
            self.emit_roster()
            self.emit('host_promoted', {'host_id': target_id}, to=target_id)
            return True

    def toggle_ready(self, conn_id: str) -> bool:
        with self.lock:
            player = self.players.get(conn_id)
            if player is None or conn_id == self.host_id:
                return False
            player.is_ready = not player.is_ready
            self.emit_roster()
            return True

    def update_settings(self, conn_id: str, data: Dict[str, Any]) -> bool:
        with self.lock:
            if conn_id != self.host_id or self.status != WAITING:
                return False
            previous_type = self.settings.game_type
            self.settings = self.settings.updated(data, self.max_players_cap)
            if self.settings.game_type != previous_type:
                self.mode = mode_for(self.settings.game_type)
            self.emit('room_updated', {'settings': self.settings.to_dict(), 'players': self.roster()})
            return True

    def return_to_lobby(self, conn_id: str) -> None:
        with self.lock:
            player = self.players.get(conn_id)
            if player is None:
                return
            self.returned.add(conn_id)
            player.is_ready = conn_id == self.host_id
            if self.status != WAITING and all(pid in self.returned for pid in self.players):
                self._reset_to_waiting()
            self.emit_roster()

    # ---- game lifecycle ----

    def start_game(self) -> bool:
        with self.lock:
            if self.status in (PLAYING, PAUSED) or self._starting or not self.players:
                return False
            self._starting = True
            self.disarm()
            self.game_token += 1
            token = self.game_token
            self.returned.clear()
            for p in self.players.values():
                p.reset_for_game()
                p.is_ready = p.id == self.host_id
            self.history = []
            self.last_result = None
            settings = self.settings
            user_ids = [p.user_id for p in self.players.values()]
            roster_size = len(self.players)
            logger.info(f"[game-start] room={self.code} players={roster_size} rounds={settings.round_count}")

        try:
            filters = settings.song_filters()
            if settings.watched_only:
                filters['watched_ids'] = self._collect_watched_ids(user_ids, settings, roster_size)
            selection = self.provider.get_random_songs(settings.round_count, filters)
        except NoPlayableContent:
            selection = SongSelection(songs=[])
        except Exception:
            logger.exception(f"[game-start] room={self.code} song selection failed")
            with self.lock:
                if token == self.game_token:
                    self._starting = False
                    self.status = WAITING
                    self.emit('error', {'message': 'Technical error while starting the game.'})
            return False

        with self.lock:
            if token != self.game_token or not self.players:
                return False
            self._starting = False
            if not selection.songs:
                self.status = WAITING
                logger.warning(f"[game-start] room={self.code} no playable songs")
                self.emit('error', {'message': 'No songs found for these settings.'})
                return False

            self.playlist = tuple(replace(item, guess_duration=settings.guess_duration) for item in selection.songs)
            self.status = PLAYING
            self.current_round_index = -1
            self.votes.clear()
            self.round_ended = False
            self.round_loading = False
            self.resuming = False
            self.round_data = {}

            self.emit('game_started', {
                'room_id': self.code,
                'settings': settings.to_dict(),
                'players': self.roster(),
                'intro_duration': self.timings.intro_delay,
                'total_rounds': len(self.playlist),
                'first_video': self.playlist[0].video_key,
            })
            if selection.fallback_used:
                if settings.watched_mode == 'intersection':
                    message = 'Not enough songs in common (or a player has no list). Random songs were added.'
                else:
                    message = 'Not enough songs in your lists. Random songs were added.'
                self.emit('fallback_notice', {'message': message})
            self.arm('intro', self.timings.intro_delay, partial(self.rounds.start_first_round, token))
            return True

    def _collect_watched_ids(self, user_ids, settings: GameSettings, roster_size: int) -> List[int]:
        if self.watchlists is None:
            return []
        lists = self.watchlists.watched_ids([uid for uid in user_ids if uid is not None])
        return merge_watched_ids(lists, settings.watched_mode, roster_size)

    def submit_answer(self, conn_id: str, answer: Any, mode: Any) -> bool:
        with self.lock:
            if (self.status != PLAYING or self.round_loading or self.round_ended
                    or not 0 <= self.current_round_index < len(self.playlist)):
                return False
            player = self.players.get(conn_id)
            if player is None or not self.is_in_game(conn_id):
                return False
            item = self.playlist[self.current_round_index]
            if not self.mode.handle_answer(player, item, answer, mode, self.settings):
                return False
            self.emit_roster()
            return True

    def toggle_pause(self, conn_id: str) -> None:
        with self.lock:
            if conn_id not in self.players or self.round_loading or not self.is_in_game(conn_id):
                return
            if self.status == PAUSED:
                self._resume_locked()
                return
            if self.status != PLAYING or not self.is_in_game(conn_id):
                return
            self.votes.toggle_pause(conn_id, self.vote_roster_size)
            self.emit('vote_update', self.votes.tally('pause', self.vote_roster_size))

    def pause_locked(self) -> None:
        self.disarm()
        self.status = PAUSED
        self.votes.clear()
        self.emit('game_paused', {'is_paused': True})
        logger.info(f"[pause] room={self.code} after round={self.current_round_index + 1}")

    def _resume_locked(self) -> None:
        if self.resuming:
            return
        self.resuming = True
        self.emit('game_resuming', {'duration': self.timings.resume_countdown})
        self.arm('resume', self.timings.resume_countdown, partial(self.rounds.finish_resume, self.game_token))

    def vote_skip(self, conn_id: str) -> None:
        follow = None
        with self.lock:
            if (self.status != PLAYING or self.round_loading or conn_id not in self.players
                    or not self.is_in_game(conn_id) or self.current_round_index < 0):
                return
            _, _, reached = self.votes.add_skip(conn_id, self.vote_roster_size)
            self.emit('vote_update', self.votes.tally('skip', self.vote_roster_size))
            if not reached:
                return
            follow = self._skip_locked()
        if follow:
            follow()

    def force_end_round(self) -> bool:
        with self.lock:
            if self.status != PLAYING or self.current_round_index < 0:
                return False
            return self.rounds.end_round_locked(self.current_round_index)

    def cancel_game(self) -> None:
        with self.lock:
            logger.info(f"[game-cancel] room={self.code}")
            self._reset_to_waiting()
            self.emit('game_cancelled', {'room_id': self.code})
            self.emit_roster()

    def stop_game(self) -> None:
        with self.lock:
            self.disarm()
            self.game_token += 1
            self._starting = False
            self.status = FINISHED
            logger.info(f"[game-stop] room={self.code} empty")

    def _reset_to_waiting(self) -> None:
        logger.info(f"[reset] room={self.code} back to waiting")
        self.disarm()
        self.game_token += 1
        self._starting = False
        self.status = WAITING
        self.current_round_index = -1
        self.returned.clear()
        self.votes.clear()
        self.round_loading = False
        self.round_ended = False
        self.resuming = False
        self.round_data = {}

    @staticmethod
    def snapshot_player(player: Player) -> Player:
        return replace(player, seen_song_ids=list(player.seen_song_ids))

    # ---- reads ----

    @property
    def is_empty(self) -> bool:
        return not self.players

    def get_sync_state(self) -> Dict[str, Any]:
        """Everything a (re)connecting client needs to render the room."""
        with self.lock:
            idx = self.current_round_index
            item = self.playlist[idx] if 0 <= idx < len(self.playlist) else None
            is_intro = self.status == PLAYING and idx == -1
            state = {
                'room_id': self.code,
                'status': self.status,
                'host_id': self.host_id,
                'settings': self.settings.to_dict(),
                'current_round': idx + 1,
                'total_rounds': len(self.playlist),
                'players': self.roster(),
                'is_intro': is_intro,
                'is_paused': self.status == PAUSED,
                'is_resuming': self.resuming,
                'votes': {
                    'pause': self.votes.tally('pause', self.vote_roster_size),
                    'skip': self.votes.tally('skip', self.vote_roster_size),
                },
                'intro_data': None,
                'round_data': None,
                'reveal_data': None,
                'victory_data': self.last_result if self.status == FINISHED else None,
            }
            if is_intro:
                state['intro_data'] = {
                    'first_video': self.playlist[0].video_key if self.playlist else None,
                    'duration': self.timings.intro_delay,
                }
            elif self.status == PLAYING and item and not self.round_ended and not self.round_loading:
                state['round_data'] = {
                    'video_key': item.video_key,
                    'video_start_time': item.video_start_time,
                    'duration': item.guess_duration,
                    'elapsed': max(0.0, self.clock() - self.round_started_at),
                    'response_type': self.settings.response_type,
                    'choices': list(self.round_data.get('choices', [])),
                    'duo': list(self.round_data.get('duo', [])),
                }
            elif self.status in (PLAYING, PAUSED) and item and self.round_ended:
                state['reveal_data'] = {
                    'song': item.to_dict(),
                    'correct_answer': self.round_data.get('target') or item.target(self.settings.precision),
                    'next_video': self.playlist[idx + 1].video_key if idx + 1 < len(self.playlist) else None,
                    'duration': self.timings.reveal_duration,
                }
            return state

    def summary(self) -> Dict[str, Any]:
        with self.lock:
            host = self.players.get(self.host_id)
            return {
                'id': self.code,
                'name': self.settings.name,
                'host': host.name if host else None,
                'host_avatar': host.avatar if host else None,
                'mode': self.settings.game_type,
                'players': len(self.players),
                'max_players': self.settings.max_players,
                'is_private': self.settings.is_private,
                'status': self.status,
                'settings': self.settings.to_dict(),
            }
