import logging
import random
import string
import threading
from typing import Callable, Dict, List, Optional

from .modes import mode_for
from .room import Room, RoomTimings
from .types import GameSettings

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


class RoomFull(Exception):
    pass


class RoomRegistry:
    """Owns every live room, keyed by code.

    Built once by the app factory and handed to the transport layer; rooms
    get the collaborators (scheduler, song provider, watch lists, stats) from
    here so tests can swap any of them.
    """

    def __init__(self, *, scheduler, emit: Callable[..., None], provider, watchlists=None, stats=None,
                 timings: Optional[RoomTimings] = None, code_length: int = 6, max_players_cap: int = 50,
                 default_round_count: int = 10, default_guess_duration: int = 20, rng=None):
        self.scheduler = scheduler
        self.emit = emit
        self.provider = provider
        self.watchlists = watchlists
        self.stats = stats
        self.timings = timings or RoomTimings()
        self.code_length = code_length
        self.max_players_cap = max_players_cap
        self.default_round_count = default_round_count
        self.default_guess_duration = default_guess_duration
        self._rng = rng or random.SystemRandom()
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def _new_code(self) -> str:
        while True:
            code = ''.join(self._rng.choice(CODE_ALPHABET) for _ in range(self.code_length))
            if code not in self._rooms:
                return code

    def create(self, host_id: str, settings_data: Optional[dict] = None) -> Room:
        base = GameSettings(round_count=self.default_round_count, guess_duration=self.default_guess_duration)
        settings = base.updated(settings_data, self.max_players_cap)
        with self._lock:
            code = self._new_code()
            room = Room(
                code, host_id, settings,
                scheduler=self.scheduler,
                emit=self.emit,
                provider=self.provider,
                mode=mode_for(settings.game_type),
                watchlists=self.watchlists,
                stats=self.stats,
                timings=self.timings,
                max_players_cap=self.max_players_cap,
            )
            self._rooms[code] = room
        logger.info(f"[room-create] room={code} host={host_id}")
        return room

    def get(self, code: Optional[str]) -> Optional[Room]:
        if not code:
            return None
        return self._rooms.get(str(code).strip().upper())

    def remove(self, code: str, if_empty: bool = False) -> Optional[Room]:
        """Drop a room and stop it. With ``if_empty`` the room is kept when someone joined meanwhile."""
        with self._lock:
            room = self._rooms.get(code)
            if room is None:
                return None
            with room.lock:
                if if_empty and not room.is_empty:
                    return None
                del self._rooms[code]
                room.stop_game()
        logger.info(f"[room-remove] room={code}")
        return room

    def list_rooms(self, include_private: bool = False) -> List[dict]:
        rooms = list(self._rooms.values())
        return [r.summary() for r in rooms if include_private or not r.settings.is_private]

    def join(self, code: str, conn_id: str, name: str, avatar: str = '', user_id=None):
        """Add a connection to an existing room, enforcing its player limit."""
        room = self.get(code)
        if room is None:
            return None
        with room.lock:
            # Lost a race with the last player leaving
            if self._rooms.get(room.code) is not room:
                return None
            if conn_id not in room.players and len(room.players) >= room.settings.max_players:
                raise RoomFull(room.code)
            room.add_player(conn_id, name, avatar, user_id=user_id)
        return room

    def leave(self, code: str, conn_id: str) -> bool:
        """Remove a connection; an emptied room is dropped from the registry."""
        room = self.get(code)
        if room is None or not room.remove_player(conn_id):
            return False
        if room.is_empty:
            self.remove(room.code, if_empty=True)
        return True

    def rooms_for(self, conn_id: str) -> List[Room]:
        return [r for r in list(self._rooms.values()) if conn_id in r.players]

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code) -> bool:
        return self.get(code) is not None
