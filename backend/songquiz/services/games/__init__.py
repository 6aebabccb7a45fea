"""Game domain services: rooms, rounds, votes, scoring and timers.

This package holds the session state machine and the pure(ish) rules it
delegates to. Socket handlers and HTTP routes import from here, keeping
transport concerns separated from core game mechanics.
"""

from .registry import RoomFull, RoomRegistry
from .room import Room, RoomTimings
from .scheduler import SocketIOScheduler, TimerHandle
from .types import (FINISHED, PAUSED, PLAYING, WAITING, GameSettings, NoPlayableContent, Player, RoundItem,
                    SongSelection)

__all__ = [
    'FINISHED',
    'PAUSED',
    'PLAYING',
    'WAITING',
    'GameSettings',
    'NoPlayableContent',
    'Player',
    'Room',
    'RoomFull',
    'RoomRegistry',
    'RoomTimings',
    'RoundItem',
    'SocketIOScheduler',
    'SongSelection',
    'TimerHandle',
]
