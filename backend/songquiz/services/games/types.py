"""Plain data carried by a room: settings, players and playlist slots."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

WAITING = 'waiting'
PLAYING = 'playing'
PAUSED = 'paused'
FINISHED = 'finished'

# Answer submission modes (what a player used for one answer)
TYPING = 'typing'
CARRE = 'carre'
DUO = 'duo'

# Room-level response setting; 'qcm' plays four-choice, 'mix' lets players pick
RESPONSE_TYPES = ('typing', 'qcm', 'duo', 'mix')
ALLOWED_ANSWER_MODES = {
    'typing': (TYPING,),
    'qcm': (CARRE,),
    'duo': (DUO,),
    'mix': (TYPING, CARRE, DUO),
}

FRANCHISE = 'franchise'
EXACT = 'exact'


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, value))


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v).strip() for v in value if isinstance(v, str) and v.strip()]


@dataclass
class GameSettings:
    name: str = ''
    game_type: str = 'standard'
    round_count: int = 10
    guess_duration: int = 20
    precision: str = FRANCHISE
    response_type: str = 'typing'
    difficulty: List[str] = field(default_factory=list)
    sound_types: List[str] = field(default_factory=list)
    playlist: Optional[str] = None
    decade: Optional[str] = None
    sound_selection: str = 'random'
    watched_mode: str = 'union'
    max_players: int = 8
    is_private: bool = False

    def updated(self, data: Optional[Dict[str, Any]], max_players_cap: int = 50) -> 'GameSettings':
        """Return a copy with the recognised keys of ``data`` applied and clamped."""
        if not isinstance(data, dict):
            data = {}
        changes: Dict[str, Any] = {}
        if isinstance(data.get('name'), str) and data['name'].strip():
            changes['name'] = data['name'].strip()[:40]
        if isinstance(data.get('game_type'), str):
            changes['game_type'] = data['game_type']
        if 'round_count' in data:
            changes['round_count'] = _clamp(data['round_count'], 5, 50, self.round_count)
        if 'guess_duration' in data:
            changes['guess_duration'] = _clamp(data['guess_duration'], 5, 60, self.guess_duration)
        if data.get('precision') in (FRANCHISE, EXACT):
            changes['precision'] = data['precision']
        if data.get('response_type') in RESPONSE_TYPES:
            changes['response_type'] = data['response_type']
        if 'difficulty' in data:
            changes['difficulty'] = [d for d in _str_list(data['difficulty']) if d in ('easy', 'medium', 'hard')]
        if 'sound_types' in data:
            changes['sound_types'] = [t for t in _str_list(data['sound_types']) if t in ('opening', 'ending')]
        if 'playlist' in data:
            changes['playlist'] = data['playlist'] if isinstance(data['playlist'], str) and data['playlist'] else None
        if 'decade' in data:
            changes['decade'] = str(data['decade']) if data['decade'] else None
        if data.get('sound_selection') in ('random', 'playlist', 'watched'):
            changes['sound_selection'] = data['sound_selection']
        if data.get('watched_mode') in ('union', 'intersection'):
            changes['watched_mode'] = data['watched_mode']
        if 'max_players' in data:
            changes['max_players'] = _clamp(data['max_players'], 2, max_players_cap, self.max_players)
        if 'is_private' in data:
            changes['is_private'] = bool(data['is_private'])
        return replace(self, **changes)

    @property
    def watched_only(self) -> bool:
        return self.sound_selection == 'watched'

    def song_filters(self) -> Dict[str, Any]:
        return {
            'difficulty': list(self.difficulty),
            'types': list(self.sound_types),
            'playlist': self.playlist,
            'decade': self.decade,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'game_type': self.game_type,
            'round_count': self.round_count,
            'guess_duration': self.guess_duration,
            'precision': self.precision,
            'response_type': self.response_type,
            'difficulty': list(self.difficulty),
            'sound_types': list(self.sound_types),
            'playlist': self.playlist,
            'decade': self.decade,
            'sound_selection': self.sound_selection,
            'watched_mode': self.watched_mode,
            'max_players': self.max_players,
            'is_private': self.is_private,
        }


@dataclass(frozen=True)
class RoundItem:
    """One fixed playlist slot, resolved once at game start."""
    song_id: int
    anime: str
    accepted_answers: tuple
    video_key: str
    title: str = ''
    artist: str = ''
    type: str = ''
    difficulty: str = ''
    guess_duration: int = 20
    video_start_time: int = 0
    cover: Optional[str] = None
    anime_id: Optional[int] = None
    franchise: Optional[str] = None
    tags: tuple = ()
    year: Optional[int] = None
    site_url: Optional[str] = None

    def target(self, precision: str) -> str:
        """The answer shown as correct (and used for choices) under ``precision``."""
        if precision == FRANCHISE:
            return self.franchise or self.anime
        return self.anime

    def answers_for(self, precision: str) -> List[str]:
        if precision == FRANCHISE:
            return list(self.accepted_answers)
        return [a for a in self.accepted_answers if a != self.franchise or a == self.anime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.song_id,
            'anime': self.anime,
            'valid_answers': list(self.accepted_answers),
            'title': self.title,
            'artist': self.artist,
            'type': self.type,
            'difficulty': self.difficulty,
            'video_key': self.video_key,
            'video_start_time': self.video_start_time,
            'guess_duration': self.guess_duration,
            'cover': self.cover,
            'anime_id': self.anime_id,
            'franchise': self.franchise,
            'tags': list(self.tags),
            'year': self.year,
            'site_url': self.site_url,
        }


@dataclass
class Player:
    id: str
    name: str
    avatar: str = ''
    user_id: Optional[int] = None
    score: int = 0
    streak: int = 0
    best_streak: int = 0
    correct_count: int = 0
    current_answer: Optional[str] = None
    answer_mode: Optional[str] = None
    is_correct: Optional[bool] = None
    round_points: int = 0
    is_ready: bool = False
    seen_song_ids: List[int] = field(default_factory=list)

    @property
    def has_answered(self) -> bool:
        return self.answer_mode is not None

    def reset_for_game(self) -> None:
        self.score = 0
        self.streak = 0
        self.best_streak = 0
        self.correct_count = 0
        self.seen_song_ids = []
        self.reset_for_round()

    def reset_for_round(self) -> None:
        self.current_answer = None
        self.answer_mode = None
        self.is_correct = None
        self.round_points = 0

    def to_dict(self, reveal_answers: bool = True) -> Dict[str, Any]:
        return {
            'id': self.id,
            'username': self.name,
            'avatar': self.avatar,
            'score': self.score,
            'streak': self.streak,
            'is_ready': self.is_ready,
            'has_answered': self.has_answered,
            'current_answer': self.current_answer if reveal_answers else None,
            'is_correct': self.is_correct,
            'round_points': self.round_points,
        }


@dataclass
class SongSelection:
    """What a song provider hands back for one game start."""
    songs: List[RoundItem]
    fallback_used: bool = False


class NoPlayableContent(Exception):
    """The provider found no song matching the room's settings."""
