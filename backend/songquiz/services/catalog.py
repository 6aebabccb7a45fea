"""Song provider backed by the local catalog tables.

Picks the playlist for a game and the wrong-answer choices for each round.
Every call opens its own app context because rooms call it from background
tasks.
"""

import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from songquiz.models import COMPLETED, Anime, Song
from songquiz.services.games.types import FRANCHISE, NoPlayableContent, RoundItem, SongSelection

logger = logging.getLogger(__name__)

# Lobby playlists mapped to the franchise genres they cover
TAG_DEFINITIONS = {
    'action': ['Action', 'Adventure'],
    'fantasy': ['Fantasy', 'Magic', 'Mahou Shoujo', 'Supernatural', 'Isekai'],
    'romance': ['Romance', 'Drama', 'Shoujo'],
    'scifi': ['Sci-Fi', 'Mecha', 'Space', 'Cyberpunk'],
    'dark': ['Horror', 'Psychological', 'Thriller', 'Mystery', 'Dark Fantasy'],
    'chill': ['Slice of Life', 'Iyashikei', 'Josei'],
    'comedy': ['Comedy', 'Parody', 'Gag Humor'],
}

TOP_POPULARITY = 80
CHOICE_POOL = 60
WIDE_CHOICE_POOL = 20
WRONG_CHOICES = 3
PLACEHOLDER_CHOICE = 'Another anime'


def decade_start(filters: Dict[str, Any]) -> Optional[int]:
    if filters.get('playlist') != 'decades' or not filters.get('decade'):
        return None
    try:
        return int(str(filters['decade'])[:4])
    except ValueError:
        return None


def round_item_from_song(song: Song) -> RoundItem:
    anime = song.anime
    franchise = anime.franchise.name if anime.franchise else None
    accepted = [anime.name, *anime.alt_names]
    if franchise:
        accepted.append(franchise)
    return RoundItem(
        song_id=song.id,
        anime=anime.name,
        accepted_answers=tuple(a for a in accepted if a),
        video_key=song.video_key,
        title=song.title,
        artist=song.artist or '',
        type=song.type,
        difficulty=song.difficulty or '',
        cover=anime.cover_image,
        anime_id=anime.id,
        franchise=franchise,
        tags=tuple(anime.franchise.genres) if anime.franchise else (),
        year=anime.season_year,
        site_url=anime.site_url or f"https://anilist.co/anime/{anime.id}",
    )


class CatalogSongProvider:
    def __init__(self, app, rng: Optional[random.Random] = None):
        self.app = app
        self.rng = rng or random.Random()

    # ---- playlist ----

    def _candidates(self, filters: Dict[str, Any], *, strict_difficulty: bool = True,
                    anime_ids: Optional[Sequence[int]] = None, exclude: Sequence[int] = ()) -> List[Song]:
        query = (Song.query.join(Anime)
                 .options(joinedload(Song.anime).joinedload(Anime.franchise))
                 .filter(Song.download_status == COMPLETED))

        if strict_difficulty and filters.get('difficulty'):
            query = query.filter(Song.difficulty.in_(filters['difficulty']))

        types = filters.get('types') or []
        type_conditions = []
        if 'opening' in types:
            type_conditions.append(Song.type.like('OP%'))
        if 'ending' in types:
            type_conditions.append(Song.type.like('ED%'))
        if type_conditions:
            query = query.filter(or_(*type_conditions))

        playlist = filters.get('playlist')
        start = decade_start(filters)
        if playlist == 'top-50':
            query = query.filter(Anime.popularity >= TOP_POPULARITY)
        elif start is not None:
            query = query.filter(Anime.season_year >= start, Anime.season_year < start + 10)

        if anime_ids is not None:
            query = query.filter(Song.anime_id.in_(list(anime_ids)))
        if exclude:
            query = query.filter(Song.id.notin_(list(exclude)))

        songs = query.all()
        # Genres live in a JSON column, so the tag playlists filter here
        genres = TAG_DEFINITIONS.get(playlist)
        if genres:
            wanted = set(genres)
            songs = [s for s in songs if s.anime.franchise and wanted & set(s.anime.franchise.genres)]
        return songs

    def _pick(self, songs: List[Song], count: int) -> List[Song]:
        if count <= 0 or not songs:
            return []
        return self.rng.sample(songs, min(count, len(songs)))

    def get_random_songs(self, count: int, filters: Optional[Dict[str, Any]] = None) -> SongSelection:
        """Pick ``count`` playable songs.

        With ``watched_ids`` in the filters (watched-only games) the pick goes
        through three steps: the watched pool with every filter, the watched
        pool ignoring difficulty, then a random backfill with every filter,
        which is reported as a fallback.
        """
        filters = filters or {}
        watched_ids = filters.get('watched_ids')
        watched_mode = isinstance(watched_ids, (list, tuple))
        picked: List[Song] = []
        fallback_used = False

        with self.app.app_context():
            if watched_mode and watched_ids:
                picked = self._pick(self._candidates(filters, anime_ids=watched_ids), count)
                logger.info(f"[songs] step=watched-strict picked={len(picked)}")
                if len(picked) < count:
                    loose = self._candidates(filters, strict_difficulty=False, anime_ids=watched_ids,
                                             exclude=[s.id for s in picked])
                    extra = self._pick(loose, count - len(picked))
                    picked += extra
                    logger.info(f"[songs] step=watched-loose picked={len(extra)}")

            if len(picked) < count:
                if watched_mode:
                    fallback_used = True
                rest = self._candidates(filters, exclude=[s.id for s in picked])
                extra = self._pick(rest, count - len(picked))
                picked += extra
                if watched_mode:
                    logger.info(f"[songs] step=random-backfill picked={len(extra)}")

            if not picked:
                raise NoPlayableContent(f"no playable song for filters={filters}")
            self.rng.shuffle(picked)
            items = [round_item_from_song(s) for s in picked]
        return SongSelection(songs=items, fallback_used=fallback_used)

    # ---- per-round choices ----

    def generate_choices(self, target: str, precision: str, filters: Optional[Dict[str, Any]] = None) -> List[str]:
        """Four shuffled choices: ``target`` plus three distinct wrong answers."""
        filters = filters or {}
        with self.app.app_context():
            base = Anime.query.options(joinedload(Anime.franchise)).filter(Anime.name != target)
            query = base
            start = decade_start(filters)
            if start is not None:
                query = query.filter(Anime.season_year >= start, Anime.season_year < start + 10)
            animes = query.order_by(func.random()).limit(CHOICE_POOL).all()
            if len(animes) < WRONG_CHOICES:
                animes = base.order_by(func.random()).limit(WIDE_CHOICE_POOL).all()

            names = []
            for a in animes:
                if precision == FRANCHISE and a.franchise:
                    names.append(a.franchise.name)
                else:
                    names.append(a.name)

        folded_target = target.strip().casefold()
        unique = []
        for name in names:
            if name and name.strip().casefold() != folded_target and name not in unique:
                unique.append(name)

        wrong = self.rng.sample(unique, min(WRONG_CHOICES, len(unique)))
        while len(wrong) < WRONG_CHOICES:
            wrong.append(PLACEHOLDER_CHOICE)
        choices = wrong + [target]
        self.rng.shuffle(choices)
        return choices

    def generate_duo(self, target: str, choices: Sequence[str]) -> List[str]:
        """Two shuffled choices built from an already generated four-choice set."""
        folded_target = target.strip().casefold()
        wrong = [c for c in choices if c.strip().casefold() != folded_target]
        duo = [target, wrong[0] if wrong else PLACEHOLDER_CHOICE]
        self.rng.shuffle(duo)
        return duo

    # ---- autocomplete ----

    def list_anime_names(self) -> List[Dict[str, Any]]:
        with self.app.app_context():
            animes = Anime.query.options(joinedload(Anime.franchise)).order_by(Anime.name).all()
            return [a.to_dict() for a in animes]
