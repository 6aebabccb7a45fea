from datetime import datetime
import json

from songquiz import db

COMPLETED = 'COMPLETED'


def _load_list(raw):
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    games_played = db.Column(db.Integer, default=0, nullable=False)
    games_won = db.Column(db.Integer, default=0, nullable=False)
    correct_guesses = db.Column(db.Integer, default=0, nullable=False)
    max_streak = db.Column(db.Integer, default=0, nullable=False)
    watched_anime_ids = db.Column(db.Text, nullable=True)  # JSON-encoded list of anime ids, None = no list imported
    history = db.relationship('SongHistory', backref='user', lazy='dynamic')

    @property
    def watched_ids(self):
        if self.watched_anime_ids is None:
            return None
        return [int(i) for i in _load_list(self.watched_anime_ids)]

    @watched_ids.setter
    def watched_ids(self, ids):
        self.watched_anime_ids = None if ids is None else json.dumps([int(i) for i in ids])

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'games_played': self.games_played or 0,
            'games_won': self.games_won or 0,
            'correct_guesses': self.correct_guesses or 0,
            'max_streak': self.max_streak or 0,
            'songs_discovered': self.history.count(),
            'has_watch_list': self.watched_anime_ids is not None,
        }


class Franchise(db.Model):
    __tablename__ = 'franchise'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    genres_json = db.Column('genres', db.Text, nullable=True)  # JSON-encoded list of genre names
    animes = db.relationship('Anime', back_populates='franchise')

    @property
    def genres(self):
        return _load_list(self.genres_json)

    @genres.setter
    def genres(self, values):
        self.genres_json = json.dumps(list(values or []))


class Anime(db.Model):
    __tablename__ = 'anime'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    alt_names_json = db.Column('alt_names', db.Text, nullable=True)  # JSON-encoded list
    season_year = db.Column(db.Integer, nullable=True)
    popularity = db.Column(db.Integer, default=0)
    cover_image = db.Column(db.String(512), nullable=True)
    site_url = db.Column(db.String(512), nullable=True)
    franchise_id = db.Column(db.Integer, db.ForeignKey('franchise.id'), nullable=True)
    franchise = db.relationship('Franchise', back_populates='animes')
    songs = db.relationship('Song', back_populates='anime')

    @property
    def alt_names(self):
        return _load_list(self.alt_names_json)

    @alt_names.setter
    def alt_names(self, values):
        self.alt_names_json = json.dumps(list(values or []))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'franchise': self.franchise.name if self.franchise else None,
            'alt_names': self.alt_names,
        }


class Song(db.Model):
    __tablename__ = 'song'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    artist = db.Column(db.String(255), nullable=True)
    type = db.Column(db.String(16), nullable=False)  # OP1, ED2, ...
    difficulty = db.Column(db.String(16), nullable=True)  # easy, medium, hard
    video_key = db.Column(db.String(255), nullable=False)
    download_status = db.Column(db.String(32), default='PENDING', nullable=False)
    anime_id = db.Column(db.Integer, db.ForeignKey('anime.id'), nullable=False, index=True)
    anime = db.relationship('Anime', back_populates='songs')


class SongHistory(db.Model):
    __tablename__ = 'song_history'
    __table_args__ = (db.UniqueConstraint('user_id', 'song_id', name='uq_song_history_user_song'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    song_id = db.Column(db.Integer, db.ForeignKey('song.id'), nullable=False)
    listened_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
