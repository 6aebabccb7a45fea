from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

WS_NAMESPACE = '/ws'


def build_registry(flask_app):
    """Wire a room registry to this app's socket server, catalog and stats."""
    from songquiz.services.catalog import CatalogSongProvider
    from songquiz.services.games import RoomRegistry, RoomTimings, SocketIOScheduler
    from songquiz.services.stats import StatsStore
    from songquiz.services.watchlists import AccountWatchLists

    def emit(event, payload, to=None):
        socketio.emit(event, payload, to=to, namespace=WS_NAMESPACE)

    cfg = flask_app.config
    return RoomRegistry(
        scheduler=SocketIOScheduler(socketio, heartbeat_sec=cfg.get('TIMER_HEARTBEAT_SEC', 0)),
        emit=emit,
        provider=CatalogSongProvider(flask_app),
        watchlists=AccountWatchLists(flask_app),
        stats=StatsStore(flask_app),
        timings=RoomTimings.from_config(cfg),
        code_length=cfg.get('ROOM_CODE_LENGTH', 6),
        max_players_cap=cfg.get('MAX_PLAYERS_PER_LOBBY', 50),
        default_round_count=cfg.get('DEFAULT_ROUND_COUNT', 10),
        default_guess_duration=cfg.get('GUESS_DURATION_SEC', 20),
    )


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    origins = flask_app.config.get('CORS_ORIGINS', [])
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # Ensure models are registered on the metadata before migrations/create_all
    from songquiz import models  # noqa: F401

    from songquiz.main import main
    flask_app.register_blueprint(main, url_prefix='/api')

    from songquiz.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    flask_app.extensions['room_registry'] = build_registry(flask_app)

    # Importing here ensures the handlers bind to the initialized socketio instance
    from songquiz.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('seed-catalog')
    def seed_catalog_command():
        """Drops, recreates, and seeds the database with a demo catalog."""
        from songquiz.seed import seed_demo_catalog
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            counts = seed_demo_catalog()
            click.echo(f"Catalog seeded: {counts['anime']} anime, {counts['songs']} songs, {counts['users']} users")

    flask_app.cli.add_command(seed_catalog_command)

    return flask_app
