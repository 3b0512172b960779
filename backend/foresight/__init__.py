from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def get_registry():
    """Return the SessionRegistry bound to the current app."""
    return current_app.extensions['foresight_registry']


def start_reaper(flask_app):
    """Start the inactivity sweep loop for a serving process."""
    flask_app.extensions['foresight_reaper'].start(socketio)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Ensure models are registered before any store call
    from foresight import models  # noqa: F401
    from foresight.services.sessions.store import SqlSessionStore
    from foresight.services.sessions.bus import SocketIOEventBus
    from foresight.services.sessions.registry import SessionRegistry
    from foresight.services.sessions.reaper import InactivityReaper

    registry = SessionRegistry.from_config(flask_app.config, SqlSessionStore(flask_app), SocketIOEventBus(socketio))
    reaper = InactivityReaper.from_config(flask_app.config, registry)
    flask_app.extensions['foresight_registry'] = registry
    flask_app.extensions['foresight_reaper'] = reaper

    from foresight.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    # Register Socket.IO event handlers
    from foresight.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # The reaper is started by the server entry point (run.py), never by
    # the factory, so CLI commands and tests stay single-threaded

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the session tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('reap')
    def reap_command():
        """Runs one inactivity sweep over persisted sessions now."""
        removed = reaper.sweep()
        print(f'Removed {removed} inactive predictor(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(reap_command)

    return flask_app
