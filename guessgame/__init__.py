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


def _allowed_origins(value):
    if not value or value.strip() == '*':
        return '*'
    return [origin.strip() for origin in value.split(',') if origin.strip()]


def create_app(config_class=Config, scheduler=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = _allowed_origins(flask_app.config.get('CORS_ORIGINS', '*'))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from guessgame.main import main
    flask_app.register_blueprint(main)

    # Session engine: one per app, no module-level session state
    from guessgame.services.sessions import SessionEngine, SessionStore, SocketIOTransport
    from guessgame.services.sessions.scheduler import BackgroundRoundScheduler
    from guessgame.services.users import SqlUserStore

    testing = flask_app.config.get('TESTING', False)
    engine = SessionEngine(
        store=SessionStore(),
        transport=SocketIOTransport(socketio),
        users=SqlUserStore(flask_app),
        scheduler=scheduler or BackgroundRoundScheduler(socketio, logger=flask_app.logger),
        # Score updates run inline in tests for determinism
        spawn=None if testing else socketio.start_background_task,
        round_duration=flask_app.config.get('ROUND_DURATION_SEC', 60),
        initial_attempts=flask_app.config.get('INITIAL_ATTEMPTS', 3),
        correct_guess_points=flask_app.config.get('CORRECT_GUESS_POINTS', 10),
        logger=flask_app.logger,
    )
    flask_app.extensions['session_engine'] = engine

    # Register Socket.IO event handlers
    from guessgame.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        import guessgame.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
