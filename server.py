import argparse
import atexit
import logging

from flask import Flask, g, request
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from gig_server import message_bp, notification_bp, engagement_bp, presence_bp
from gig_server.repository.mongo_helper import MongoRepositorySingleton
from gig_server.security.authentication import AuthSecurity
from gig_server.utils.threading_util.pool import shutdown_executor
from gig_server.websocket.hub import init_websocket_hub, shutdown_websocket_hub

logger = logging.getLogger(__name__)

TIMEOUT_HEADER = 'X-Request-Timeout'


def configure_auth_from_config():
    """Configure AuthSecurity from config (JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_MINUTES)."""
    secret = config.JWT_SECRET
    if not secret:
        raise RuntimeError('JWT_SECRET environment variable is required')
    AuthSecurity.configure(
        secret_key=secret,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def create_app(db=None, socketio=None) -> Flask:
    """Application factory used by the CLI entry point and tests.

    Registers the blueprints, installs the Socket.IO hub and, when ``db`` is
    given, uses it instead of connecting to MONGO_URI. Auth is configured
    separately via configure_auth_from_config().
    """
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    logger.debug("Configuration: %s", config.to_dict())

    app = Flask(__name__)
    app.config['DEBUG'] = config.DEBUG
    CORS(app, origins=config.CORS_ORIGINS_LIST)

    if db is not None:
        MongoRepositorySingleton.set_db(db)

    @app.before_request
    def read_request_deadline():
        raw = request.headers.get(TIMEOUT_HEADER)
        if not raw:
            return None
        try:
            seconds = float(raw)
        except ValueError:
            logger.debug("Ignoring malformed %s header: %r", TIMEOUT_HEADER, raw)
            return None
        if seconds > 0:
            g.storage_timeout = seconds
        return None

    app.register_blueprint(message_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(engagement_bp)
    app.register_blueprint(presence_bp)

    @app.route('/health')
    def health():
        return {'status': 'ok', 'name': config.APP_NAME, 'version': config.APP_VERSION, 'env': config.ENV}

    if socketio is None:
        socketio = SocketIO(
            async_mode=config.SOCKETIO_ASYNC_MODE,
            cors_allowed_origins=config.CORS_ORIGINS_LIST if config.CORS_ORIGINS != '*' else '*',
        )
    socketio.init_app(app)
    init_websocket_hub(app, socketio)
    app.extensions['gig_socketio'] = socketio
    return app


def parse_args():
    parser = argparse.ArgumentParser(description='Run the gig engine backend server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: 5000 or PORT env)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    return parser.parse_args()


def _shutdown():
    shutdown_websocket_hub()
    shutdown_executor(wait=False)


if __name__ == "__main__":
    args = parse_args()
    config.validate_required()
    configure_auth_from_config()
    app = create_app()
    atexit.register(_shutdown)
    socketio = app.extensions['gig_socketio']
    logger.info('Starting %s (%s) with Socket.IO on port %s', config.APP_NAME, config.ENV, args.port)
    socketio.run(app, host=args.host, port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=True)
