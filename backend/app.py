"""
EventMix API Backend
A Flask API for shared listening events with AI-generated playlists
"""

from flask import Flask, request
from flask_cors import CORS
import atexit
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configuration
from config import configure_logging, init_app_config
from db_utils import Database
from errors import register_error_handlers
from event_store import EventStore
from service_registry import EXTENSION_KEY, build_services

logger = configure_logging()


def create_app(config=None, store=None, oracle=None, token_broker=None, client_factory=None):
    """
    Application factory

    Args:
        config: Optional dict of settings applied over the environment
        store: Optional EventStore; when omitted a Database pool is opened
            from DATABASE_URL and closed at process exit
        oracle: Optional playlist oracle (defaults to the OpenAI-backed one)
        token_broker: Optional TokenBroker replacement
        client_factory: Optional catalog client factory

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    init_app_config(app, config)
    CORS(app, origins=app.config['CORS_ORIGINS'])

    if store is None:
        database = Database(
            app.config['DATABASE_URL'],
            min_size=app.config['DB_POOL_MIN_SIZE'],
            max_size=app.config['DB_POOL_MAX_SIZE'],
        )
        database.open()
        atexit.register(database.close)
        store = EventStore(database)

    app.extensions[EXTENSION_KEY] = build_services(
        app.config,
        store,
        oracle=oracle,
        token_broker=token_broker,
        client_factory=client_factory,
    )

    register_error_handlers(app)

    # Register all route blueprints
    from routes import register_blueprints
    register_blueprints(app)

    # Request/response logging
    @app.before_request
    def log_request():
        """Log incoming requests"""
        logger.info(f"{request.method} {request.path}")

    @app.after_request
    def log_response(response):
        """Log response status"""
        logger.info(f"{request.method} {request.path} - {response.status_code}")
        return response

    logger.info(f"Flask app initialized in PID {os.getpid()}")
    return app


if __name__ == '__main__':
    # Running directly with 'python app.py' (not gunicorn)
    logger.info("Starting Flask application directly (not gunicorn)...")
    create_app().run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', '5001')))
