"""Main reelpipe application."""

import os
import logging

from flask import Flask

from reelpipe.config import load_config
from reelpipe.database import init_db
from reelpipe.blueprints.api import api_bp
from reelpipe.socket_events import socketio

logger = logging.getLogger(__name__)


def _database_dir() -> str:
    """Directory holding the job database, next to the config file."""
    config_path = os.environ.get("CONFIG_PATH", "./config")
    if config_path.endswith(".json"):
        return os.path.dirname(config_path) or "."
    return config_path


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Load configuration from config file
    config = load_config()

    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY", config.secret_key or "reelpipe_dev_secret_key"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SOCKETIO_ASYNC_MODE="eventlet",
    )

    # Load test configuration if provided
    if test_config is not None:
        app.config.from_mapping(test_config)

    if "SQLALCHEMY_DATABASE_URI" not in app.config:
        db_dir = _database_dir()
        os.makedirs(db_dir, exist_ok=True)
        db_path = os.path.abspath(os.path.join(db_dir, "reelpipe.db"))
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    try:
        os.makedirs(config.output_path, exist_ok=True)
    except OSError as e:
        logger.warning(f"Could not create output path {config.output_path}: {e}")

    app.register_blueprint(api_bp, url_prefix="/api")

    socketio.init_app(app, cors_allowed_origins="*", async_mode=app.config["SOCKETIO_ASYNC_MODE"])

    init_db(app)

    return app


def main():
    """Run the application."""
    # Logging is configured in run.py, but update here in case app.py is run directly
    config = load_config()
    log_level = os.environ.get("LOG_LEVEL", config.log_level).upper()
    logging.getLogger().setLevel(getattr(logging, log_level))

    app = create_app()

    # Run with SocketIO instead of Flask's built-in server
    socketio.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 5101)),
        debug=os.environ.get("DEBUG", "False").lower() == "true",
    )


if __name__ == "__main__":
    main()
