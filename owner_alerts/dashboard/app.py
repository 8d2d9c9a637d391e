"""Flask application factory for the Owner Alerts API."""

import os

from flask import Flask

from ..engine import AlertEngine
from ..settings import SettingsStore
from .config import get_config


def create_app(config=None, engine: AlertEngine | None = None):
    """Create and configure the Flask application.

    Args:
        config: Optional configuration object or dict
        engine: Alert engine to serve; built from configuration if omitted

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Load configuration
    if config is None:
        config = get_config()

    if isinstance(config, dict):
        app.config.update(config)
    else:
        app.config.from_object(config)

    if engine is None:
        engine = AlertEngine.from_config(db_path=app.config.get("ALERT_DB_PATH"))

    app.alert_engine = engine
    app.alert_store = engine.store
    if isinstance(engine.settings_resolver, SettingsStore):
        app.settings_store = engine.settings_resolver
    else:
        app.settings_store = SettingsStore(engine.store.db_path)

    # Register blueprints
    from .routes.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    return app


def run_dev_server():
    """Run development server."""
    app = create_app()
    app.run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 5000)),
        debug=True,
    )


if __name__ == "__main__":
    run_dev_server()
