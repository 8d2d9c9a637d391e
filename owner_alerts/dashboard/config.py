"""Dashboard configuration."""

import os

from ..config import config as alert_config


class Config:
    """Base configuration."""

    # Flask
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-change-in-production")
    DEBUG = os.environ.get("FLASK_DEBUG", "false").lower() == "true"

    # API
    DASHBOARD_API_KEY = alert_config.DASHBOARD_API_KEY

    # Alert Store
    ALERT_DB_PATH = os.path.expanduser(alert_config.ALERT_DB_PATH)

    # Pagination
    ALERTS_PER_PAGE = int(os.environ.get("ALERTS_PER_PAGE", "100"))
    MAX_ALERTS_PER_PAGE = 500


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


def get_config():
    """Get configuration based on environment."""
    env = os.environ.get("FLASK_ENV", "development")
    if env == "production":
        return ProductionConfig()
    return DevelopmentConfig()
