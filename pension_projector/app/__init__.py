"""Application factory and app-wide configuration."""

from __future__ import annotations

from typing import Optional

from flask import Flask
from flask_cors import CORS

from pension_projector.app.api.routes import api_bp
from pension_projector.config import Settings, load_settings
from pension_projector.storage import SQLiteScenarioStore, ScenarioStore
from pension_projector.utils.logging import setup_logging


def create_app(settings: Optional[Settings] = None, store: Optional[ScenarioStore] = None) -> Flask:
    """Build the Flask app instance."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    app = Flask(__name__)
    app.config["SETTINGS"] = settings

    CORS(
        app,
        resources={r"/api/*": {"origins": list(settings.cors_origins)}},
        supports_credentials=True,
    )

    app.extensions["scenario_store"] = store or SQLiteScenarioStore(settings.scenario_db_path)
    app.register_blueprint(api_bp, url_prefix="/api")
    return app
