"""Flask application factory."""

import json
import os
from datetime import timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Flask
from flask_cors import CORS

from services.business_calendar import BusinessCalendar
from services.sprint_analysis import DEFAULT_MAX_WORKERS

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "engine-config.json"
)


def load_engine_config(app, config_path=None):
    """Load business hours, worker count and timezone from the config file.

    Missing or unreadable config falls back to the defaults (06:00-18:00
    window, 8 productive hours, UTC).
    """
    config_path = config_path or DEFAULT_CONFIG_PATH
    config = {}

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                config = json.load(f)
            app.logger.info(f"Loaded engine config from {config_path}")
        except (json.JSONDecodeError, IOError) as e:
            app.logger.warning(f"Failed to load engine config: {e}")
            config = {}
    else:
        app.logger.info("No engine-config.json found, using default business hours")

    try:
        calendar = BusinessCalendar.from_config(config.get("businessHours") or {})
    except ValueError as e:
        app.logger.warning(f"Invalid business hours in engine config: {e}")
        calendar = BusinessCalendar()

    tz = timezone.utc
    tz_name = config.get("timezone")
    if tz_name:
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            app.logger.warning(f"Unknown timezone '{tz_name}', using UTC: {e}")

    app.config["BUSINESS_CALENDAR"] = calendar
    max_workers = DEFAULT_MAX_WORKERS
    try:
        max_workers = int(config.get("maxWorkers", DEFAULT_MAX_WORKERS))
    except (TypeError, ValueError) as e:
        app.logger.warning(f"Invalid maxWorkers in engine config, using {DEFAULT_MAX_WORKERS}: {e}")

    app.config["MAX_WORKERS"] = max_workers
    app.config["TIMEZONE"] = tz


def create_app(config_path=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type"]
        }
    })

    # Register blueprints
    from app.api import sprints
    app.register_blueprint(sprints.bp)

    load_engine_config(app, config_path)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
