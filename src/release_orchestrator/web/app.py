"""Flask application factory for the release orchestrator web API."""

import logging

from flask import Flask

from release_orchestrator.config import config_exists, load_config


def configure_logging() -> None:
    """Set the root log level from the configuration file, if there is one."""
    level = "INFO"
    if config_exists():
        try:
            level = load_config().log_level
        except (FileNotFoundError, ValueError):
            pass  # the routes report configuration problems per request
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    app.config["SECRET_KEY"] = "release-orchestrator-local-dev"

    configure_logging()

    from release_orchestrator.web.routes import bp
    app.register_blueprint(bp)

    return app
