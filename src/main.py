import argparse
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from src.config import VERSION, get_config, set_config
from src.errors import HouseholdError

logger = logging.getLogger(__name__)


def create_app(config=None):
    """Application factory to create and configure the Flask app."""
    config = set_config(config) if config is not None else get_config()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.get("app.secret_key")
    app.config["MAX_CONTENT_LENGTH"] = config.get("uploads.max_file_size") * 4
    app.config["TESTING"] = config.is_testing()

    # Initialize health monitoring
    from src.health_monitor import health_monitor

    @app.errorhandler(HouseholdError)
    def handle_household_error(error):
        if error.status_code >= 500:
            health_monitor.record_error(type(error).__name__, error.message, is_critical=True)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def handle_500_error(error):
        health_monitor.record_error("Internal Server Error", str(error), is_critical=True)
        return jsonify({"error": "Internal Server Error"}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        # HTTP errors (404, 405, 413...) keep their status and are not critical
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code

        logger.exception("Unhandled exception")
        should_restart = health_monitor.record_error(
            "Unhandled Exception", str(error), is_critical=True
        )
        if should_restart:
            logger.critical("Application restart threshold reached due to critical errors")

        return jsonify({"error": "Internal Server Error"}), 500

    from src.database import initialize_db

    initialize_db()

    # Register blueprints
    from src.activities.routes import activities_bp
    from src.auth.routes import auth_bp
    from src.auth.tokens import init_token_manager
    from src.borrow_app.routes import borrow_bp
    from src.calendar_app.routes import calendar_bp
    from src.health_routes import health_bp
    from src.households.routes import households_bp
    from src.inventory_app.routes import inventory_bp
    from src.notifications.routes import notifications_bp
    from src.shopping_app.routes import shopping_bp
    from src.tasks_app.routes import tasks_bp
    from src.uploads.routes import uploads_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(households_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(shopping_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(borrow_bp)
    app.register_blueprint(calendar_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(health_bp)

    # Initialize session token manager
    init_token_manager(app)

    @app.route("/")
    def index():
        return jsonify({"service": config.get("app.service_name"), "version": VERSION})

    @app.route("/api/config")
    def get_config_api():
        """Configuration without secrets."""
        return jsonify(get_config().public_settings())

    return app


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the Household Manager API")
    parser.add_argument(
        "--setup-only",
        action="store_true",
        help="Create the configuration and database, then exit",
    )
    args = parser.parse_args()

    app = create_app()

    if not args.setup_only:
        config = get_config()
        debug_mode = config.get("app.debug", False)
        host = config.get("app.host", "0.0.0.0")  # nosec B104
        port = config.get("app.port", 5000)
        use_reloader = config.get("app.use_reloader", False)

        # Only use debug mode in development
        if config.is_production() and debug_mode:
            logging.warning("Debug mode is enabled in production! Consider disabling it.")
            debug_mode = False  # Force disable in production

        # Ignore .db files to prevent reload loop caused by database writes
        app.run(
            host=host,
            port=port,
            debug=debug_mode,
            use_reloader=use_reloader,
            exclude_patterns=["**/*.db"],
        )
    else:
        print("Setup completed. Exiting without starting server.")
