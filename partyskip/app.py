"""
Application factory for PartySkip.
Wires configuration, the store, the Spotify client, the coordinator,
HTTP routes, Socket.IO and the background scheduler together.
"""

import atexit
import logging
import os

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError

from partyskip.api.spotify import create_spotify_playback
from partyskip.core import PartySkipError, PartyStore, PlaybackScheduler, VoteCoordinator
from partyskip.models import init_db
from partyskip.routes.analytics import analytics_bp
from partyskip.routes.playback import playback_bp
from partyskip.routes.votes import votes_bp
from partyskip.utils import config
from partyskip.websockets.handlers import broadcast, init_socketio

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level=None):
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


def create_app(config_overrides=None, playback=None, store=None):
    """Create the Flask app.

    Args:
        config_overrides: Mapping applied on top of the environment
        playback: Playback client; built from Spotify settings when omitted
        store: Shared store; a SQLAlchemy-backed PartyStore when omitted
    """
    app = Flask(__name__)
    config.init_app(app, config_overrides)

    init_db(app.config["DATABASE_URL"])

    if playback is None:
        playback = create_spotify_playback(app.config)

    app.coordinator = VoteCoordinator(
        party_id=app.config["PARTY_ID"],
        store=store or PartyStore(),
        playback=playback,
        downvote_threshold=app.config["DOWNVOTE_THRESHOLD"],
        notifier=broadcast,
    )

    app.register_blueprint(playback_bp)
    app.register_blueprint(votes_bp)
    app.register_blueprint(analytics_bp)
    register_error_handlers(app)

    @app.route("/health")
    def health():
        """Liveness plus the state of the background poller"""
        status = {"status": "ok", "party_id": app.config["PARTY_ID"], "scheduler": "off", "next_poll": None}
        if app.scheduler is not None:
            status["scheduler"] = "running" if app.scheduler.is_running() else "stopped"
            status["next_poll"] = app.scheduler.get_next_run_time()
        return jsonify(status)

    app.socketio = init_socketio(app, app.coordinator)

    app.scheduler = None
    if app.config["START_SCHEDULER"]:
        tokens = getattr(playback, "tokens", None)
        app.scheduler = PlaybackScheduler(
            poll_function=app.coordinator.poll_once,
            token_refresh_function=tokens.refresh if tokens is not None else None,
            poll_interval_seconds=app.config["POLL_INTERVAL_SECONDS"],
            token_refresh_minutes=app.config["TOKEN_REFRESH_INTERVAL_MINUTES"],
        )
        app.scheduler.start()
        atexit.register(app.scheduler.stop)

    logger.info(
        f"PartySkip ready for party {app.config['PARTY_ID']} "
        f"(skip at {app.config['DOWNVOTE_THRESHOLD']} downvotes)"
    )
    return app


def register_error_handlers(app):
    """Render coordinator errors as JSON with their status code"""

    @app.errorhandler(PartySkipError)
    def handle_partyskip_error(error):
        if error.status_code >= 500:
            logger.error(f"Request failed: {error.message}")
        return jsonify({"error": error.message}), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        logger.error(f"Database error: {error}")
        return jsonify({"error": "Database error"}), 500


def main():
    """Run the server with Socket.IO"""
    configure_logging()
    app = create_app()
    port = int(os.environ.get("PORT", 3000))
    app.socketio.run(app, host="0.0.0.0", port=port, debug=False, allow_unsafe_werkzeug=True)


if __name__ == "__main__":
    main()
