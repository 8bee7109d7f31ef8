"""
Analytics routes for PartySkip.
Read-only reports built from the song history.
"""

from flask import Blueprint, current_app, jsonify
from partyskip.core.analytics import leaderboard, most_downvoted, summarize_history


analytics_bp = Blueprint('analytics', __name__)


@analytics_bp.route("/analytics")
def get_analytics():
    """Tracks ended, tracks skipped, skip rate and the raw history"""
    return jsonify(summarize_history(current_app.coordinator.history()))


@analytics_bp.route("/analytics/most-downvoted")
def get_most_downvoted():
    return jsonify(most_downvoted(current_app.coordinator.history()))


@analytics_bp.route("/analytics/leaderboard")
def get_leaderboard():
    """Requesters ranked by how rarely their tracks get skipped"""
    return jsonify(leaderboard(current_app.coordinator.history()))
