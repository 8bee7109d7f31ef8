"""
Voting routes for PartySkip.
"""

from flask import Blueprint, current_app, jsonify, request


votes_bp = Blueprint('votes', __name__)


@votes_bp.route("/vote", methods=["POST"])
def vote():
    """Cast an up or down vote on the current song.

    Errors are raised as PartySkipError subclasses and rendered by the
    app-level handler (400 invalid, 404 no track, 409 duplicate).
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    result = current_app.coordinator.cast_vote(data.get("device_id"), data.get("vote"))
    return jsonify(result.to_dict())
