"""
Playback routes for PartySkip.
Exposes the now-playing projection and queue requests with attribution.
"""

from flask import Blueprint, current_app, jsonify, request


playback_bp = Blueprint('playback', __name__)


@playback_bp.route("/current")
def get_current():
    """Current song for the configured party, or an empty object"""
    song = current_app.coordinator.current_song()
    return jsonify(song or {})


@playback_bp.route("/queue", methods=["POST"])
def queue_track():
    """Queue a track on Spotify and record who requested it"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    queued = current_app.coordinator.queue_track(
        data.get("device_id"),
        data.get("track_id"),
        data.get("requested_by"),
    )
    return jsonify({"status": "queued", "request": queued}), 201
