"""
Socket.IO event handlers for PartySkip.
Pushes vote and track updates to clients and accepts votes over the socket.
"""

import logging
from flask_socketio import SocketIO, emit
from partyskip.core.errors import PartySkipError

logger = logging.getLogger(__name__)

# SocketIO instance is created by the app factory
socketio = None


def init_socketio(app, coordinator):
    """Initialize Socket.IO with the Flask app"""
    global socketio
    socketio = SocketIO(
        app,
        cors_allowed_origins="*",
        ping_timeout=120,
        ping_interval=30,
        max_http_buffer_size=16384,
        logger=False,
        engineio_logger=False,
        async_mode='threading'
    )

    register_handlers(socketio, coordinator)
    return socketio


def broadcast(event, payload):
    """Emit an event to every connected client"""
    if socketio is None:
        return
    socketio.emit(event, payload)


def register_handlers(sio, coordinator):
    """Register all Socket.IO event handlers"""

    @sio.on("connect")
    def handle_connect(auth=None):
        """Send the current song to a newly connected client"""
        try:
            emit("current_song", coordinator.current_song() or {})
        except Exception as e:
            logger.error(f"Error sending current song on connect: {e}")
            emit("error", {"message": "Failed to load current song"})

    @sio.on("vote_add")
    def handle_vote_add(data):
        """Handle a vote sent over the socket, same rules as POST /vote"""
        data = data if isinstance(data, dict) else {}
        try:
            result = coordinator.cast_vote(data.get("device_id"), data.get("vote"))
        except PartySkipError as e:
            emit("error", {"message": e.message, "status": e.status_code})
            return
        except Exception as e:
            logger.error(f"Error in vote_add: {e}")
            emit("error", {"message": "Failed to process vote", "status": 500})
            return

        emit("vote_result", result.to_dict())
