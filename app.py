"""
PartySkip server entry point.

Run directly for the development server, or point a WSGI runner at ``app:app``.
"""

import os
from partyskip.app import configure_logging, create_app

configure_logging()
app = create_app()

# Run the Flask app
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 3000))
    app.socketio.run(app, host="0.0.0.0", port=port, debug=False, allow_unsafe_werkzeug=True)
