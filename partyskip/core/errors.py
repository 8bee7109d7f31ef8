"""
Error types raised by the vote coordinator and its collaborators.

Request-scoped errors carry the HTTP status they map to; background
errors are logged by the scheduler and never reach a caller.
"""


class PartySkipError(Exception):
    """Base class for PartySkip errors."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(PartySkipError):
    """Malformed vote or queue request."""

    status_code = 400
    default_message = "Invalid vote"


class NoActiveTrack(PartySkipError):
    """No current song is projected for the party."""

    status_code = 404
    default_message = "No active track"


class AlreadyVoted(PartySkipError):
    """The device already voted on the active track."""

    status_code = 409
    default_message = "Already voted"


class UpstreamTransient(PartySkipError):
    """Playback service, token endpoint or store failed or timed out."""

    status_code = 502
    default_message = "Playback service unavailable"


class SkipCommandFailed(UpstreamTransient):
    """The playback service rejected or timed out on a skip."""

    default_message = "Skip command failed"
