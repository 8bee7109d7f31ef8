"""PartySkip: vote the current track off a shared Spotify session."""

__version__ = "0.1.0"
