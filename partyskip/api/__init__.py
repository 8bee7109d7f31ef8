"""Playback service clients for PartySkip."""
