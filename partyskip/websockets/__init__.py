"""Real-time updates for PartySkip."""
