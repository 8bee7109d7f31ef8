"""HTTP routes for PartySkip."""
