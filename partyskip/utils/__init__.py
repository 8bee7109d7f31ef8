"""Utilities for PartySkip."""
