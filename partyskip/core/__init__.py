"""Core vote coordination for PartySkip."""

from .coordinator import VoteCoordinator, VoteResult
from .errors import (
    AlreadyVoted,
    InvalidInput,
    NoActiveTrack,
    PartySkipError,
    SkipCommandFailed,
    UpstreamTransient,
)
from .scheduler import PlaybackScheduler
from .store import PartyStore
from .transitions import TrackSnapshot, TrackTransitionDetector, Transition

__all__ = [
    "VoteCoordinator",
    "VoteResult",
    "PartyStore",
    "PlaybackScheduler",
    "TrackSnapshot",
    "TrackTransitionDetector",
    "Transition",
    "PartySkipError",
    "InvalidInput",
    "NoActiveTrack",
    "AlreadyVoted",
    "UpstreamTransient",
    "SkipCommandFailed",
]
