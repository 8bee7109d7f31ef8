"""Track snapshots and transition detection."""

import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

UNKNOWN_ARTIST = "Unknown Artist"


@dataclass(frozen=True)
class TrackSnapshot:
    """The track the playback service reported on one poll."""

    track_id: str
    name: str
    artist: str
    added_by: Optional[str] = None

    @classmethod
    def from_spotify(cls, payload: Optional[Dict[str, Any]]) -> Optional["TrackSnapshot"]:
        """Build a snapshot from a currently-playing response.

        Returns None when nothing is playing, when the item is not a track
        (podcast episodes, ads) or when it has no id (local files).
        """
        if not payload:
            return None
        item = payload.get("item")
        if not item or item.get("type", "track") != "track" or not item.get("id"):
            return None

        artists = item.get("artists") or []
        artist = artists[0].get("name") if artists else None
        return cls(
            track_id=item["id"],
            name=item.get("name") or item["id"],
            artist=artist or UNKNOWN_ARTIST,
        )

    def with_attribution(self, added_by: Optional[str]) -> "TrackSnapshot":
        return replace(self, added_by=added_by)


@dataclass(frozen=True)
class Transition:
    """A change in the observed track.

    ``ending_track_id`` is None on the first observation after start-up.
    """

    ending_track_id: Optional[str]
    snapshot: TrackSnapshot

    @property
    def is_first_observation(self) -> bool:
        return self.ending_track_id is None


class TrackTransitionDetector:
    """Remembers the last track id seen by the poller."""

    def __init__(self) -> None:
        self.last_track_id: Optional[str] = None
        self._lock = threading.Lock()

    def observe(self, snapshot: Optional[TrackSnapshot]) -> Optional[Transition]:
        """Compare a snapshot with the last one seen.

        A missing snapshot means playback stopped or the service was
        unreachable; it is not a transition and leaves the state alone.
        """
        if snapshot is None:
            return None

        with self._lock:
            if self.last_track_id == snapshot.track_id:
                return None
            transition = Transition(ending_track_id=self.last_track_id, snapshot=snapshot)
            self.last_track_id = snapshot.track_id
            return transition

    def rewind(self, transition: Transition) -> None:
        """Forget a transition whose handling failed so the next poll retries it."""
        with self._lock:
            if self.last_track_id == transition.snapshot.track_id:
                self.last_track_id = transition.ending_track_id
